"""Main entry point for the Cloud Connector."""

import sys

from cloud_connector.cli import main

if __name__ == "__main__":
    sys.exit(main())
