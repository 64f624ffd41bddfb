"""Status API module."""

from .app import StatusServer, create_fastapi_app

__all__ = ["StatusServer", "create_fastapi_app"]
