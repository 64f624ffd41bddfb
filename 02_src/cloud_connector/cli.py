"""Command line entry point."""

import argparse
import asyncio
import contextlib
import os
import signal
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Sequence

from dotenv import load_dotenv

from .api import StatusServer
from .app import Application
from .config import DEFAULT_ENV_PATH, ConnectorSettings, env_layer, settings_from_env
from .errors import ConfigError, LoadError
from .logging_config import get_logger, setup_logging
from .sources import load_application_config

logger = get_logger(__name__)

DESCRIPTION = """\
TRISTAN Cloud Connector
========================
Streams recorded automotive traces to the aicas Edge Data Gateway (EDG) over MQTT,
tracking delivery confirmation latency and local resource usage."""

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def get_version() -> str:
    try:
        return version("cloud-connector")
    except PackageNotFoundError:
        return "Unknown version"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloud-connector",
        description="Sends automotive data to a data visualization server over MQTT.",
    )
    parser.add_argument("--version", action="version", version=f"Cloud Connector version: {get_version()}")
    parser.add_argument("-s", "--server", dest="server_uri", help="MQTT broker URI, tcp:// or ssl://host:port")
    parser.add_argument("-d", "--device", dest="device_name", help="Device name registered on the broker")
    parser.add_argument("-t", "--token", dest="device_token", help="Token assigned to the device")
    parser.add_argument("--trust-store", dest="trust_store_path", help="PEM or PKCS#12 trust store for TLS")
    parser.add_argument("--trust-store-password", dest="trust_store_password", help="Trust store password")
    parser.add_argument("-f", "--frequency", dest="frequency_hz", type=float, help="Messages per second (> 0)")
    parser.add_argument("-n", "--top-n", dest="top_n", type=int, help="Publish only the first N scalar signals (0 = all)")
    parser.add_argument("--trace", help="Trace file path or embedded resource name")
    parser.add_argument("-c", "--config", help="Multi-device JSON configuration")
    parser.add_argument(
        "--sample-interval",
        type=float,
        default=0.0,
        help="Seconds between periodic resource samples (0 = before/after only)",
    )
    parser.add_argument("--status-port", type=int, help="Serve the status API on this port")
    parser.add_argument("--status-host", default="127.0.0.1", help="Status API bind address")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--log-file", help="Log file path")
    parser.add_argument("--log-format", choices=("json", "text"), help="Console log format")
    return parser


def resolve_settings(args: argparse.Namespace) -> list[ConnectorSettings]:
    """Per-device settings from environment, command line and optional config document."""
    overrides = {
        field: getattr(args, field)
        for field in (
            "server_uri",
            "device_name",
            "device_token",
            "trust_store_path",
            "trust_store_password",
            "frequency_hz",
            "top_n",
            "trace",
        )
    }
    config_source = args.config or os.getenv("EDG_CONFIG")
    if config_source is None:
        return [settings_from_env(overrides)]

    config = load_application_config(config_source)
    if not config.device_configs:
        raise ConfigError(f"No devices configured in {config_source}")
    return config.device_settings(env_layer(), overrides)


async def _run(application: Application) -> list:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, application.request_stop)
    return await application.run()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the connector; returns the process exit code."""
    load_dotenv(DEFAULT_ENV_PATH)
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file, args.log_format)

    print(DESCRIPTION)
    print(f"Cloud Connector version: {get_version()}")
    print("-------------------------")

    try:
        settings = resolve_settings(args)
    except (ConfigError, LoadError) as e:
        logger.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    application = Application(settings, sample_interval=args.sample_interval)
    status_server = None
    if args.status_port is not None:
        status_server = StatusServer(application, args.status_host, args.status_port)
        status_server.start()

    try:
        results = asyncio.run(_run(application))
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    finally:
        if status_server is not None:
            status_server.stop()

    for result in results:
        if not result.succeeded:
            logger.error("Run for %s failed: %s", result.device_name, result.error)
    if application.stop_requested:
        logger.warning("Interrupted before the traces were fully published")
        return EXIT_INTERRUPTED
    return EXIT_OK if all(result.succeeded for result in results) else EXIT_RUN_FAILED
