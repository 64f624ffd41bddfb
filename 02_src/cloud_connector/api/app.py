"""FastAPI status application and its background server."""

import threading

import uvicorn
from fastapi import FastAPI

from ..app import IApplication
from ..logging_config import get_logger
from .routes import status

logger = get_logger(__name__)


def create_fastapi_app(application: IApplication) -> FastAPI:
    """Create and configure the read-only status API."""
    fastapi_app = FastAPI(
        title="Cloud Connector Status API",
        description="Delivery and resource readouts of a running cloud connector",
        version="0.1.0",
    )
    fastapi_app.include_router(status.create_status_router(application))
    return fastapi_app


class StatusServer:
    """Serves the status API from a daemon thread next to the publish loop."""

    def __init__(self, application: IApplication, host: str = "127.0.0.1", port: int = 8080):
        config = uvicorn.Config(
            create_fastapi_app(application),
            host=host,
            port=port,
            log_level="warning",
        )
        self._server = uvicorn.Server(config)
        self._thread: threading.Thread | None = None
        self._address = f"http://{host}:{port}"

    def start(self) -> None:
        """Start serving; signal handling stays with the main thread."""
        self._thread = threading.Thread(
            target=self._server.run, name="status-api", daemon=True
        )
        self._thread.start()
        logger.info("Status API listening on %s", self._address)

    def stop(self, timeout: float = 5.0) -> None:
        """Ask uvicorn to exit and wait for the thread."""
        if self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout)
        self._thread = None
