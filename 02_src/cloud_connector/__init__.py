"""Cloud connector module."""

from .app import Application, IApplication
from .config import ApplicationConfig, ConnectorSettings, DeviceConfig
from .connection import ConnectionManager, DeliveryTracker, IConnectionManager, IDeliveryTracker
from .errors import (
    CloudConnectorError,
    ConfigError,
    ConnectError,
    ConnectRefusedError,
    ConnectTimeoutError,
    DisconnectError,
    LoadError,
    PublishError,
    TlsSetupError,
)
from .models import (
    TELEMETRY_TOPIC,
    DataPoint,
    DeliveryMetrics,
    ResourceSample,
    ResourceSummary,
    RunResult,
    SchedulerState,
    TlsConfig,
    Trace,
)
from .monitoring import ResourceSampler
from .scheduler import PublishScheduler, select_top_n_scalars

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Configuration
    "ConnectorSettings",
    "ApplicationConfig",
    "DeviceConfig",
    # Models
    "TELEMETRY_TOPIC",
    "DataPoint",
    "Trace",
    "TlsConfig",
    "DeliveryMetrics",
    "ResourceSample",
    "ResourceSummary",
    "RunResult",
    "SchedulerState",
    # Components
    "IConnectionManager",
    "ConnectionManager",
    "IDeliveryTracker",
    "DeliveryTracker",
    "PublishScheduler",
    "select_top_n_scalars",
    "ResourceSampler",
    # Errors
    "CloudConnectorError",
    "ConfigError",
    "LoadError",
    "ConnectError",
    "ConnectRefusedError",
    "ConnectTimeoutError",
    "TlsSetupError",
    "PublishError",
    "DisconnectError",
]
