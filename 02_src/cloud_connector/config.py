"""Project-level configuration, settings validation and path helpers."""

import os
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .models import TlsConfig

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_LOG_PATH = LOGS_DIR / "cloud-connector.log"
DEFAULT_ENV_PATH = PROJECT_ROOT / ".env"

DEFAULT_SERVER_URI = "tcp://demo-jamaicaedg.aicas.com:1883"
DEFAULT_DEVICE_NAME = "Tristan-CloudConnector-Demo-Device"
DEFAULT_TRACE = "automotive-trace.json"
DEFAULT_FREQUENCY_HZ = 1.0

SUPPORTED_SCHEMES = ("tcp", "ssl")

# Public brokers that accept anonymous sessions; no credential is sent to them.
ANONYMOUS_TEST_BROKERS = frozenset(
    {
        "test.mosquitto.org",
        "broker.hivemq.com",
        "broker.emqx.io",
        "mqtt.eclipseprojects.io",
    }
)

# Environment variable -> ConnectorSettings field
ENV_FIELDS = {
    "EDG_SERVER_URI": "server_uri",
    "EDG_DEVICE_NAME": "device_name",
    "EDG_DEVICE_TOKEN": "device_token",
    "EDG_TRUSTSTORE_PATH": "trust_store_path",
    "EDG_TRUSTSTORE_PASSWORD": "trust_store_password",
    "EDG_FREQUENCY": "frequency_hz",
    "EDG_TOP_N": "top_n",
    "EDG_TRACE": "trace",
}


def parse_server_uri(uri: str) -> tuple[str, str, int]:
    """Split a broker URI into (scheme, host, port), raising ConfigError if malformed."""
    try:
        parts = urlsplit(uri)
        port = parts.port
    except ValueError as e:
        raise ConfigError(f"Malformed broker URI {uri!r}: {e}") from e

    if parts.scheme not in SUPPORTED_SCHEMES:
        raise ConfigError(
            f"Unsupported broker URI scheme {parts.scheme!r} in {uri!r}, "
            f"expected one of {', '.join(SUPPORTED_SCHEMES)}"
        )
    if not parts.hostname or port is None:
        raise ConfigError(f"Broker URI {uri!r} must have the form scheme://host:port")
    return parts.scheme, parts.hostname, port


def is_anonymous_broker(host: str) -> bool:
    """Whether the host is a known public test broker that takes no credential."""
    return host.lower() in ANONYMOUS_TEST_BROKERS


class ConnectorSettings(BaseModel):
    """Validated settings for one device connection."""

    model_config = ConfigDict(frozen=True)

    server_uri: str = DEFAULT_SERVER_URI
    device_name: str = Field(DEFAULT_DEVICE_NAME, min_length=1)
    device_token: str | None = None
    trust_store_path: str | None = None
    trust_store_password: str | None = None
    frequency_hz: float = DEFAULT_FREQUENCY_HZ
    top_n: int = 0
    trace: str = DEFAULT_TRACE

    @field_validator("server_uri")
    @classmethod
    def _check_server_uri(cls, value: str) -> str:
        try:
            parse_server_uri(value)
        except ConfigError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("frequency_hz")
    @classmethod
    def _check_frequency(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"Frequency must be positive, got: {value}")
        return value

    @field_validator("top_n")
    @classmethod
    def _check_top_n(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"top-N must be >= 0, got: {value}")
        return value

    @field_validator("device_token", "trust_store_path", "trust_store_password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_credentials(self) -> "ConnectorSettings":
        if (self.trust_store_path is None) != (self.trust_store_password is None):
            raise ValueError("Trust store path and password must be given together")
        if self.device_token is None and not is_anonymous_broker(self.host):
            raise ValueError(f"A device token is required for broker {self.host}")
        return self

    @property
    def scheme(self) -> str:
        return parse_server_uri(self.server_uri)[0]

    @property
    def host(self) -> str:
        return parse_server_uri(self.server_uri)[1]

    @property
    def port(self) -> int:
        return parse_server_uri(self.server_uri)[2]

    @property
    def tls(self) -> TlsConfig | None:
        """Trust store configuration, or None when TLS trust is not configured."""
        if self.trust_store_path is None or self.trust_store_password is None:
            return None
        return TlsConfig(
            trust_store_path=self.trust_store_path,
            trust_store_password=self.trust_store_password,
        )


class DeviceConfig(BaseModel):
    """One device entry of a multi-device configuration document."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    token: str | None = None
    trace: str = DEFAULT_TRACE
    delay: int = Field(1000, gt=0)  # milliseconds between publishes
    top_n: int = Field(0, ge=0, alias="topN")


class ApplicationConfig(BaseModel):
    """Multi-device configuration document."""

    model_config = ConfigDict(populate_by_name=True)

    edg_server_uri: str | None = Field(None, alias="edg.server.uri")
    device_configs: list[DeviceConfig] = Field(default_factory=list, alias="deviceConfigs")

    def device_settings(self, *base_layers: Mapping[str, Any] | None) -> list[ConnectorSettings]:
        """Per-device settings; document values win over the base layers."""
        return [
            build_settings(
                *base_layers,
                {
                    "server_uri": self.edg_server_uri,
                    "device_name": device.name,
                    "device_token": device.token,
                    "trace": device.trace,
                    "frequency_hz": 1000.0 / device.delay,
                    "top_n": device.top_n,
                },
            )
            for device in self.device_configs
        ]


def build_settings(*layers: Mapping[str, Any] | None) -> ConnectorSettings:
    """Merge setting layers (later wins, None values skipped) and validate."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        merged.update({key: value for key, value in layer.items() if value is not None})

    try:
        return ConnectorSettings(**merged)
    except ValidationError as e:
        raise ConfigError(_describe_validation_error(e)) from e


def env_layer(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Settings fields taken from EDG_* environment variables."""
    environ = os.environ if environ is None else environ
    return {field: environ[name] for name, field in ENV_FIELDS.items() if name in environ}


def settings_from_env(
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConnectorSettings:
    """Build settings from EDG_* environment variables plus explicit overrides."""
    return build_settings(env_layer(environ), overrides)


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "settings"
        problems.append(f"{location}: {item['msg']}")
    return "Invalid configuration: " + "; ".join(problems)
