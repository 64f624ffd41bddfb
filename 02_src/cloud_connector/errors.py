"""Error taxonomy for the cloud connector."""


class CloudConnectorError(Exception):
    """Base class for all connector errors."""


class ConfigError(CloudConnectorError):
    """Invalid configuration, detected before any network activity."""


class LoadError(CloudConnectorError):
    """Trace or configuration document missing or unparseable."""


class ConnectError(CloudConnectorError):
    """The broker session could not be established."""


class ConnectRefusedError(ConnectError):
    """The broker rejected the session."""

    def __init__(self, reason_code: int, reason: str = ""):
        self.reason_code = reason_code
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Broker refused connection (reason code {reason_code}){detail}")


class ConnectTimeoutError(ConnectError):
    """No CONNACK arrived within the connection timeout."""


class TlsSetupError(ConnectError):
    """The trust store could not be read or turned into a TLS context."""


class PublishError(CloudConnectorError):
    """A message could not be submitted to the client."""

    def __init__(self, topic: str, cause: object):
        self.topic = topic
        self.cause = cause
        super().__init__(f"Failed to submit message to {topic}: {cause}")


class DisconnectError(CloudConnectorError):
    """The broker session did not shut down cleanly."""
