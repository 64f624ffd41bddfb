"""ConnectionManager: broker session lifecycle and delivery tracking."""

import ssl
import threading
import uuid
from typing import Callable, Protocol

import paho.mqtt.client as mqtt

from ..config import ConnectorSettings, is_anonymous_broker, parse_server_uri
from ..errors import (
    ConnectError,
    ConnectRefusedError,
    ConnectTimeoutError,
    DisconnectError,
    PublishError,
)
from ..logging_config import get_logger
from ..models import DeliveryMetrics, TlsConfig
from .tls import build_tls_context
from .tracker import DeliveryTracker, IDeliveryTracker

logger = get_logger(__name__)

CONNECT_TIMEOUT_SECONDS = 60.0
KEEPALIVE_SECONDS = 60
RECONNECT_MIN_DELAY_SECONDS = 1
RECONNECT_MAX_DELAY_SECONDS = 120
PUBLISH_QOS = 1  # at least once

ClientFactory = Callable[[str], mqtt.Client]


def generate_client_id() -> str:
    """Fresh client identity for each session."""
    return f"cloud-connector-{uuid.uuid4().hex[:12]}"


def create_paho_client(client_id: str) -> mqtt.Client:
    """Create an MQTT 3.1.1 paho client using the version 2 callback API."""
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
        clean_session=True,
    )


class IConnectionManager(Protocol):
    """Broker session owned by one device."""

    @property
    def device_name(self) -> str:
        """Device identity."""
        ...

    @property
    def server_uri(self) -> str:
        """Broker URI."""
        ...

    def connect(self) -> None:
        """Open the session; blocks until the broker accepts or rejects it."""
        ...

    def publish(self, topic: str, payload: str | bytes) -> None:
        """Submit a message at QoS 1 without waiting for its confirmation."""
        ...

    def disconnect(self) -> None:
        """Close the session; no-op when not connected."""
        ...

    def metrics(self) -> DeliveryMetrics:
        """Snapshot of the delivery counters."""
        ...


class ConnectionManager:
    """Owns one paho client, its TLS trust and the delivery tracker."""

    def __init__(
        self,
        server_uri: str,
        device_name: str,
        credential: str | None = None,
        tls: TlsConfig | None = None,
        *,
        client_factory: ClientFactory = create_paho_client,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        keepalive: int = KEEPALIVE_SECONDS,
        tracker: IDeliveryTracker | None = None,
    ):
        self._scheme, self._host, self._port = parse_server_uri(server_uri)
        self._server_uri = server_uri
        self._device_name = device_name
        self._credential = credential
        self._tls = tls
        self._client_factory = client_factory
        self._connect_timeout = connect_timeout
        self._keepalive = keepalive
        self._tracker: IDeliveryTracker = tracker if tracker is not None else DeliveryTracker()

        self._client: mqtt.Client | None = None
        self._connack = threading.Event()
        self._connack_reason = None
        self._disconnected = threading.Event()
        self._disconnecting = False
        self._sessions = 0

    @classmethod
    def from_settings(cls, settings: ConnectorSettings, **kwargs) -> "ConnectionManager":
        """Build a manager for one validated device configuration."""
        return cls(
            settings.server_uri,
            settings.device_name,
            settings.device_token,
            settings.tls,
            **kwargs,
        )

    @property
    def device_name(self) -> str:
        return self._device_name

    @property
    def server_uri(self) -> str:
        return self._server_uri

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    @property
    def sends_credential(self) -> bool:
        """Whether the credential is sent; never for anonymous test brokers."""
        return self._credential is not None and not is_anonymous_broker(self._host)

    def connect(self) -> None:
        """
        Open the broker session.

        Blocks until CONNACK arrives or the connection timeout expires.
        After the initial handshake, paho reconnects automatically.

        Raises:
            TlsSetupError: The trust store could not be loaded.
            ConnectRefusedError: The broker rejected the session.
            ConnectTimeoutError: No answer within the connection timeout.
            ConnectError: The network connection could not be opened.
        """
        context = self._tls_context()

        client = self._client_factory(generate_client_id())
        client.enable_logger()
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_publish = self._on_publish
        if self.sends_credential:
            client.username_pw_set(self._credential)
        if context is not None:
            client.tls_set_context(context)
        client.reconnect_delay_set(
            min_delay=RECONNECT_MIN_DELAY_SECONDS, max_delay=RECONNECT_MAX_DELAY_SECONDS
        )
        client.connect_timeout = self._connect_timeout

        self._connack.clear()
        self._connack_reason = None
        self._disconnecting = False
        self._sessions = 0

        try:
            client.connect(self._host, self._port, keepalive=self._keepalive)
        except (OSError, ValueError) as e:
            logger.error("Failed to connect %s to %s: %s", self._device_name, self._server_uri, e)
            raise ConnectError(f"Cannot reach broker {self._server_uri}: {e}") from e

        client.loop_start()

        if not self._connack.wait(self._connect_timeout):
            self._abandon(client)
            logger.error(
                "Timed out connecting %s to %s after %.0f s",
                self._device_name,
                self._server_uri,
                self._connect_timeout,
            )
            raise ConnectTimeoutError(
                f"No answer from {self._server_uri} within {self._connect_timeout:.0f} s"
            )

        reason = self._connack_reason
        if reason is not None and reason.is_failure:
            self._abandon(client)
            logger.error(
                "Broker %s refused %s: %s", self._server_uri, self._device_name, reason
            )
            raise ConnectRefusedError(int(reason.value), str(reason))

        self._client = client
        logger.info(
            "Connected %s to %s",
            self._device_name,
            self._server_uri,
            extra={"context": {"device": self._device_name, "tls": context is not None}},
        )

    def publish(self, topic: str, payload: str | bytes) -> None:
        """
        Submit a message at QoS 1 and start tracking its delivery.

        Raises:
            PublishError: The client did not accept the message. Not retried.
        """
        client = self._client
        if client is None:
            self._tracker.record_failed()
            raise PublishError(topic, "not connected")

        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        submitted_at = self._tracker.now()
        try:
            info = client.publish(topic, data, qos=PUBLISH_QOS)
        except (OSError, ValueError, RuntimeError) as e:
            self._tracker.record_failed()
            raise PublishError(topic, e) from e

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._tracker.record_failed()
            raise PublishError(topic, mqtt.error_string(info.rc))

        latency_ms = self._tracker.record_submitted(info.mid, submitted_at)
        if latency_ms is not None:
            logger.debug("Message delivered id: %s in %.1f ms, before submit returned", info.mid, latency_ms)

    def disconnect(self) -> None:
        """
        Close the session and stop the network loop.

        No-op if never connected or already disconnected. Outstanding
        delivery trackers are discarded.

        Raises:
            DisconnectError: The broker session did not close cleanly.
        """
        client = self._client
        if client is None:
            return
        self._client = None
        self._disconnecting = True

        rc = mqtt.MQTT_ERR_SUCCESS
        try:
            if client.is_connected():
                self._disconnected.clear()
                rc = client.disconnect()
                if not self._disconnected.wait(self._connect_timeout):
                    logger.warning("No disconnect acknowledgement for %s", self._device_name)
            client.loop_stop()
        except (OSError, RuntimeError) as e:
            raise DisconnectError(f"Failed to disconnect {self._device_name}: {e}") from e
        finally:
            dropped = self._tracker.discard_outstanding()
            if dropped:
                logger.info("Discarded %d unconfirmed publish(es) of %s", dropped, self._device_name)

        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise DisconnectError(
                f"Failed to disconnect {self._device_name}: {mqtt.error_string(rc)}"
            )
        logger.info("%s disconnected from %s", self._device_name, self._server_uri)

    # ------------------------------------------------------------------
    # Readouts

    def metrics(self) -> DeliveryMetrics:
        return self._tracker.snapshot()

    @property
    def published_count(self) -> int:
        return self._tracker.snapshot().published

    @property
    def confirmed_count(self) -> int:
        return self._tracker.snapshot().confirmed

    @property
    def failed_count(self) -> int:
        return self._tracker.snapshot().failed

    @property
    def average_latency_ms(self) -> float | None:
        """Mean confirmation latency, None when nothing has been confirmed yet."""
        return self._tracker.snapshot().average_latency_ms

    @property
    def latency_sample_count(self) -> int:
        return self._tracker.snapshot().latency_samples

    # ------------------------------------------------------------------
    # paho callbacks, invoked on the client's network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        self._connack_reason = reason_code
        if not reason_code.is_failure:
            self._sessions += 1
            if self._sessions > 1:
                logger.info("%s reconnected to %s", self._device_name, self._server_uri)
        self._connack.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._disconnected.set()
        if self._disconnecting:
            return
        logger.error(
            "Connection lost for %s: %s", self._device_name, reason_code,
            extra={"context": {"device": self._device_name, "reason": str(reason_code)}},
        )

    def _on_message(self, client, userdata, message) -> None:
        logger.debug("Message arrived: %s", message.topic)

    def _on_publish(self, client, userdata, mid, reason_code, properties) -> None:
        latency_ms = self._tracker.record_confirmed(mid)
        if latency_ms is None:
            logger.debug("Delivery confirmed for message id %s ahead of its submission record", mid)
        else:
            logger.debug("Message delivered id: %s in %.1f ms", mid, latency_ms)

    # ------------------------------------------------------------------

    def _tls_context(self) -> ssl.SSLContext | None:
        if self._tls is not None:
            return build_tls_context(self._tls)
        if self._scheme == "ssl":
            # no trust store given: verify against the system CAs
            return ssl.create_default_context()
        return None

    def _abandon(self, client: mqtt.Client) -> None:
        """Stop a client whose initial handshake failed so it does not keep retrying."""
        self._disconnecting = True
        try:
            client.disconnect()
            client.loop_stop()
        except (OSError, RuntimeError) as e:
            logger.debug("Ignoring error while abandoning client: %s", e)
