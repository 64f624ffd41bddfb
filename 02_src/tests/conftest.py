"""Pytest configuration and fixtures."""

import json
import sys
import threading
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cloud_connector.errors import PublishError  # noqa: E402
from cloud_connector.models import DeliveryMetrics  # noqa: E402

MQTT_ERR_SUCCESS = 0
MQTT_ERR_NO_CONN = 4


class FakeReasonCode:
    """Stand-in for paho's ReasonCode."""

    def __init__(self, value: int = 0, name: str = "Success"):
        self.value = value
        self.name = name

    @property
    def is_failure(self) -> bool:
        return self.value >= 0x80

    def __str__(self) -> str:
        return self.name


class FakePublishInfo:
    def __init__(self, rc: int, mid: int):
        self.rc = rc
        self.mid = mid


class FakeMqttClient:
    """
    In-memory paho client.

    CONNACK is delivered from loop_start() according to ``connack``:
    "accept", "refuse" or "silent" (never answers).

    PUBACK is delivered according to ``ack``: None (only through
    acknowledge()), "immediate" (inside publish(), before it returns) or
    "background" (from another thread; flushed before disconnecting).
    """

    def __init__(
        self,
        client_id: str,
        connack: str = "accept",
        connect_error: Exception | None = None,
        ack: str | None = None,
    ):
        self.client_id = client_id
        self.ack = ack
        self.connack = connack
        self.connect_error = connect_error
        self.publish_rc = MQTT_ERR_SUCCESS
        self.publish_error: Exception | None = None

        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.on_publish = None
        self.connect_timeout = None

        self.username = None
        self.tls_context = None
        self.logger_enabled = False
        self.reconnect_delays = None
        self.connect_args = None
        self.loop_started = False
        self.loop_stopped = False
        self.disconnect_calls = 0
        self.published: list[tuple[str, bytes, int, int]] = []
        self.pending_mids: list[int] = []
        self._connected = False
        self._next_mid = 1
        self._lock = threading.Lock()
        self._ack_threads: list[threading.Thread] = []

    def enable_logger(self, logger=None):
        self.logger_enabled = True

    def username_pw_set(self, username, password=None):
        self.username = username

    def tls_set_context(self, context=None):
        self.tls_context = context

    def reconnect_delay_set(self, min_delay=1, max_delay=120):
        self.reconnect_delays = (min_delay, max_delay)

    def connect(self, host, port=1883, keepalive=60):
        if self.connect_error is not None:
            raise self.connect_error
        self.connect_args = (host, port, keepalive)
        return MQTT_ERR_SUCCESS

    def loop_start(self):
        self.loop_started = True
        if self.connack == "accept":
            self._connected = True
            self.on_connect(self, None, {}, FakeReasonCode(0, "Success"), None)
        elif self.connack == "refuse":
            self.on_connect(self, None, {}, FakeReasonCode(135, "Not authorized"), None)

    def loop_stop(self):
        self.loop_stopped = True

    def is_connected(self):
        return self._connected

    def publish(self, topic, payload=None, qos=0, retain=False):
        if self.publish_error is not None:
            raise self.publish_error
        mid = self._next_mid
        self._next_mid += 1
        if self.publish_rc != MQTT_ERR_SUCCESS:
            return FakePublishInfo(self.publish_rc, mid)

        with self._lock:
            self.published.append((topic, payload, qos, mid))
            self.pending_mids.append(mid)
        if self.ack == "immediate":
            self.acknowledge(mid)
        elif self.ack == "background":
            thread = threading.Thread(target=self.acknowledge, args=(mid,))
            self._ack_threads.append(thread)
            thread.start()
        return FakePublishInfo(MQTT_ERR_SUCCESS, mid)

    def acknowledge(self, mid: int | None = None):
        """Deliver PUBACK for one pending message id, or all of them."""
        with self._lock:
            mids = [mid] if mid is not None else list(self.pending_mids)
            for item in mids:
                if item in self.pending_mids:
                    self.pending_mids.remove(item)
        for item in mids:
            self.on_publish(self, None, item, FakeReasonCode(0, "Success"), None)

    def drop_connection(self):
        self._connected = False
        self.on_disconnect(self, None, {}, FakeReasonCode(0x8D, "Keep alive timeout"), None)

    def disconnect(self):
        self.disconnect_calls += 1
        for thread in self._ack_threads:
            thread.join()
        was_connected = self._connected
        self._connected = False
        if was_connected:
            self.on_disconnect(self, None, {}, FakeReasonCode(0, "Normal disconnection"), None)
        return MQTT_ERR_SUCCESS


class FakeClientFactory:
    """Records every client a ConnectionManager creates."""

    def __init__(self, **client_kwargs):
        self.client_kwargs = client_kwargs
        self.clients: list[FakeMqttClient] = []

    def __call__(self, client_id: str) -> FakeMqttClient:
        client = FakeMqttClient(client_id, **self.client_kwargs)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeMqttClient:
        return self.clients[-1]


class FakeConnection:
    """IConnectionManager double for scheduler and application tests."""

    def __init__(
        self,
        device_name: str = "test-device",
        server_uri: str = "tcp://broker.example.com:1883",
        connect_error: Exception | None = None,
        failing_publishes: set[int] | None = None,
    ):
        self._device_name = device_name
        self._server_uri = server_uri
        self.connect_error = connect_error
        self.failing_publishes = failing_publishes or set()
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.publish_calls = 0
        self.messages: list[tuple[str, str]] = []
        self.failed = 0

    @property
    def device_name(self) -> str:
        return self._device_name

    @property
    def server_uri(self) -> str:
        return self._server_uri

    def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error

    def publish(self, topic: str, payload) -> None:
        index = self.publish_calls
        self.publish_calls += 1
        if index in self.failing_publishes:
            self.failed += 1
            raise PublishError(topic, "simulated failure")
        self.messages.append((topic, payload))

    def disconnect(self) -> None:
        self.disconnect_calls += 1

    def metrics(self) -> DeliveryMetrics:
        return DeliveryMetrics(
            published=len(self.messages),
            confirmed=len(self.messages),
            failed=self.failed,
            outstanding=0,
            latency_total_ms=0.0,
            latency_samples=0,
        )


class FakeCpuProbe:
    def __init__(self, values, name: str = "fake-cpu"):
        self.name = name
        self._values = list(values)
        self.calls = 0

    def read_cpu_percent(self):
        self.calls += 1
        if not self._values:
            return None
        return self._values.pop(0)


class FakeHeapProbe:
    def __init__(self, values, name: str = "fake-heap"):
        self.name = name
        self._values = list(values)

    def read_heap(self):
        if not self._values:
            return None
        if len(self._values) == 1:
            return self._values[0]
        return self._values.pop(0)


@pytest.fixture
def client_factory():
    """Factory producing fake paho clients that accept the session."""
    return FakeClientFactory()


@pytest.fixture
def fake_connection():
    """Connection double that records published payloads."""
    return FakeConnection()


@pytest.fixture
def sample_trace():
    """Three data points mixing scalar and array signals."""
    return [
        {"a": 1, "arr": [1, 2], "b": 2.5, "c": "x", "d": True},
        {"a": 2, "arr": [3, 4], "b": 3.5, "c": "y", "d": False},
        {"a": 3, "arr": [5, 6], "b": 4.5, "c": "z", "d": None},
    ]


@pytest.fixture
def trace_file(tmp_path, sample_trace):
    """Trace written to a local JSON file."""
    path = tmp_path / "trace.json"
    path.write_text(json.dumps(sample_trace), encoding="utf-8")
    return path


@pytest.fixture
def clean_env(monkeypatch):
    """Remove EDG_* variables so settings only come from the test."""
    from cloud_connector.config import ENV_FIELDS

    for name in (*ENV_FIELDS, "EDG_CONFIG", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
