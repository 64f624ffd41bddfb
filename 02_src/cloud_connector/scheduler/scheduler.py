"""PublishScheduler: paced publishing of a recorded trace."""

import asyncio
import json
from collections.abc import Mapping
from typing import Callable, Iterator

from ..connection import IConnectionManager
from ..errors import CloudConnectorError, ConfigError, DisconnectError, PublishError
from ..logging_config import get_logger
from ..models import TELEMETRY_TOPIC, DataPoint, RunResult, SchedulerState, Trace
from ..sources import load_trace

logger = get_logger(__name__)


def select_top_n_scalars(point: Mapping, n: int) -> DataPoint:
    """
    Project a data point onto its first ``n`` scalar signals.

    Array-valued signals are skipped and do not count toward ``n``.
    Input order is kept. ``n <= 0`` yields an empty mapping.
    """
    result: DataPoint = {}
    if n <= 0:
        return result
    for name, value in point.items():
        if isinstance(value, (list, tuple)):
            continue
        result[name] = value
        if len(result) == n:
            break
    return result


def publish_interval_ms(frequency_hz: float) -> int:
    """Tick interval for a publish frequency; the frequency must be positive."""
    if frequency_hz <= 0:
        raise ConfigError(f"Frequency must be positive, got: {frequency_hz}")
    return round(1000 / frequency_hz)


class PublishScheduler:
    """
    Publishes one data point per tick through a connection.

    Idle -> Connecting -> Running -> Draining -> Disconnected. Connect or
    load failures skip straight to Disconnected. Disconnect is attempted
    exactly once per run, whatever happened before.
    """

    def __init__(
        self,
        connection: IConnectionManager,
        trace_source: str,
        *,
        frequency_hz: float = 1.0,
        top_n: int = 0,
        topic: str = TELEMETRY_TOPIC,
        trace_loader: Callable[[str], Trace] = load_trace,
    ):
        self._interval_ms = publish_interval_ms(frequency_hz)
        self._connection = connection
        self._trace_source = trace_source
        self._top_n = top_n
        self._topic = topic
        self._trace_loader = trace_loader

        self._state = SchedulerState.IDLE
        self._trace_length = 0
        self._stop_requested = asyncio.Event()
        self._completed = asyncio.Event()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def device_name(self) -> str:
        return self._connection.device_name

    @property
    def connection(self) -> IConnectionManager:
        return self._connection

    @property
    def completed(self) -> asyncio.Event:
        """Set once, when the trace is exhausted or the run was stopped."""
        return self._completed

    def stop(self) -> None:
        """Stop scheduling further ticks; the run then disconnects and returns."""
        if not self._stop_requested.is_set():
            logger.info("Stop requested for %s", self.device_name)
        self._stop_requested.set()

    async def run(self) -> RunResult:
        """Run the whole publish lifecycle once and report the outcome."""
        if self._state is not SchedulerState.IDLE:
            raise RuntimeError("A PublishScheduler runs only once")

        error: BaseException | None = None
        try:
            logger.info("Load automotive traces %s", self._trace_source)
            trace = self._trace_loader(self._trace_source)
            self._trace_length = len(trace)

            self._set_state(SchedulerState.CONNECTING)
            logger.info(
                "Connect %s to aicas EDG %s", self.device_name, self._connection.server_uri
            )
            await asyncio.to_thread(self._connection.connect)

            self._set_state(SchedulerState.RUNNING)
            logger.info(
                "Sending data to aicas EDG at interval %d ms",
                self._interval_ms,
                extra={"context": {"device": self.device_name, "top_n": self._top_n}},
            )
            await self._publish_loop(iter(trace))
        except CloudConnectorError as e:
            error = e
            logger.error("Publish run for %s failed: %s", self.device_name, e)
        except Exception as e:
            error = e
            logger.exception("Publish run for %s failed unexpectedly", self.device_name)
        finally:
            self._completed.set()
            await self._disconnect()

        return self._result(error)

    async def _publish_loop(self, points: Iterator[DataPoint]) -> None:
        loop = asyncio.get_running_loop()
        interval = self._interval_ms / 1000
        next_tick = loop.time()

        while not self._stop_requested.is_set():
            point = next(points, None)
            if point is None:
                self._set_state(SchedulerState.DRAINING)
                logger.info("Trace exhausted for %s", self.device_name)
                self._completed.set()
                return

            self._publish_point(point)

            # fixed-rate: ticks are scheduled from the previous deadline, no catch-up bursts
            next_tick = max(next_tick + interval, loop.time())
            try:
                await asyncio.wait_for(
                    self._stop_requested.wait(), timeout=next_tick - loop.time()
                )
            except asyncio.TimeoutError:
                pass

    def _publish_point(self, point: DataPoint) -> None:
        try:
            if self._top_n > 0:
                point = select_top_n_scalars(point, self._top_n)
            payload = json.dumps(point)
            logger.debug("%s publishes a message %s", self.device_name, payload)
            self._connection.publish(self._topic, payload)
        except PublishError as e:
            logger.warning("Failed to publish message, continuing with next data point: %s", e)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize data point, skipping it: %s", e)

    async def _disconnect(self) -> None:
        self._set_state(SchedulerState.DISCONNECTED)
        try:
            logger.info("Disconnect MQTT connection of %s", self.device_name)
            await asyncio.to_thread(self._connection.disconnect)
        except (DisconnectError, OSError, RuntimeError) as e:
            logger.warning("Failed to disconnect %s cleanly: %s", self.device_name, e)

    def _set_state(self, state: SchedulerState) -> None:
        logger.debug("%s: %s -> %s", self.device_name, self._state.value, state.value)
        self._state = state

    def _result(self, error: BaseException | None) -> RunResult:
        return RunResult(
            device_name=self.device_name,
            state=self._state,
            metrics=self._connection.metrics(),
            trace_length=self._trace_length,
            error=str(error) if error is not None else None,
        )
