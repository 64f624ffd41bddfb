"""Delivery tracking: outstanding publishes and confirmation metrics."""

import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Protocol

from ..logging_config import get_logger
from ..models import DeliveryMetrics

logger = get_logger(__name__)

# Confirmations that overtook their submission record; oldest dropped first
MAX_EARLY_CONFIRMATIONS = 256


class IDeliveryTracker(Protocol):
    """Correlates submitted publishes with their delivery confirmations."""

    def now(self) -> int:
        """Current time on the tracker's clock, in nanoseconds."""
        ...

    def record_submitted(self, token: int, submitted_at_ns: int) -> float | None:
        """Count a publish; return its latency in ms if already confirmed."""
        ...

    def record_failed(self) -> None:
        """Count a publish that could not be submitted."""
        ...

    def record_confirmed(self, token: int) -> float | None:
        """Count a confirmation; return its latency in ms if the submission is known."""
        ...

    def discard_outstanding(self) -> int:
        """Drop all in-flight entries, returning how many were dropped."""
        ...

    def snapshot(self) -> DeliveryMetrics:
        """Current counters."""
        ...


class DeliveryTracker:
    """
    Outstanding-publish table plus monotonically increasing counters.

    Written from two threads: the publishing thread (record_submitted,
    record_failed) and the MQTT network thread (record_confirmed). The
    confirmation for a token can arrive before its submission is recorded;
    it is then parked with its confirmation time and the latency is booked
    by record_submitted. All state is guarded by one lock, which is never
    held while calling into the MQTT client.
    """

    def __init__(
        self,
        clock: Callable[[], int] = time.monotonic_ns,
        max_early_confirmations: int = MAX_EARLY_CONFIRMATIONS,
    ):
        self._clock = clock
        self._max_early = max_early_confirmations
        self._outstanding: dict[int, int] = {}
        self._early: OrderedDict[int, int] = OrderedDict()
        self._lock = Lock()
        self._published = 0
        self._confirmed = 0
        self._failed = 0
        self._latency_total_ms = 0.0
        self._latency_samples = 0

    def now(self) -> int:
        """Current time on the tracker's clock, in nanoseconds."""
        return self._clock()

    def record_submitted(self, token: int, submitted_at_ns: int) -> float | None:
        """
        Count a publish and track it until confirmed.

        Returns the latency in ms when the confirmation already arrived,
        otherwise None.
        """
        with self._lock:
            self._published += 1
            confirmed_at = self._early.pop(token, None)
            if confirmed_at is not None:
                latency_ms = max(0, confirmed_at - submitted_at_ns) / 1_000_000
                self._add_latency(latency_ms)
                return latency_ms

            if token in self._outstanding:
                # message ids wrap around; an old entry for the same id was never confirmed
                logger.debug("Replacing stale outstanding entry for token %s", token)
            self._outstanding[token] = submitted_at_ns
            return None

    def record_failed(self) -> None:
        """Count a publish that could not be submitted."""
        with self._lock:
            self._failed += 1

    def record_confirmed(self, token: int) -> float | None:
        """Count a confirmation; return its latency in ms if the submission is known."""
        confirmed_at = self._clock()
        with self._lock:
            self._confirmed += 1
            submitted_at = self._outstanding.pop(token, None)
            if submitted_at is None:
                self._park(token, confirmed_at)
                return None

            latency_ms = max(0, confirmed_at - submitted_at) / 1_000_000
            self._add_latency(latency_ms)
            return latency_ms

    def discard_outstanding(self) -> int:
        """Drop all in-flight entries, returning how many were dropped."""
        with self._lock:
            dropped = len(self._outstanding)
            self._outstanding.clear()
            self._early.clear()
            return dropped

    @property
    def outstanding_count(self) -> int:
        with self._lock:
            return len(self._outstanding)

    @property
    def early_confirmation_count(self) -> int:
        with self._lock:
            return len(self._early)

    def snapshot(self) -> DeliveryMetrics:
        """Current counters."""
        with self._lock:
            return DeliveryMetrics(
                published=self._published,
                confirmed=self._confirmed,
                failed=self._failed,
                outstanding=len(self._outstanding),
                latency_total_ms=self._latency_total_ms,
                latency_samples=self._latency_samples,
            )

    def _add_latency(self, latency_ms: float) -> None:
        self._latency_total_ms += latency_ms
        self._latency_samples += 1

    def _park(self, token: int, confirmed_at: int) -> None:
        self._early[token] = confirmed_at
        self._early.move_to_end(token)
        while len(self._early) > self._max_early:
            self._early.popitem(last=False)
