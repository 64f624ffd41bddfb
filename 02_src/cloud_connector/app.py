"""Application bootstrap and lifecycle management."""

import asyncio
from typing import Callable, Protocol, Sequence

from .config import ConnectorSettings
from .connection import ConnectionManager, IConnectionManager
from .logging_config import get_logger
from .models import RunResult
from .monitoring import ResourceSampler
from .scheduler import PublishScheduler

logger = get_logger(__name__)

ConnectionFactory = Callable[[ConnectorSettings], IConnectionManager]


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Create one publish run per device and start them."""
        ...

    async def stop(self) -> None:
        """Stop all runs and log the resource summary."""
        ...

    @property
    def schedulers(self) -> list[PublishScheduler]:
        """Publish schedulers, one per device."""
        ...

    @property
    def sampler(self) -> ResourceSampler:
        """Resource sampler shared by all devices."""
        ...


class Application:
    """Runs one PublishScheduler per configured device."""

    def __init__(
        self,
        settings: Sequence[ConnectorSettings],
        *,
        sampler: ResourceSampler | None = None,
        connection_factory: ConnectionFactory = ConnectionManager.from_settings,
        sample_interval: float = 0.0,
    ):
        if not settings:
            raise ValueError("At least one device configuration is required")
        self._settings = list(settings)
        self._sampler = sampler or ResourceSampler()
        self._connection_factory = connection_factory
        self._sample_interval = sample_interval

        # Components (will be initialized in start())
        self._schedulers: list[PublishScheduler] = []
        self._tasks: list[asyncio.Task] = []
        self._sampling_task: asyncio.Task | None = None
        self._results: list[RunResult] | None = None
        self._stopped = False
        self._stop_requested = False

    @property
    def schedulers(self) -> list[PublishScheduler]:
        return list(self._schedulers)

    @property
    def sampler(self) -> ResourceSampler:
        return self._sampler

    @property
    def stop_requested(self) -> bool:
        """True once request_stop() was called, e.g. by a signal handler."""
        return self._stop_requested

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Create one publish run per device and start them."""
        if self._tasks:
            raise RuntimeError("Application already started")
        logger.info("Starting cloud connector for %d device(s)", len(self._settings))
        self._sampler.sample("before publishing")

        for settings in self._settings:
            scheduler = PublishScheduler(
                self._connection_factory(settings),
                settings.trace,
                frequency_hz=settings.frequency_hz,
                top_n=settings.top_n,
            )
            self._schedulers.append(scheduler)
            self._tasks.append(
                asyncio.create_task(scheduler.run(), name=f"publish-{settings.device_name}")
            )

        if self._sample_interval > 0:
            self._sampling_task = asyncio.create_task(
                self._sample_periodically(), name="resource-sampler"
            )

    async def wait(self) -> list[RunResult]:
        """Wait for every publish run to finish."""
        if self._results is None:
            self._results = list(await asyncio.gather(*self._tasks))
        return self._results

    def request_stop(self) -> None:
        """Ask every scheduler to stop after its current tick."""
        if not self._stop_requested:
            logger.info("Stop requested")
        self._stop_requested = True
        self._stop_schedulers()

    def _stop_schedulers(self) -> None:
        for scheduler in self._schedulers:
            scheduler.stop()

    async def stop(self) -> None:
        """Stop all runs and log the resource summary."""
        if self._stopped:
            return
        self._stopped = True

        self._stop_schedulers()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._sampling_task:
            self._sampling_task.cancel()
            try:
                await self._sampling_task
            except asyncio.CancelledError:
                pass

        self._sampler.sample("after publishing")
        self._sampler.log_summary()
        for scheduler in self._schedulers:
            metrics = scheduler.connection.metrics()
            logger.info(
                "%s published %d, confirmed %d, failed %d",
                scheduler.device_name,
                metrics.published,
                metrics.confirmed,
                metrics.failed,
                extra={"context": {"device": scheduler.device_name, **metrics.to_dict()}},
            )

    async def run(self) -> list[RunResult]:
        """Start, wait for all runs to complete, stop."""
        await self.start()
        try:
            return await self.wait()
        finally:
            await self.stop()

    async def _sample_periodically(self) -> None:
        count = 0
        while True:
            await asyncio.sleep(self._sample_interval)
            count += 1
            self._sampler.sample(f"periodic #{count}")
