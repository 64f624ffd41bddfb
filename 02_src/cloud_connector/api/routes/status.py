"""Status API routes."""

from fastapi import APIRouter
from pydantic import BaseModel

from ...app import IApplication
from ...models import UNKNOWN_BYTES, SchedulerState

ACTIVE_STATES = (SchedulerState.CONNECTING, SchedulerState.RUNNING)


class HealthResponse(BaseModel):
    """Response model for health."""

    status: str
    running: bool


class DeviceStatusResponse(BaseModel):
    """Response model for one device's publish run."""

    device_name: str
    server_uri: str
    state: str
    published: int
    confirmed: int
    failed: int
    outstanding: int
    latency_samples: int
    average_latency_ms: float | None


class ResourceSummaryResponse(BaseModel):
    """Response model for resource averages."""

    sample_count: int
    avg_cpu_percent: float | None
    avg_used_heap_bytes: int | None
    heap_sample_count: int
    heap_source: str | None


def create_status_router(app: IApplication) -> APIRouter:
    """Create status router."""
    router = APIRouter(prefix="/api", tags=["status"])

    @router.get("/health", response_model=HealthResponse)
    async def health() -> dict:
        """Liveness plus whether any device is still publishing."""
        running = any(scheduler.state in ACTIVE_STATES for scheduler in app.schedulers)
        return {"status": "ok", "running": running}

    @router.get("/devices", response_model=list[DeviceStatusResponse])
    async def devices() -> list[dict]:
        """Delivery counters per device."""
        result = []
        for scheduler in app.schedulers:
            metrics = scheduler.connection.metrics()
            result.append(
                {
                    "device_name": scheduler.device_name,
                    "server_uri": scheduler.connection.server_uri,
                    "state": scheduler.state.value,
                    "published": metrics.published,
                    "confirmed": metrics.confirmed,
                    "failed": metrics.failed,
                    "outstanding": metrics.outstanding,
                    "latency_samples": metrics.latency_samples,
                    "average_latency_ms": metrics.average_latency_ms,
                }
            )
        return result

    @router.get("/resources", response_model=ResourceSummaryResponse)
    async def resources() -> dict:
        """Running resource averages."""
        summary = app.sampler.summary()
        return {
            "sample_count": summary.sample_count if summary else 0,
            "avg_cpu_percent": summary.avg_cpu_percent if summary else None,
            "avg_used_heap_bytes": (
                summary.avg_used_heap_bytes
                if summary and summary.avg_used_heap_bytes != UNKNOWN_BYTES
                else None
            ),
            "heap_sample_count": summary.heap_sample_count if summary else 0,
            "heap_source": app.sampler.heap_source,
        }

    return router
