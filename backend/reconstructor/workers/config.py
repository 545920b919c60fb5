"""ARQ worker configuration."""
from arq.cron import cron

from reconstructor.services.reconstructor import ReplayReconstructor
from reconstructor.services.storage import get_storage_service
from reconstructor.utils.logger import logger
from reconstructor.workers.redis_config import redis_settings
from reconstructor.workers.tasks import cleanup_stale_work_dirs, reconstruct_recording_events


async def startup(ctx):
    """Build the services shared by every job on this worker."""
    ctx["reconstructor"] = ReplayReconstructor()
    ctx["storage"] = get_storage_service()
    logger.info(
        f"[WORKER] Reconstruction worker ready "
        f"(events upload {'enabled' if ctx['storage'] else 'disabled'})"
    )


async def shutdown(ctx):
    """Worker shutdown hook."""
    logger.info("[WORKER] Reconstruction worker shutting down")


class WorkerSettings:
    """ARQ worker settings."""

    functions = [
        reconstruct_recording_events,
        cleanup_stale_work_dirs,
    ]

    cron_jobs = [
        cron(cleanup_stale_work_dirs, minute={0, 30}),
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = redis_settings

    max_jobs = 5
    job_timeout = 600  # seconds; a long recording can need dozens of batches
    keep_result = 3600
    # Failures are returned in the job result with their stage; the caller decides on retries
    retry_jobs = False
