"""Reconstruction job queue utilities."""
from typing import Any, Dict, Optional
from arq import create_pool
from reconstructor.workers.redis_config import redis_settings
from reconstructor.utils.logger import logger


async def queue_reconstruction(payload: Dict[str, Any]) -> Optional[str]:
    """
    Queue a reconstruction job for a recording.

    Args:
        payload: ReconstructionRequest fields

    Returns:
        The job id if the job was queued, None otherwise
    """
    recording_id = payload.get("recordingExternalId")
    try:
        redis = await create_pool(redis_settings)
        try:
            job = await redis.enqueue_job("reconstruct_recording_events", payload)
        finally:
            await redis.close()
    except (OSError, ConnectionError) as e:
        logger.error(f"[WORKER] Failed to queue reconstruction for recording {recording_id}: {e}", exc_info=True)
        return None

    if job is None:
        logger.warning(f"[WORKER] Reconstruction for recording {recording_id} was not queued")
        return None
    return job.job_id
