"""ARQ background tasks for replay event reconstruction."""
import os
import shutil
import tempfile
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from reconstructor.config import settings
from reconstructor.constants import WORK_DIR_PREFIX
from reconstructor.schemas.reconstruction import ReconstructionRequest
from reconstructor.services.reconstructor import ReplayReconstructor
from reconstructor.services.storage import get_storage_service
from reconstructor.utils.exceptions import ReconstructionError
from reconstructor.utils.logger import logger


async def reconstruct_recording_events(ctx: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reconstruct the event stream of one recording.

    Args:
        ctx: ARQ context
        payload: ReconstructionRequest fields

    Returns:
        Dict with success status and details
    """
    try:
        request = ReconstructionRequest.model_validate(payload)
    except ValidationError as e:
        logger.error(f"[WORKER] Invalid reconstruction payload: {e}")
        return {"success": False, "error": f"Invalid payload: {e}", "stage": None, "retry_later": False}

    recording_id = request.recordingExternalId
    reconstructor = ctx.get("reconstructor") or ReplayReconstructor()

    try:
        result = await reconstructor.reconstruct(request)
    except ReconstructionError as e:
        logger.error(f"[WORKER] Reconstruction failed for recording {recording_id}: {e}")
        return {
            "success": False,
            "error": e.message,
            "stage": e.stage,
            "retry_later": e.retry_later,
        }

    response = {
        "success": True,
        "recording_id": recording_id,
        "events_file_path": result.events_file_path,
        "device_width": result.device_width,
        "device_height": result.device_height,
        "event_count": result.event_count,
    }

    storage = ctx.get("storage") or get_storage_service()
    if storage and request.projectId and request.sessionId:
        upload = await storage.upload_events(result.events_file_path, request.projectId, request.sessionId)
        if upload.success:
            response["events_url"] = upload.url
        else:
            # The local events file is still usable by the renderer
            logger.warning(f"[WORKER] Events upload failed for recording {recording_id}: {upload.error}")

    logger.info(
        f"[WORKER] Recording {recording_id} reconstructed: {result.event_count} events, "
        f"{result.device_width}x{result.device_height}"
    )
    return response


def find_stale_work_dirs(root: str, max_age_minutes: int, now: Optional[float] = None) -> List[str]:
    """
    List reconstruction work directories older than the given age.

    Args:
        root: Directory holding the work directories
        max_age_minutes: Age threshold
        now: Current epoch seconds (defaults to time.time())

    Returns:
        Paths of stale work directories
    """
    if not os.path.isdir(root):
        return []

    threshold = (now if now is not None else time.time()) - max_age_minutes * 60
    stale = []
    for name in os.listdir(root):
        path = os.path.join(root, name)
        if name.startswith(WORK_DIR_PREFIX) and os.path.isdir(path) and os.path.getmtime(path) < threshold:
            stale.append(path)
    return stale


async def cleanup_stale_work_dirs(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    Delete work directories the downstream renderer never cleaned up.

    Returns:
        Dict with count of directories removed
    """
    root = settings.reconstruction_work_root or tempfile.gettempdir()
    stale = find_stale_work_dirs(root, settings.work_dir_max_age_minutes)

    for path in stale:
        shutil.rmtree(path, ignore_errors=True)

    if stale:
        logger.info(f"[WORKER] Removed {len(stale)} stale work directories from {root}")
    return {"success": True, "removed": len(stale)}
