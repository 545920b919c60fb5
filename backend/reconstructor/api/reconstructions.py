"""Reconstruction endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status

from reconstructor.schemas.reconstruction import (
    QueuedReconstructionResponse,
    ReconstructionRequest,
    ReconstructionResponse,
)
from reconstructor.services.reconstructor import ReplayReconstructor
from reconstructor.utils.exceptions import ReconstructionError, http_error_for, validation_error
from reconstructor.utils.job_queue import queue_reconstruction
from reconstructor.utils.logger import logger

router = APIRouter(prefix="/api", tags=["reconstructions"])


def get_reconstructor() -> ReplayReconstructor:
    """Reconstructor used by the synchronous endpoint."""
    return ReplayReconstructor()


@router.post("/reconstructions", response_model=ReconstructionResponse)
async def create_reconstruction(
    request: ReconstructionRequest,
    reconstructor: ReplayReconstructor = Depends(get_reconstructor),
) -> ReconstructionResponse:
    """
    Reconstruct a recording's event stream and return the events file location.

    The file stays on this host; the caller owns it and is responsible for
    deleting it.
    """
    if not request.recordingExternalId.strip():
        raise validation_error("recordingExternalId must not be empty")

    try:
        result = await reconstructor.reconstruct(request)
    except ReconstructionError as e:
        logger.error(f"Reconstruction failed for recording {request.recordingExternalId}: {e}")
        raise http_error_for(e) from e

    return ReconstructionResponse(
        success=True,
        eventsFilePath=result.events_file_path,
        deviceWidth=result.device_width,
        deviceHeight=result.device_height,
        eventCount=result.event_count,
    )


@router.post("/reconstructions/queue", response_model=QueuedReconstructionResponse)
async def queue_reconstruction_job(request: ReconstructionRequest) -> QueuedReconstructionResponse:
    """Queue a reconstruction on the background worker."""
    job_id = await queue_reconstruction(request.model_dump())
    if job_id is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to queue reconstruction",
        )

    return QueuedReconstructionResponse(
        success=True,
        message="Reconstruction queued",
        job_id=job_id,
    )
