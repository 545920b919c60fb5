"""Custom exceptions and error handling utilities."""
from fastapi import HTTPException, status
from typing import Optional

from reconstructor.constants import ReconstructionStage


class AppException(Exception):
    """Base exception for application errors."""
    pass


class ReconstructionError(AppException):
    """
    Raised when a reconstruction cannot complete.

    Every reconstruction failure is fatal to the invocation. ``stage`` names the
    pipeline stage that failed so the calling job layer can report it.
    """

    stage = ReconstructionStage.FAILED
    retry_later = False

    def __init__(self, message: str, stage: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.stage}: {self.message}"


class UnsupportedSourceError(ReconstructionError):
    """Raised when a recording source other than PostHog is requested."""

    stage = ReconstructionStage.LISTING


class TransportError(ReconstructionError):
    """Raised when an HTTP call to the recording provider exhausts its retries."""

    stage = ReconstructionStage.FETCHING

    def __init__(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        body_excerpt: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message, stage=stage, detail=body_excerpt)
        self.url = url
        self.status_code = status_code
        self.body_excerpt = body_excerpt


class RecordingNotReadyError(ReconstructionError):
    """Raised when the provider lists no snapshot sources for a recording."""

    stage = ReconstructionStage.LISTING
    retry_later = True


class RealtimeOnlyError(ReconstructionError):
    """Raised when only the recent-buffer source is available."""

    stage = ReconstructionStage.LISTING
    retry_later = True


class SnapshotFetchError(ReconstructionError):
    """Raised when a snapshot batch cannot be fetched."""

    stage = ReconstructionStage.FETCHING


class NoUsableEventsError(ReconstructionError):
    """Raised when no replayable events survive parsing and filtering."""

    stage = ReconstructionStage.ASSEMBLING


def http_error_for(error: ReconstructionError) -> HTTPException:
    """
    Convert reconstruction errors to HTTP exceptions.

    Args:
        error: The reconstruction error

    Returns:
        HTTPException with appropriate status code
    """
    if isinstance(error, (RecordingNotReadyError, RealtimeOnlyError)):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(error, UnsupportedSourceError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, NoUsableEventsError):
        status_code = 422
    elif isinstance(error, (TransportError, SnapshotFetchError)):
        status_code = status.HTTP_502_BAD_GATEWAY
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return HTTPException(
        status_code=status_code,
        detail={
            "stage": error.stage,
            "message": error.message,
            "retry_later": error.retry_later,
        },
    )


def validation_error(message: str) -> HTTPException:
    """
    Create a standardized 400 validation error.

    Args:
        message: Validation error message

    Returns:
        HTTPException with 400 status
    """
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
