"""Pydantic schemas for request/response validation."""
from reconstructor.schemas.snapshot import SnapshotSource, SnapshotListResponse
from reconstructor.schemas.reconstruction import (
    ReconstructionRequest,
    ReconstructionResponse,
    QueuedReconstructionResponse,
)

__all__ = [
    "SnapshotSource",
    "SnapshotListResponse",
    "ReconstructionRequest",
    "ReconstructionResponse",
    "QueuedReconstructionResponse",
]
