"""Schemas for reconstruction requests."""
from pydantic import BaseModel, Field
from typing import Optional

from reconstructor.constants import SUPPORTED_SOURCE_TYPE


class ReconstructionRequest(BaseModel):
    """Request schema for /api/reconstructions endpoints."""
    sourceHost: str = Field(..., description="Base URL of the recording provider API")
    sourceApiKey: str = Field(..., description="Bearer credential for the provider")
    sourceProjectId: str = Field(..., description="Provider-side project identifier")
    recordingExternalId: str = Field(..., description="Provider-side recording identifier")
    sourceType: str = Field(SUPPORTED_SOURCE_TYPE, description="Recording provider type")
    projectId: Optional[str] = Field(None, description="Project used to name the uploaded events file")
    sessionId: Optional[str] = Field(None, description="Session used to name the uploaded events file")


class ReconstructionResponse(BaseModel):
    """Response schema for a completed reconstruction."""
    success: bool
    eventsFilePath: str
    deviceWidth: int
    deviceHeight: int
    eventCount: int
    eventsUrl: Optional[str] = None


class QueuedReconstructionResponse(BaseModel):
    """Response schema for /api/reconstructions/queue endpoint."""
    success: bool
    message: str
    job_id: Optional[str] = None
