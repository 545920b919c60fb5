"""Schemas for the recording provider's snapshot source listing."""
from typing import Any, List, Optional

from pydantic import BaseModel, field_validator

from reconstructor.constants import SnapshotOrigin


class SnapshotSource(BaseModel):
    """One fetchable chunk of a recording as advertised by the provider."""
    source: str
    start_timestamp: Optional[str] = None
    end_timestamp: Optional[str] = None
    blob_key: Optional[str] = None

    @field_validator("start_timestamp", "end_timestamp", "blob_key", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        # Providers have sent keys and bounds both as strings and as numbers
        if value is None:
            return None
        return str(value)

    @property
    def origin(self) -> str:
        """Snapshot generation this source belongs to."""
        return self.source


class SnapshotListResponse(BaseModel):
    """Response of the provider's list-sources call."""
    sources: List[SnapshotSource] = []

    @field_validator("sources", mode="before")
    @classmethod
    def _known_sources_only(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [
            item for item in value
            if isinstance(item, dict) and item.get("source") in SnapshotOrigin.ALL
        ]
