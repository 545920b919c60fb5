"""Replay event reconstruction: list, fetch, assemble, write."""
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from reconstructor.config import settings
from reconstructor.constants import (
    SUPPORTED_SOURCE_TYPE,
    WORK_DIR_PREFIX,
    ReconstructionStage,
)
from reconstructor.schemas.reconstruction import ReconstructionRequest
from reconstructor.services.assembler import EventAssembler
from reconstructor.services.sources import SnapshotSourceRouter
from reconstructor.utils.exceptions import ReconstructionError, UnsupportedSourceError
from reconstructor.utils.logger import logger


@dataclass
class ReconstructionResult:
    """Result of a reconstruction."""
    events_file_path: str
    device_width: int = 0
    device_height: int = 0
    event_count: int = 0
    work_dir: Optional[str] = None


def create_work_dir(root: Optional[str] = None) -> str:
    """Create a fresh per-invocation working directory."""
    return tempfile.mkdtemp(prefix=WORK_DIR_PREFIX, dir=root or settings.reconstruction_work_root)


class ReplayReconstructor:
    """
    Rebuilds a recording's rrweb event stream from the provider's snapshot blobs.

    One instance may serve many invocations; nothing is shared between them
    except the optional injected HTTP client.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        assembler: Optional[EventAssembler] = None,
        retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self.client = client
        self.assembler = assembler or EventAssembler()
        self.retries = retries
        self.backoff_ms = backoff_ms
        self.batch_size = batch_size

    def _router(self, client: httpx.AsyncClient, params: ReconstructionRequest) -> SnapshotSourceRouter:
        return SnapshotSourceRouter(
            client,
            host=params.sourceHost,
            api_key=params.sourceApiKey,
            project_id=params.sourceProjectId,
            recording_id=params.recordingExternalId,
            retries=self.retries,
            backoff_ms=self.backoff_ms,
            batch_size=self.batch_size,
        )

    async def _fetch(self, params: ReconstructionRequest) -> list:
        if self.client is not None:
            return await self._router(self.client, params).plan_and_fetch()

        async with httpx.AsyncClient(timeout=settings.snapshot_request_timeout_seconds) as client:
            return await self._router(client, params).plan_and_fetch()

    async def reconstruct(
        self,
        params: ReconstructionRequest,
        work_dir: Optional[str] = None,
    ) -> ReconstructionResult:
        """
        Reconstruct one recording into an events file.

        Args:
            params: Provider credentials and recording identifier
            work_dir: Directory to write into; a fresh temp dir when omitted

        Returns:
            ReconstructionResult with the events file path and viewport

        Raises:
            ReconstructionError: If any stage fails
        """
        recording_id = params.recordingExternalId

        if params.sourceType != SUPPORTED_SOURCE_TYPE:
            raise UnsupportedSourceError(f"Unsupported source_type: {params.sourceType}")

        try:
            logger.info(f"[RECONSTRUCT] Starting reconstruction for recording {recording_id}")
            raw_records = await self._fetch(params)

            logger.info(f"[RECONSTRUCT] Assembling {len(raw_records)} snapshots")
            assembled = self.assembler.assemble(raw_records)
        except ReconstructionError as e:
            logger.error(f"[RECONSTRUCT] Recording {recording_id} failed at {e}")
            raise

        try:
            target_dir = work_dir or create_work_dir()
            path = self.assembler.write(assembled.events, target_dir, recording_id)
        except (OSError, ValueError) as e:
            logger.error(f"[RECONSTRUCT] Could not write events for recording {recording_id}: {e}")
            raise ReconstructionError(
                f"Could not write events file: {e}", stage=ReconstructionStage.WRITING
            ) from e

        logger.info(f"[RECONSTRUCT] Recording {recording_id}: {ReconstructionStage.DONE}")
        return ReconstructionResult(
            events_file_path=path,
            device_width=assembled.device_width,
            device_height=assembled.device_height,
            event_count=len(assembled.events),
            work_dir=target_dir,
        )


async def reconstruct_events(params: Dict[str, Any], work_dir: Optional[str] = None) -> ReconstructionResult:
    """Convenience wrapper taking the raw parameter dict."""
    request = ReconstructionRequest.model_validate(params)
    return await ReplayReconstructor().reconstruct(request, work_dir=work_dir)
