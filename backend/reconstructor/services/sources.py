"""Snapshot source listing, generation selection and batched fetching."""
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx

from reconstructor.config import settings
from reconstructor.constants import ReconstructionStage, SnapshotOrigin
from reconstructor.schemas.snapshot import SnapshotListResponse, SnapshotSource
from reconstructor.services.records import normalize_batch
from reconstructor.services.transport import fetch_json
from reconstructor.utils.exceptions import (
    RealtimeOnlyError,
    RecordingNotReadyError,
    SnapshotFetchError,
    TransportError,
)
from reconstructor.utils.logger import logger
from reconstructor.utils.parsing import parse_int_prefix


def auth_headers(api_key: str) -> Dict[str, str]:
    """Build the provider request headers."""
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": f"Bearer {api_key}",
    }


def snapshots_url(host: str, project_id: str, recording_id: str) -> str:
    """Base snapshots endpoint for one recording."""
    return (
        f"{host.rstrip('/')}/api/projects/{quote(str(project_id), safe='')}"
        f"/session_recordings/{quote(str(recording_id), safe='')}/snapshots"
    )


def plan_key_batches(blob_keys: List[Any], batch_size: int) -> List[Tuple[int, int]]:
    """
    Plan ``[start, end]`` range fetches for paginated blob keys.

    Keys are read by their leading integer (``"7"`` and ``"7.5"`` both give 7;
    keys without leading digits are dropped), deduplicated and sorted, then
    cut into runs of at most ``batch_size`` keys. Each run is fetched as one
    range from its smallest to its largest key.

    Args:
        blob_keys: Raw blob keys as listed by the provider
        batch_size: Maximum keys per range fetch

    Returns:
        List of inclusive ``(start_key, end_key)`` ranges in ascending order
    """
    keys = set()
    for raw in blob_keys:
        key = parse_int_prefix(raw)
        if key is None:
            logger.debug(f"[FETCH] Ignoring non-numeric blob key {raw!r}")
            continue
        keys.add(key)

    ordered = sorted(keys)
    size = max(1, batch_size)
    return [
        (ordered[i], ordered[min(i + size, len(ordered)) - 1])
        for i in range(0, len(ordered), size)
    ]


class FetchStrategy:
    """Fetches every record for one snapshot generation."""

    origin: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        headers: Dict[str, str],
        retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
    ):
        self.client = client
        self.base_url = base_url
        self.headers = headers
        self.retries = retries
        self.backoff_ms = backoff_ms

    async def _fetch_batch(self, url: str, description: str) -> List[Any]:
        try:
            response = await fetch_json(
                self.client,
                url,
                self.headers,
                retries=self.retries,
                backoff_ms=self.backoff_ms,
            )
        except TransportError as e:
            raise SnapshotFetchError(
                f"Failed to fetch {description}: {e.message}",
                detail=e.body_excerpt,
            ) from e

        records = normalize_batch(response)
        logger.info(f"[FETCH] Got {len(records)} snapshots for {description}")
        return records

    async def fetch(self, sources: List[SnapshotSource]) -> List[Any]:
        raise NotImplementedError


class PaginatedBlobStrategy(FetchStrategy):
    """Range-batched fetching of ``blob_v2`` keys, one batch at a time."""

    origin = SnapshotOrigin.PAGINATED_BLOB

    def __init__(self, *args, batch_size: Optional[int] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.batch_size = batch_size or settings.blob_v2_keys_per_batch

    def range_url(self, start_key: int, end_key: int) -> str:
        query = urlencode({
            "source": SnapshotOrigin.PAGINATED_BLOB,
            "start_blob_key": start_key,
            "end_blob_key": end_key,
        })
        return f"{self.base_url}?{query}"

    async def fetch(self, sources: List[SnapshotSource]) -> List[Any]:
        batches = plan_key_batches([s.blob_key for s in sources], self.batch_size)
        logger.info(f"[FETCH] Using blob_v2 with {len(sources)} keys in {len(batches)} batches")

        records: List[Any] = []
        for index, (start_key, end_key) in enumerate(batches, start=1):
            logger.info(f"[FETCH] Batch {index}/{len(batches)}: keys {start_key}-{end_key}")
            records.extend(
                await self._fetch_batch(
                    self.range_url(start_key, end_key),
                    f"blob_v2 keys {start_key}-{end_key}",
                )
            )
        return records


class LegacyBlobStrategy(FetchStrategy):
    """One fetch per ``blob`` source, each with its own opaque key."""

    origin = SnapshotOrigin.LEGACY_BLOB

    def blob_url(self, blob_key: str) -> str:
        query = urlencode({"source": SnapshotOrigin.LEGACY_BLOB, "blob_key": blob_key})
        return f"{self.base_url}?{query}"

    async def fetch(self, sources: List[SnapshotSource]) -> List[Any]:
        logger.info(f"[FETCH] Using blob_v1 with {len(sources)} sources")

        records: List[Any] = []
        for source in sources:
            logger.info(f"[FETCH] Fetching blob key: {source.blob_key}")
            records.extend(
                await self._fetch_batch(
                    self.blob_url(source.blob_key),
                    f"blob key {source.blob_key}",
                )
            )
        return records


class SnapshotSourceRouter:
    """
    Lists a recording's snapshot sources, picks the best generation and
    fetches every raw record through it.

    ``blob_v2`` is preferred over ``blob``; a recording that only has the
    ``realtime`` buffer cannot be fetched in bulk and is rejected.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        host: str,
        api_key: str,
        project_id: str,
        recording_id: str,
        retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self.client = client
        self.recording_id = recording_id
        self.headers = auth_headers(api_key)
        self.base_url = snapshots_url(host, project_id, recording_id)
        self.retries = retries
        self.backoff_ms = backoff_ms
        self.batch_size = batch_size

    @property
    def list_url(self) -> str:
        return f"{self.base_url}?blob_v2=true"

    async def list_sources(self) -> List[SnapshotSource]:
        """
        Call the provider's list-sources endpoint.

        Raises:
            TransportError: If the listing call fails
            RecordingNotReadyError: If no sources are listed
        """
        logger.info(f"[LIST] Fetching snapshot sources from: {self.list_url}")
        try:
            response = await fetch_json(
                self.client,
                self.list_url,
                self.headers,
                retries=self.retries,
                backoff_ms=self.backoff_ms,
            )
        except TransportError as e:
            raise TransportError(
                f"Listing snapshot sources failed: {e.message}",
                url=e.url,
                status_code=e.status_code,
                body_excerpt=e.body_excerpt,
                stage=ReconstructionStage.LISTING,
            ) from e

        listing = SnapshotListResponse.model_validate(response if isinstance(response, dict) else {})
        if not listing.sources:
            raise RecordingNotReadyError(
                f"No snapshot sources found for recording {self.recording_id} (recording may be too fresh)."
            )
        return listing.sources

    def select_strategy(self, sources: List[SnapshotSource]) -> Tuple[FetchStrategy, List[SnapshotSource]]:
        """
        Choose the transport generation to fetch with.

        Args:
            sources: Listed snapshot sources

        Returns:
            The strategy to use and the sources it should fetch

        Raises:
            RealtimeOnlyError: If only recent-buffer sources are available
            RecordingNotReadyError: If no source is fetchable at all
        """
        v2_sources = [s for s in sources if s.origin == SnapshotOrigin.PAGINATED_BLOB and s.blob_key is not None]
        v1_sources = [s for s in sources if s.origin == SnapshotOrigin.LEGACY_BLOB and s.blob_key is not None]
        realtime_sources = [s for s in sources if s.origin == SnapshotOrigin.RECENT_BUFFER]

        logger.info(
            f"[LIST] Found sources: v2={len(v2_sources)}, v1={len(v1_sources)}, "
            f"realtime={len(realtime_sources)}"
        )

        common = dict(retries=self.retries, backoff_ms=self.backoff_ms)
        if v2_sources:
            strategy = PaginatedBlobStrategy(
                self.client, self.base_url, self.headers, batch_size=self.batch_size, **common
            )
            return strategy, v2_sources
        if v1_sources:
            return LegacyBlobStrategy(self.client, self.base_url, self.headers, **common), v1_sources
        if realtime_sources:
            raise RealtimeOnlyError(
                "Only realtime source available; recording is likely very recent. "
                "Try again later when blobs are available (ideally 24h or older)."
            )
        raise RecordingNotReadyError("No valid sources available. Recording may be processing.")

    async def plan_and_fetch(self) -> List[Any]:
        """
        List sources, select a generation and fetch all raw records sequentially.

        Returns:
            Concatenation of every batch's raw records in fetch order
        """
        sources = await self.list_sources()
        strategy, selected = self.select_strategy(sources)
        records = await strategy.fetch(selected)
        logger.info(f"[FETCH] Retrieved {len(records)} total snapshots")
        return records
