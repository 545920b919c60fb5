"""Assembly of raw snapshot records into an ordered rrweb event stream."""
import hashlib
import json
import math
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from reconstructor.config import settings
from reconstructor.constants import EventType, IncrementalSource
from reconstructor.services.decompress import decompress_event
from reconstructor.services.records import is_event, unwrap_record
from reconstructor.utils.exceptions import NoUsableEventsError
from reconstructor.utils.logger import logger
from reconstructor.utils.parsing import parse_int_prefix


@dataclass
class AssembledEvents:
    """Ordered events plus the largest viewport seen in Meta events."""
    events: List[Dict[str, Any]] = field(default_factory=list)
    device_width: int = 0
    device_height: int = 0


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def sort_key(event: Dict[str, Any]) -> Tuple[int, Any]:
    """FullSnapshot events first, then ascending timestamp within each bucket."""
    return (0 if event["type"] == EventType.FULL_SNAPSHOT else 1, event["timestamp"])


def event_fingerprint(event: Dict[str, Any]) -> str:
    """Content hash of an event, ignoring its ``delay``."""
    body = {k: v for k, v in event.items() if k != "delay"}
    encoded = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def chunk_mutation(event: Dict[str, Any], chunk_size: int) -> List[Dict[str, Any]]:
    """
    Split an oversized mutation event into several events.

    Every chunk keeps the original timestamp. ``removes`` travel with the first
    chunk and ``texts``/``attributes`` with the last, so applying the chunks in
    order is equivalent to applying the original mutation.
    """
    data = event.get("data")
    if (
        event.get("type") != EventType.INCREMENTAL_SNAPSHOT
        or not isinstance(data, dict)
        or data.get("source") != IncrementalSource.MUTATION
        or not isinstance(data.get("adds"), list)
        or len(data["adds"]) <= chunk_size
    ):
        return [event]

    adds = data["adds"]
    total = math.ceil(len(adds) / chunk_size)
    chunks = []
    for i in range(total):
        is_first = i == 0
        is_last = i == total - 1
        chunk = {
            **event,
            "data": {
                **data,
                "adds": adds[i * chunk_size:(i + 1) * chunk_size],
                "removes": data.get("removes", []) if is_first else [],
                "texts": data.get("texts", []) if is_last else [],
                "attributes": data.get("attributes", []) if is_last else [],
            },
        }
        if "delay" in event:
            chunk["delay"] = event["delay"] or 0
        chunks.append(chunk)
    return chunks


def events_file_name(recording_id: str) -> str:
    """Deterministic events file name for a recording."""
    safe_id = re.sub(r"[^A-Za-z0-9._-]", "_", str(recording_id)) or "unknown"
    return f"recording-{safe_id}.json"


# Viewport assumed for a snapshot whose document carries no usable size
DEFAULT_VIEWPORT = (1920, 1080)
MAIN_WINDOW = "main"


def snapshot_viewport(event: Dict[str, Any]) -> Tuple[int, int]:
    """
    Viewport recorded on a FullSnapshot's document, falling back to 1920x1080.

    The size is read from the attributes of the first element inside ``<body>``
    (``node > html > body > first child``), where the recorder stores it.
    """
    width, height = DEFAULT_VIEWPORT
    try:
        attributes = event["data"]["node"]["childNodes"][1]["childNodes"][1]["childNodes"][0]["attributes"]
    except (KeyError, IndexError, TypeError):
        return width, height
    if not isinstance(attributes, dict):
        return width, height

    parsed_width = parse_int_prefix(attributes.get("width"))
    parsed_height = parse_int_prefix(attributes.get("height"))
    if parsed_width is not None and parsed_width > 0:
        width = parsed_width
    if parsed_height is not None and parsed_height > 0:
        height = parsed_height
    return width, height


def patch_meta_events(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Insert a Meta event before each FullSnapshot whose window has none.

    The replayer needs a Meta event to size its iframe before the first full
    snapshot of a window. Windows are keyed by ``windowId``; events without
    one belong to a single main window.

    Args:
        events: Sorted events

    Returns:
        A new list with synthesized Meta events in place
    """
    windows_with_meta = {
        event.get("windowId") or MAIN_WINDOW for event in events if event["type"] == EventType.META
    }

    patched = []
    for event in events:
        window_id = event.get("windowId") or MAIN_WINDOW
        if event["type"] == EventType.FULL_SNAPSHOT and window_id not in windows_with_meta:
            width, height = snapshot_viewport(event)
            data = event.get("data")
            href = data.get("href") if isinstance(data, dict) else None
            meta = {
                "type": EventType.META,
                "timestamp": event["timestamp"],
                "data": {"width": width, "height": height, "href": href or ""},
            }
            if event.get("windowId"):
                meta["windowId"] = event["windowId"]
            patched.append(meta)
            windows_with_meta.add(window_id)
            logger.debug(f"[ASSEMBLE] Added {width}x{height} Meta event for window {window_id}")
        patched.append(event)
    return patched


def max_viewport(events: Iterable[Dict[str, Any]]) -> Tuple[int, int]:
    """Largest width and height found in Meta events, 0 when none."""
    device_width = device_height = 0
    for event in events:
        if event["type"] != EventType.META or not isinstance(event.get("data"), dict):
            continue
        width = _finite_number(event["data"].get("width"))
        height = _finite_number(event["data"].get("height"))
        if width is not None and width > device_width:
            device_width = int(width)
        if height is not None and height > device_height:
            device_height = int(height)
    return device_width, device_height


class EventAssembler:
    """Turns raw snapshot records into the event list the replay renderer expects."""

    def __init__(
        self,
        dedupe: Optional[bool] = None,
        chunk_mutations: Optional[bool] = None,
        mutation_chunk_size: Optional[int] = None,
        patch_meta: Optional[bool] = None,
    ):
        self.dedupe = settings.dedupe_events if dedupe is None else dedupe
        self.chunk_mutations = settings.chunk_large_mutations if chunk_mutations is None else chunk_mutations
        self.mutation_chunk_size = mutation_chunk_size or settings.mutation_chunk_size
        self.patch_meta = settings.patch_meta_events if patch_meta is None else patch_meta

    def _accepted_events(self, raw_records: Iterable[Any]) -> Iterable[Dict[str, Any]]:
        discarded = 0
        for record in raw_records:
            for candidate in unwrap_record(record):
                if not is_event(candidate):
                    discarded += 1
                    continue
                yield decompress_event(candidate)
        if discarded:
            logger.debug(f"[ASSEMBLE] Discarded {discarded} records without numeric type/timestamp")

    def assemble(self, raw_records: Iterable[Any]) -> AssembledEvents:
        """
        Merge raw records into one filtered, ordered event list.

        Args:
            raw_records: Records from every fetched batch, in any order

        Returns:
            AssembledEvents with the sorted events and max viewport

        Raises:
            NoUsableEventsError: If no events remain
        """
        events: List[Dict[str, Any]] = []
        seen = set()
        duplicates = 0

        for event in self._accepted_events(raw_records):
            if self.dedupe:
                fingerprint = event_fingerprint(event)
                if fingerprint in seen:
                    duplicates += 1
                    continue
                seen.add(fingerprint)

            if self.chunk_mutations:
                events.extend(chunk_mutation(event, self.mutation_chunk_size))
            else:
                events.append(event)

        if duplicates:
            logger.info(f"[ASSEMBLE] Removed {duplicates} duplicate events")

        filtered = [e for e in events if e["type"] != EventType.CUSTOM]
        logger.info(f"[ASSEMBLE] Filtered {len(events) - len(filtered)} custom events")

        filtered.sort(key=sort_key)

        if not filtered:
            raise NoUsableEventsError("No usable rrweb events were parsed from the snapshots.")

        if self.patch_meta:
            filtered = patch_meta_events(filtered)

        device_width, device_height = max_viewport(filtered)
        result = AssembledEvents(events=filtered, device_width=device_width, device_height=device_height)

        logger.info(
            f"[ASSEMBLE] {len(result.events)} events, "
            f"viewport {result.device_width}x{result.device_height}"
        )
        return result

    def write(self, events: List[Dict[str, Any]], work_dir: str, recording_id: str) -> str:
        """
        Persist events as a single JSON array.

        The document is serialized before the file is opened, so a value that
        cannot be written as strict JSON leaves no partial file behind. Text is
        ASCII-escaped, which keeps lone surrogates from truncated emoji
        writable.

        Args:
            events: Ordered events
            work_dir: Invocation-scoped directory
            recording_id: Recording identifier used to name the file

        Returns:
            Path of the written file

        Raises:
            ValueError: If an event holds a non-finite number
            OSError: If the file cannot be written
        """
        document = json.dumps(events, separators=(",", ":"), allow_nan=False)

        os.makedirs(work_dir, exist_ok=True)
        path = os.path.join(work_dir, events_file_name(recording_id))
        with open(path, "w", encoding="utf-8") as f:
            f.write(document)
        logger.info(f"[WRITE] Events saved to: {path}")
        return path
