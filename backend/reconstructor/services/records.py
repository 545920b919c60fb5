"""Normalization of raw snapshot records and batch envelopes.

Batch responses arrive as a bare list, ``{"results": [...]}`` or
``{"snapshots": [...]}``. Records inside them arrive as an event object, a
``[windowId, event]`` pair, a ``{"windowId": ..., "data": [...]}`` envelope,
or a JSON string encoding one of those. Both are resolved here so the rest of
the pipeline only ever sees event dicts.
"""
import math
from numbers import Real
from typing import Any, Dict, Iterator, List, Optional

from reconstructor.utils.parsing import loads_strict


class RecordShape:
    """Shapes a raw snapshot record can take."""
    TUPLE = "tuple"
    ENVELOPE = "envelope"
    DIRECT = "direct"
    ENCODED = "encoded"
    UNKNOWN = "unknown"


class BatchShape:
    """Shapes a batch response can take."""
    ARRAY = "array"
    RESULTS = "results"
    SNAPSHOTS = "snapshots"
    UNKNOWN = "unknown"


def classify_batch(response: Any) -> str:
    if isinstance(response, list):
        return BatchShape.ARRAY
    if isinstance(response, dict):
        if isinstance(response.get("results"), list):
            return BatchShape.RESULTS
        if isinstance(response.get("snapshots"), list):
            return BatchShape.SNAPSHOTS
    return BatchShape.UNKNOWN


def normalize_batch(response: Any) -> List[Any]:
    """
    Extract the list of raw records from a batch response.

    Args:
        response: Decoded batch response

    Returns:
        Raw records, empty when the envelope is not recognised
    """
    shape = classify_batch(response)
    if shape == BatchShape.ARRAY:
        return response
    if shape == BatchShape.RESULTS:
        return response["results"]
    if shape == BatchShape.SNAPSHOTS:
        return response["snapshots"]
    return []


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def is_event(candidate: Any) -> bool:
    """Whether a candidate has the minimal event shape: numeric ``type`` and ``timestamp``."""
    return (
        isinstance(candidate, dict)
        and _is_number(candidate.get("type"))
        and _is_number(candidate.get("timestamp"))
    )


def classify_record(record: Any) -> str:
    if isinstance(record, str):
        return RecordShape.ENCODED
    if isinstance(record, list) and len(record) == 2:
        return RecordShape.TUPLE
    if isinstance(record, dict):
        if not is_event(record) and isinstance(record.get("data"), list):
            return RecordShape.ENVELOPE
        return RecordShape.DIRECT
    return RecordShape.UNKNOWN


def _window_id_of(envelope: Dict[str, Any]) -> Optional[str]:
    return envelope.get("windowId") or envelope.get("window_id")


def _with_window(event: Any, window_id: Optional[str]) -> Any:
    if window_id and isinstance(event, dict) and not event.get("windowId"):
        return {**event, "windowId": window_id}
    return event


def unwrap_record(record: Any, _depth: int = 0) -> Iterator[Any]:
    """
    Yield the candidate events contained in one raw record.

    Candidates are not validated here; callers check them with ``is_event``.

    Args:
        record: One raw snapshot record

    Yields:
        Candidate event objects
    """
    shape = classify_record(record)

    if shape == RecordShape.ENCODED:
        if _depth > 0:
            return
        try:
            decoded = loads_strict(record)
        except ValueError:
            return
        yield from unwrap_record(decoded, _depth + 1)

    elif shape == RecordShape.TUPLE:
        candidate = record[1]
        if classify_record(candidate) == RecordShape.ENVELOPE:
            window_id = _window_id_of(candidate) or (record[0] if isinstance(record[0], str) else None)
            for item in candidate["data"]:
                yield _with_window(item, window_id)
        else:
            yield candidate

    elif shape == RecordShape.ENVELOPE:
        window_id = _window_id_of(record)
        for item in record["data"]:
            yield _with_window(item, window_id)

    elif shape == RecordShape.DIRECT:
        yield record
