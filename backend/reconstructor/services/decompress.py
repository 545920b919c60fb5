"""Content-sniffed decompression of replay event payloads.

The provider may gzip individual payload fields, either as a raw byte string
or base64-encoded, with no out-of-band signal saying which. Everything here
fails open: a value that cannot be decoded is returned unchanged.
"""
import base64
import gzip
import zlib
from typing import Any, Dict, Optional

from reconstructor.constants import COMPRESSION_VERSION_2024_10, EventType, IncrementalSource
from reconstructor.utils.logger import logger
from reconstructor.utils.parsing import loads_strict

GZIP_MAGIC = b"\x1f\x8b"

_DECODE_ERRORS = (OSError, EOFError, ValueError, zlib.error)


def _gunzip_json(raw: bytes) -> Any:
    return loads_strict(gzip.decompress(raw).decode("utf-8"))


def _raw_gzip_bytes(value: str) -> Optional[bytes]:
    """Return the string as bytes if it is a binary string starting with the gzip magic."""
    if len(value) < 2 or ord(value[0]) != GZIP_MAGIC[0] or ord(value[1]) != GZIP_MAGIC[1]:
        return None
    try:
        return value.encode("latin-1")
    except UnicodeEncodeError:
        return None


def _base64_gzip_bytes(value: str) -> Optional[bytes]:
    try:
        raw = base64.b64decode(value, validate=True)
    except ValueError:
        return None
    return raw if raw.startswith(GZIP_MAGIC) else None


def decompress(value: Any) -> Any:
    """
    Decode an opportunistically compressed payload.

    1. Non-strings and empty strings are returned unchanged.
    2. A binary string starting with the gzip magic is gunzipped and JSON-parsed.
    3. Otherwise a base64 string whose bytes start with the gzip magic is
       decoded, gunzipped and JSON-parsed.
    4. Anything else is returned unchanged.

    Never raises.

    Args:
        value: Candidate payload

    Returns:
        The decoded structure, or ``value`` itself
    """
    if not isinstance(value, str) or not value:
        return value

    raw = _raw_gzip_bytes(value)
    if raw is not None:
        try:
            return _gunzip_json(raw)
        except _DECODE_ERRORS as e:
            logger.debug(f"[DECOMPRESS] Raw gzip payload could not be decoded: {e}")
            return value

    raw = _base64_gzip_bytes(value)
    if raw is not None:
        try:
            return _gunzip_json(raw)
        except _DECODE_ERRORS as e:
            logger.debug(f"[DECOMPRESS] Base64 gzip payload could not be decoded: {e}")
            return value

    return value


def _decompress_fields(data: Dict[str, Any], fields) -> Dict[str, Any]:
    patched = dict(data)
    for field in fields:
        if field in patched:
            patched[field] = decompress(patched[field])
    return patched


def decompress_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decompress the payload of one event.

    Events tagged with PostHog's ``cv`` compression version carry gzip in
    specific fields. Any event, whatever its tag, may have its whole ``data``
    compressed. The input is not modified; a new dict is returned when
    anything changed.

    Args:
        event: Event-shaped dict with numeric ``type`` and ``timestamp``

    Returns:
        The event with its payload decoded where possible
    """
    cv = event.get("cv")
    data = event.get("data")

    if isinstance(data, str):
        decoded = decompress(data)
        if decoded is not data:
            return {**event, "data": decoded}
        return event

    if cv is not None and cv != COMPRESSION_VERSION_2024_10:
        logger.debug(f"[DECOMPRESS] Unknown compression version {cv}, skipping per-field decoding")
        return event

    if cv == COMPRESSION_VERSION_2024_10 and event.get("type") == EventType.INCREMENTAL_SNAPSHOT \
            and isinstance(data, dict):
        source = data.get("source")
        if source == IncrementalSource.STYLE_SHEET_RULE:
            return {**event, "data": _decompress_fields(data, ("adds", "removes"))}
        if source == IncrementalSource.MUTATION and "texts" in data:
            return {
                **event,
                "data": _decompress_fields(data, ("adds", "removes", "texts", "attributes")),
            }

    return event
