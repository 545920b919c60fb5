"""Retrying HTTP transport for the recording provider API."""
import asyncio
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from reconstructor.config import settings
from reconstructor.utils.exceptions import TransportError
from reconstructor.utils.logger import logger
from reconstructor.utils.parsing import loads_strict

# Query signature of the paginated blob endpoint, which answers in NDJSON
NDJSON_URL_SIGNATURE = "source=blob_v2"

# Backoff wait handed to tenacity, swappable at module level
sleep = asyncio.sleep


def is_ndjson_url(url: str) -> bool:
    """Whether the URL targets the newline-delimited paginated blob transport."""
    return NDJSON_URL_SIGNATURE in url


def parse_ndjson(text: str) -> Dict[str, List[Any]]:
    """
    Parse a newline-delimited JSON body.

    Blank lines and lines that are not valid JSON are dropped; one bad line
    does not invalidate the rest of the batch.

    Args:
        text: Raw response body

    Returns:
        Dict with the parsed lines under ``results``
    """
    results = []
    dropped = 0
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            results.append(loads_strict(line))
        except ValueError:
            dropped += 1

    if dropped:
        logger.debug(f"[FETCH] Dropped {dropped} unparseable NDJSON lines")
    return {"results": results}


def _excerpt(text: str, limit: int) -> str:
    return text[:limit]


async def _request_json(
    client: httpx.AsyncClient,
    url: str,
    headers: Dict[str, str],
    method: str,
    json_body: Optional[Any],
) -> Any:
    excerpt_limit = settings.error_excerpt_chars
    try:
        response = await client.request(method, url, headers=headers, json=json_body)
    except httpx.HTTPError as e:
        raise TransportError(f"Request to {url} failed: {e}", url=url) from e

    if not response.is_success:
        raise TransportError(
            f"HTTP {response.status_code} for {url}: {_excerpt(response.text, excerpt_limit)}",
            url=url,
            status_code=response.status_code,
            body_excerpt=_excerpt(response.text, excerpt_limit),
        )

    if is_ndjson_url(url):
        return parse_ndjson(response.text)

    try:
        return loads_strict(response.text)
    except ValueError as e:
        raise TransportError(
            f"Invalid JSON from {url}: {e}",
            url=url,
            status_code=response.status_code,
            body_excerpt=_excerpt(response.text, excerpt_limit),
        ) from e


def _log_failed_attempt(attempts: int):
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(f"[FETCH] Attempt {retry_state.attempt_number}/{attempts} failed: {error.message}")
    return before_sleep


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    headers: Dict[str, str],
    retries: Optional[int] = None,
    backoff_ms: Optional[int] = None,
    method: str = "GET",
    json_body: Optional[Any] = None,
) -> Any:
    """
    Fetch and decode a JSON (or NDJSON) document with linear-backoff retries.

    Non-2xx responses, invalid bodies and network failures are retried.
    Between attempts the call waits ``backoff_ms * attempt`` milliseconds.
    When every attempt fails the last error is raised.

    Args:
        client: Shared async HTTP client
        url: Absolute request URL
        headers: Request headers, including the bearer credential
        retries: Total attempts (defaults to settings)
        backoff_ms: Backoff unit in milliseconds (defaults to settings)
        method: HTTP method
        json_body: Optional JSON payload for POST requests

    Returns:
        Decoded JSON document, or ``{"results": [...]}`` for NDJSON endpoints

    Raises:
        TransportError: If all attempts fail
    """
    attempts = settings.snapshot_fetch_retries if retries is None else retries
    attempts = max(1, attempts)
    backoff = settings.snapshot_retry_backoff_ms if backoff_ms is None else backoff_ms
    backoff_seconds = backoff / 1000

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=backoff_seconds, increment=backoff_seconds),
            retry=retry_if_exception_type(TransportError),
            before_sleep=_log_failed_attempt(attempts),
            sleep=sleep,
            reraise=True,
        ):
            with attempt:
                return await _request_json(client, url, headers, method, json_body)
    except TransportError as e:
        logger.warning(f"[FETCH] Giving up after {attempts} attempts: {e.message}")
        raise
