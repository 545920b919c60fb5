"""Shared fixtures: a scripted recording provider behind httpx.MockTransport."""
import base64
import gzip
import json
import os
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

os.environ.setdefault("ENVIRONMENT", "test")

HOST = "https://posthog.example.com"
PROJECT_ID = "42"
RECORDING_ID = "rec-123"


def gzip_binary(obj: Any) -> str:
    """gzip(JSON(obj)) as a binary (latin-1) string."""
    return gzip.compress(json.dumps(obj).encode("utf-8")).decode("latin-1")


def gzip_base64(obj: Any) -> str:
    """base64(gzip(JSON(obj)))."""
    return base64.b64encode(gzip.compress(json.dumps(obj).encode("utf-8"))).decode("ascii")


def request_payload(**overrides) -> Dict[str, Any]:
    payload = {
        "sourceHost": HOST,
        "sourceApiKey": "phx_test",
        "sourceProjectId": PROJECT_ID,
        "recordingExternalId": RECORDING_ID,
    }
    payload.update(overrides)
    return payload


class FakeProvider:
    """Minimal stand-in for the PostHog snapshots API."""

    def __init__(
        self,
        sources: Optional[List[Dict[str, Any]]] = None,
        v2_blobs: Optional[Dict[int, List[Any]]] = None,
        v1_blobs: Optional[Dict[str, Any]] = None,
    ):
        self.sources = sources or []
        self.v2_blobs = v2_blobs or {}
        self.v1_blobs = v1_blobs or {}
        self.requests: List[httpx.Request] = []
        self.failures: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    @classmethod
    def with_v2(cls, blobs: Dict[int, List[Any]]) -> "FakeProvider":
        sources = [{"source": "blob_v2", "blob_key": str(key)} for key in blobs]
        return cls(sources=sources, v2_blobs=blobs)

    @property
    def fetches(self) -> List[httpx.Request]:
        return [r for r in self.requests if "source" in r.url.params]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        source = params.get("source")

        if source in self.failures:
            return self.failures[source](request)

        if params.get("blob_v2") == "true" and source is None:
            return httpx.Response(200, json={"sources": self.sources})

        if source == "blob_v2":
            start = int(params["start_blob_key"])
            end = int(params["end_blob_key"])
            lines = []
            for key in sorted(self.v2_blobs):
                if start <= key <= end:
                    lines.extend(json.dumps(record) for record in self.v2_blobs[key])
            return httpx.Response(200, text="\n".join(lines) + "\n")

        if source == "blob":
            return httpx.Response(200, json=self.v1_blobs.get(params["blob_key"], []))

        return httpx.Response(404, text="not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def no_backoff(monkeypatch):
    """Record backoff waits instead of sleeping."""
    from reconstructor.services import transport

    waits: List[float] = []

    async def fake_sleep(seconds: float) -> None:
        waits.append(seconds)

    monkeypatch.setattr(transport, "sleep", fake_sleep)
    return waits
