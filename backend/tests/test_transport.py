import json

import httpx
import pytest

from reconstructor.services.transport import fetch_json, is_ndjson_url, parse_ndjson
from reconstructor.utils.exceptions import TransportError

LIST_URL = "https://ph.example.com/api/projects/1/session_recordings/r/snapshots?blob_v2=true"
V2_URL = "https://ph.example.com/api/projects/1/session_recordings/r/snapshots?source=blob_v2&start_blob_key=0&end_blob_key=3"


def scripted_client(responses):
    """Client answering with each scripted response (or raising it) in turn."""
    calls = []

    def handler(request):
        calls.append(request)
        response = responses[min(len(calls), len(responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), calls


def test_ndjson_url_detection():
    assert is_ndjson_url(V2_URL)
    assert not is_ndjson_url(LIST_URL)
    assert not is_ndjson_url("https://x/snapshots?source=blob&blob_key=1")


def test_parse_ndjson_drops_blank_and_broken_lines():
    body = '{"type": 2, "timestamp": 1}\n\n   \n["w", {"type": 3, "timestamp": 2}]\n{broken\n  {"type": 4, "timestamp": 3}  \n'
    assert parse_ndjson(body) == {
        "results": [
            {"type": 2, "timestamp": 1},
            ["w", {"type": 3, "timestamp": 2}],
            {"type": 4, "timestamp": 3},
        ]
    }


def test_parse_ndjson_of_empty_body():
    assert parse_ndjson("") == {"results": []}


@pytest.mark.asyncio
async def test_plain_endpoint_returns_whole_json_document(no_backoff):
    client, calls = scripted_client([httpx.Response(200, json={"sources": [{"source": "blob"}]})])

    result = await fetch_json(client, LIST_URL, {"Authorization": "Bearer k"})

    assert result == {"sources": [{"source": "blob"}]}
    assert calls[0].headers["Authorization"] == "Bearer k"
    assert calls[0].method == "GET"


@pytest.mark.asyncio
async def test_paginated_endpoint_returns_results_wrapper(no_backoff):
    client, _ = scripted_client([httpx.Response(200, text='{"type": 2, "timestamp": 1}\nnope\n')])

    result = await fetch_json(client, V2_URL, {})

    assert result == {"results": [{"type": 2, "timestamp": 1}]}


@pytest.mark.asyncio
async def test_retries_after_server_error_with_linear_backoff(no_backoff):
    client, calls = scripted_client([
        httpx.Response(500, text="boom"),
        httpx.Response(503, text="busy"),
        httpx.Response(200, json=[1, 2]),
    ])

    result = await fetch_json(client, LIST_URL, {}, retries=3, backoff_ms=500)

    assert result == [1, 2]
    assert len(calls) == 3
    assert no_backoff == [0.5, 1.0]


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error_with_body_excerpt(no_backoff):
    client, calls = scripted_client([httpx.Response(500, text="first"), httpx.Response(502, text="x" * 2000)])

    with pytest.raises(TransportError) as exc_info:
        await fetch_json(client, LIST_URL, {}, retries=2, backoff_ms=500)

    error = exc_info.value
    assert len(calls) == 2
    assert error.status_code == 502
    assert error.url == LIST_URL
    assert error.body_excerpt == "x" * 500
    assert "HTTP 502" in error.message
    assert no_backoff == [0.5]


@pytest.mark.asyncio
async def test_network_errors_are_retried(no_backoff):
    client, calls = scripted_client([httpx.ConnectError("refused"), httpx.Response(200, json={"ok": True})])

    assert await fetch_json(client, LIST_URL, {}) == {"ok": True}
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_network_errors_exhausting_retries_raise_transport_error(no_backoff):
    client, calls = scripted_client([httpx.ReadTimeout("slow")])

    with pytest.raises(TransportError) as exc_info:
        await fetch_json(client, LIST_URL, {}, retries=3)

    assert len(calls) == 3
    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)


@pytest.mark.asyncio
async def test_invalid_json_is_retried_then_raised(no_backoff):
    client, calls = scripted_client([httpx.Response(200, text="<html>oops</html>")])

    with pytest.raises(TransportError):
        await fetch_json(client, LIST_URL, {}, retries=2)

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_post_sends_json_body(no_backoff):
    client, calls = scripted_client([httpx.Response(200, json={"ok": True})])

    await fetch_json(client, LIST_URL, {}, method="POST", json_body={"q": 1})

    assert calls[0].method == "POST"
    assert json.loads(calls[0].content) == {"q": 1}


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_parse_ndjson_drops_non_finite_numbers(constant):
    body = '{"type": 2, "timestamp": 1}\n{"type": 3, "timestamp": %s}\n' % constant
    assert parse_ndjson(body) == {"results": [{"type": 2, "timestamp": 1}]}


@pytest.mark.asyncio
async def test_non_finite_json_document_is_invalid(no_backoff):
    client, calls = scripted_client([httpx.Response(200, text='{"width": NaN}')])

    with pytest.raises(TransportError) as exc_info:
        await fetch_json(client, LIST_URL, {}, retries=1)

    assert "Invalid JSON" in exc_info.value.message
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_backoff_uses_configured_unit(no_backoff):
    client, calls = scripted_client([httpx.Response(500, text="boom")])

    with pytest.raises(TransportError):
        await fetch_json(client, LIST_URL, {}, retries=4, backoff_ms=200)

    assert len(calls) == 4
    assert no_backoff == pytest.approx([0.2, 0.4, 0.6])
