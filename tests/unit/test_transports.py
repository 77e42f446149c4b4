"""Transport tests."""

import json

import httpx
import pytest

from difylink.client import DifyClient
from difylink.contracts import Credentials, FilePart, RawResponse
from difylink.errors import ClientError, NetworkError, RateLimited, ServerError
from difylink.request import build_request
from difylink.transports.http import HttpTransport
from difylink.transports.inmemory import InMemoryTransport


def http_transport(handler):
    return HttpTransport(
        "https://api.example.com", "app-key", http_transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_json_request():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"answer": "Hello"})

    transport = http_transport(handler)
    result = await transport.send(
        build_request("POST", "/chat-messages", query={"user": "u1"}, body={"query": "hi"})
    )

    assert result == {"answer": "Hello"}
    assert seen["url"] == "https://api.example.com/v1/chat-messages?user=u1"
    assert seen["auth"] == "Bearer app-key"
    assert seen["content_type"] == "application/json"
    assert seen["body"] == {"query": "hi"}


@pytest.mark.asyncio
async def test_multipart_request():
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["content-type"]
        seen["content"] = request.read()
        return httpx.Response(201, json={"id": "file-1"})

    transport = http_transport(handler)
    part = FilePart(filename="notes.txt", content=b"hello world", mime_type="text/plain")
    result = await transport.send(
        build_request(
            "POST", "/files/upload", body={"user": "u1", "meta": {"a": 1}}, files=[part]
        )
    )

    assert result == {"id": "file-1"}
    assert seen["content_type"].startswith("multipart/form-data; boundary=")
    assert b'name="file"; filename="notes.txt"' in seen["content"]
    assert b"hello world" in seen["content"]
    assert b'name="user"' in seen["content"]
    assert b'{"a": 1}' in seen["content"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [(400, ClientError), (404, ClientError), (429, RateLimited), (500, ServerError), (503, ServerError)],
)
async def test_error_statuses(status, error):
    transport = http_transport(
        lambda request: httpx.Response(status, json={"code": "oops", "message": "went wrong"})
    )
    with pytest.raises(error) as info:
        await transport.send(build_request("GET", "/parameters"))
    assert info.value.status_code == status
    assert info.value.code == "oops"
    assert info.value.message == "went wrong"


@pytest.mark.asyncio
async def test_connection_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NetworkError):
        await http_transport(handler).send(build_request("GET", "/parameters"))


@pytest.mark.asyncio
async def test_empty_body_and_raw_mode():
    transport = http_transport(
        lambda request: httpx.Response(
            200,
            content=b"" if request.url.path.endswith("/datasets/ds-1") else b"\x89PNG",
            headers={"Content-Type": "image/png"},
        )
    )
    assert await transport.send(build_request("DELETE", "/datasets/ds-1")) == {}

    raw = await transport.send(build_request("GET", "/files/f/preview", response_mode="raw"))
    assert isinstance(raw, RawResponse)
    assert raw.content == b"\x89PNG"
    assert raw.content_type == "image/png"


@pytest.mark.asyncio
async def test_stream_yields_event_stream_text():
    body = 'data: {"event": "message", "answer": "Hi"}\n\n'

    def handler(request):
        assert request.headers["accept"] == "text/event-stream"
        return httpx.Response(200, content=body.encode(), headers={"Content-Type": "text/event-stream"})

    transport = http_transport(handler)
    chunks = [
        chunk
        async for chunk in transport.stream(
            build_request("POST", "/chat-messages", body={}, response_mode="stream")
        )
    ]
    assert "".join(chunks) == body


@pytest.mark.asyncio
async def test_stream_reframes_json_body():
    transport = http_transport(lambda request: httpx.Response(200, json={"answer": "Hi"}))
    chunks = [
        chunk
        async for chunk in transport.stream(
            build_request("POST", "/chat-messages", body={}, response_mode="stream")
        )
    ]
    assert chunks == ['data: {"answer": "Hi"}\n\n']


@pytest.mark.asyncio
async def test_stream_error_status():
    transport = http_transport(lambda request: httpx.Response(429, json={"message": "slow"}))
    with pytest.raises(RateLimited):
        async for _ in transport.stream(build_request("POST", "/workflows/run", body={})):
            pass


@pytest.mark.asyncio
async def test_inmemory_transport_basic():
    """Scripted responses replay per route and the last one repeats."""
    transport = InMemoryTransport()
    transport.add_response("GET", "/parameters", ServerError("once"), {"ok": True})

    with pytest.raises(ServerError):
        await transport.send(build_request("GET", "/parameters"))
    assert await transport.send(build_request("GET", "/parameters")) == {"ok": True}
    assert await transport.send(build_request("GET", "/parameters")) == {"ok": True}
    assert len(transport.calls("GET", "/parameters")) == 3

    with pytest.raises(ClientError):
        await transport.send(build_request("GET", "/unknown"))


@pytest.mark.asyncio
async def test_sent_payload_does_not_alias_descriptor():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={})

    transport = http_transport(handler)
    descriptor = build_request(
        "POST", "/chat-messages", query={"user": "u1"}, body={"inputs": {"a": 1}}
    )

    kwargs = transport._request_kwargs(descriptor)
    kwargs["json"]["inputs"]["a"] = 2
    kwargs["params"]["user"] = "u2"
    await transport.send(descriptor)

    assert descriptor.body == {"inputs": {"a": 1}}
    assert descriptor.query == {"user": "u1"}
    assert seen == [{"inputs": {"a": 1}}]


@pytest.mark.asyncio
async def test_client_escapes_workflow_run_id():
    transport = InMemoryTransport()
    transport.add_response("GET", "/workflows/run/a%2Fb", {"status": "running"})
    client = DifyClient(
        Credentials(base_url="https://api.example.com", api_key="app-key"), transport=transport
    )

    await client.get_workflow_run("a/b")

    assert transport.sent[0].path == "/workflows/run/a%2Fb"
    assert transport.sent[0].timeout == 60.0
