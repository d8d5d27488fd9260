import json

import httpx
import pytest

from whoami_chat.infra.api import ApiClient, ApiError


def _client(handler) -> ApiClient:
    http = httpx.AsyncClient(base_url="http://api.test/api/v1", transport=httpx.MockTransport(handler))
    return ApiClient(http=http)


@pytest.mark.asyncio
async def test_returns_decoded_json():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        return httpx.Response(200, json=[{"_id": "c1"}])

    client = _client(handler)
    assert await client.get("/message/conversations") == [{"_id": "c1"}]
    assert seen == {"method": "GET", "path": "/api/v1/message/conversations"}


@pytest.mark.asyncio
async def test_post_sends_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"message": "hi"}
        return httpx.Response(201, json={"ok": True})

    client = _client(handler)
    assert await client.post("/message/send/ann", {"message": "hi"}) == {"ok": True}


@pytest.mark.asyncio
async def test_error_message_comes_from_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"message": "You cannot message this user."})

    client = _client(handler)
    with pytest.raises(ApiError) as excinfo:
        await client.post("/message/send/ann", {"message": "hi"}, route="/message/send/{peerId}")
    assert excinfo.value.message == "You cannot message this user."
    assert excinfo.value.status_code == 403
    assert excinfo.value.route == "/message/send/{peerId}"


@pytest.mark.asyncio
async def test_error_without_message_uses_default():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    client = _client(handler)
    with pytest.raises(ApiError) as excinfo:
        await client.delete("/message/conversations/c1")
    assert excinfo.value.message == "Request failed."


@pytest.mark.asyncio
async def test_transport_failure_raises_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    client = _client(handler)
    with pytest.raises(ApiError) as excinfo:
        await client.get("/user")
    assert excinfo.value.status_code == 0


@pytest.mark.asyncio
async def test_empty_body_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    client = _client(handler)
    assert await client.delete("/message/conversations/c1/pin") is None
