import httpx
import pytest

from app.config.settings import YouTubeConfig
from app.core.errors import ErrorKind, UpstreamError
from app.services.metadata import MetadataResolver

VIDEO_ID = "dQw4w9WgXcQ"


class RecordingTransport(httpx.MockTransport):
    def __init__(self, handler):
        self.requests = []

        def record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(record)


def resolver(handler, api_key="test-key"):
    transport = RecordingTransport(handler)
    return MetadataResolver(YouTubeConfig(api_key=api_key), transport=transport), transport


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", [None, "", "short", "has spaces!", "x" * 12])
async def test_invalid_id_makes_no_network_call(bad_id):
    metadata, transport = resolver(lambda request: httpx.Response(200, json={"items": [{}]}))

    with pytest.raises(UpstreamError) as exc:
        await metadata.resolve(bad_id)

    assert exc.value.kind is ErrorKind.INPUT_VALIDATION
    assert exc.value.http_status == 400
    assert transport.requests == []


@pytest.mark.asyncio
async def test_success_passes_body_through():
    body = {"kind": "youtube#videoListResponse", "items": [{"id": VIDEO_ID, "snippet": {"title": "t"}}]}
    metadata, transport = resolver(lambda request: httpx.Response(200, json=body))

    assert await metadata.resolve(VIDEO_ID) == body

    sent = transport.requests[0]
    assert sent.url.path == "/youtube/v3/videos"
    assert sent.url.params["id"] == VIDEO_ID
    assert sent.url.params["key"] == "test-key"
    assert sent.url.params["part"] == "snippet,contentDetails,statistics"


@pytest.mark.asyncio
async def test_quota_exceeded():
    payload = {"error": {"code": 403, "message": "quota", "errors": [{"reason": "quotaExceeded"}]}}
    metadata, _ = resolver(lambda request: httpx.Response(403, json=payload))

    with pytest.raises(UpstreamError) as exc:
        await metadata.resolve(VIDEO_ID)

    assert exc.value.kind is ErrorKind.UPSTREAM_AUTH
    assert "quota" in exc.value.message.lower()


@pytest.mark.asyncio
async def test_empty_items_is_not_found():
    metadata, _ = resolver(lambda request: httpx.Response(200, json={"items": []}))

    with pytest.raises(UpstreamError) as exc:
        await metadata.resolve(VIDEO_ID)

    assert exc.value.kind is ErrorKind.UPSTREAM_NOT_FOUND
    assert exc.value.to_body("en")["error"] == "Video not found"


@pytest.mark.asyncio
async def test_missing_api_key_is_configuration_error_without_network():
    metadata, transport = resolver(lambda request: httpx.Response(200, json={}), api_key=None)

    with pytest.raises(UpstreamError) as exc:
        await metadata.resolve(VIDEO_ID)

    assert exc.value.http_status == 500
    assert exc.value.to_body("en")["error"] == "Server configuration error"
    assert transport.requests == []


@pytest.mark.asyncio
async def test_timeout_is_network_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    metadata, _ = resolver(handler)

    with pytest.raises(UpstreamError) as exc:
        await metadata.resolve(VIDEO_ID)

    assert exc.value.kind is ErrorKind.NETWORK
    assert exc.value.http_status == 504
