import httpx
import pytest

from app.utils.http_retry import LANG_GB, UA_SAFARI, HttpRetryClient

MEDIA_URL = "https://v16-webapp.tiktokcdn.com/video.mp4"


class BodyStream(httpx.AsyncByteStream):
    def __init__(self):
        self.closed = False

    async def __aiter__(self):
        yield b"video"

    async def aclose(self):
        self.closed = True


class RefusingCdn:
    """Answers 403 to the first `refusals` requests, then 200"""

    def __init__(self, refusals):
        self.refusals = refusals
        self.requests = []
        self.bodies = []

    def __call__(self, request):
        self.requests.append(request)
        status = 403 if len(self.requests) <= self.refusals else 200
        body = BodyStream()
        self.bodies.append(body)
        return httpx.Response(status, stream=body)


async def fetch(cdn, original_page_url):
    async with httpx.AsyncClient(transport=httpx.MockTransport(cdn)) as client:
        response = await HttpRetryClient(client).fetch_with_retry(MEDIA_URL, original_page_url=original_page_url)
        await response.aread()
        return response


@pytest.mark.asyncio
async def test_headers_escalate_until_cdn_accepts():
    cdn = RefusingCdn(refusals=3)

    response = await fetch(cdn, "https://www.tiktok.com/")

    assert response.status_code == 200
    assert len(cdn.requests) == 4
    first, second, third, fourth = [r.headers for r in cdn.requests]

    assert first["referer"] == "https://www.tiktok.com/"
    assert second["referer"] == "https://www.tiktok.com/"
    assert second["accept-language"] == LANG_GB
    assert "sec-fetch-dest" not in second
    assert third["sec-fetch-dest"] == "video"
    assert "range" not in third
    assert fourth["range"] == "bytes=0-"
    assert all(b.closed for b in cdn.bodies[:3])


@pytest.mark.asyncio
async def test_page_url_is_reduced_to_origin_first():
    cdn = RefusingCdn(refusals=1)

    response = await fetch(cdn, "https://www.tiktok.com/@catlover/video/7301234567890123456")

    assert response.status_code == 200
    assert cdn.requests[0].headers["referer"] == "https://www.tiktok.com/@catlover/video/7301234567890123456"
    assert cdn.requests[1].headers["referer"] == "https://www.tiktok.com/"
    assert cdn.requests[1].headers["accept-language"] != LANG_GB
    assert cdn.bodies[0].closed


@pytest.mark.asyncio
async def test_last_refusal_is_returned_after_user_agent_switch():
    cdn = RefusingCdn(refusals=10)

    response = await fetch(cdn, "https://www.tiktok.com/")

    assert response.status_code == 403
    assert len(cdn.requests) == 5
    assert cdn.requests[-1].headers["user-agent"] == UA_SAFARI
    assert all(b.closed for b in cdn.bodies[:-1])
