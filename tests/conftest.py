import asyncio
import json
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import List, Optional

import pytest

from app.config.settings import Config, DownloadConfig, LoggingConfig, TikTokConfig, YouTubeConfig

TIKTOK_ID = "7301234567890123456"

TIKTOK_ITEM = {
    "id": TIKTOK_ID,
    "desc": "Cats doing cat things",
    "createTime": "1700000000",
    "author": {"uniqueId": "catlover", "nickname": "Cat Lover"},
    "stats": {"diggCount": 120, "shareCount": 7, "commentCount": 15, "playCount": 5000},
    "video": {
        "downloadAddr": "https://v16-webapp.tiktokcdn.com/download.mp4",
        "playAddr": "https://v16-webapp.tiktokcdn.com/play.mp4",
        "cover": "https://p16-sign.tiktokcdn.com/cover.jpeg",
    },
}


def universal_html(item=TIKTOK_ITEM, status_code=0) -> str:
    blob = {
        "__DEFAULT_SCOPE__": {
            "webapp.video-detail": {
                "statusCode": status_code,
                "itemInfo": {"itemStruct": item} if item else {},
            }
        }
    }
    return (
        "<html><head>"
        f'<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__" type="application/json">{json.dumps(blob)}</script>'
        "</head><body></body></html>"
    )


class FakePage:
    def __init__(self, html: str, error: Optional[BaseException] = None, delay: float = 0):
        self.html = html
        self.error = error
        self.delay = delay
        self.visited: List[str] = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def content(self) -> str:
        if callable(self.html):
            return self.html(self.visited[-1])
        return self.html


class FakeLauncher:
    """Stands in for Chromium; records every launch and whether it was closed"""

    def __init__(self, html: str = "", error: Optional[BaseException] = None, delay: float = 0):
        self.html = html
        self.error = error
        self.delay = delay
        self.launches: List[SimpleNamespace] = []

    @asynccontextmanager
    async def __call__(self, config: TikTokConfig):
        browser = SimpleNamespace(page=FakePage(self.html, self.error, self.delay), closed=False)
        self.launches.append(browser)
        try:
            yield browser.page
        finally:
            browser.closed = True


def fake_request(disconnected: bool = False):
    """Minimal request object for code that only logs and polls the connection"""
    async def is_disconnected():
        return disconnected

    return SimpleNamespace(
        state=SimpleNamespace(request_id="test"),
        headers={},
        is_disconnected=is_disconnected,
    )


@pytest.fixture
def config(tmp_path):
    return Config(
        youtube=YouTubeConfig(api_key="test-key"),
        download=DownloadConfig(temp_dir=str(tmp_path / "media"), attempt_timeout=5),
        tiktok=TikTokConfig(navigation_timeout=5),
        logging=LoggingConfig(enable_rich=False),
    )
