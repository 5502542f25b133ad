import asyncio
import json

import httpx
import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from app.core.errors import ErrorKind, UpstreamError
from app.services.extraction import extract_video_record, find_state_blobs
from app.services.tiktok import TikTokScraper
from conftest import TIKTOK_ID, TIKTOK_ITEM, FakeLauncher, universal_html

CANONICAL_URL = f"https://www.tiktok.com/@catlover/video/{TIKTOK_ID}"


def redirecting_transport(locations, seen):
    """Each request answers with the next Location in `locations`"""
    hops = iter(locations)

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(301, headers={"location": next(hops)})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_scrape_returns_record(config):
    launcher = FakeLauncher(universal_html())
    scraper = TikTokScraper(config.tiktok, launcher=launcher)

    record = await scraper.scrape(CANONICAL_URL)

    assert record.platform_video_id == TIKTOK_ID
    assert record.author == "catlover"
    assert record.stats.like_count == 120
    assert record.media_url == TIKTOK_ITEM["video"]["downloadAddr"]
    assert launcher.launches[0].page.visited == [CANONICAL_URL]
    assert launcher.launches[0].closed


@pytest.mark.asyncio
async def test_short_link_to_foreign_domain_is_rejected_before_browser(config):
    seen = []
    launcher = FakeLauncher(universal_html())
    scraper = TikTokScraper(
        config.tiktok,
        launcher=launcher,
        transport=redirecting_transport(["https://evil.example.com/@x/video/1"], seen),
    )

    with pytest.raises(UpstreamError) as exc:
        await scraper.scrape("https://vm.tiktok.com/ZMabc123/")

    assert exc.value.kind is ErrorKind.INPUT_VALIDATION
    assert seen == ["https://vm.tiktok.com/ZMabc123/"]
    assert launcher.launches == []


@pytest.mark.asyncio
async def test_short_link_resolves_to_canonical_url(config):
    seen = []
    launcher = FakeLauncher(universal_html())
    scraper = TikTokScraper(
        config.tiktok,
        launcher=launcher,
        transport=redirecting_transport(["https://www.tiktok.com/t/abc", CANONICAL_URL + "?is_from_webapp=1"], seen),
    )

    assert await scraper.normalize_url("https://vm.tiktok.com/ZMabc123/") == CANONICAL_URL + "?is_from_webapp=1"
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_short_link_redirect_loop(config):
    seen = []
    scraper = TikTokScraper(
        config.tiktok,
        launcher=FakeLauncher(),
        transport=redirecting_transport(["https://vm.tiktok.com/again/"] * 10, seen),
    )

    with pytest.raises(UpstreamError) as exc:
        await scraper.normalize_url("https://vm.tiktok.com/ZMabc123/")

    assert exc.value.message_key == "tiktok.redirect_loop"
    assert len(seen) == config.tiktok.max_redirects


@pytest.mark.asyncio
async def test_non_video_url_is_rejected(config):
    launcher = FakeLauncher(universal_html())
    scraper = TikTokScraper(config.tiktok, launcher=launcher)

    with pytest.raises(UpstreamError) as exc:
        await scraper.scrape("https://www.tiktok.com/@catlover")

    assert exc.value.kind is ErrorKind.INPUT_VALIDATION
    assert launcher.launches == []


@pytest.mark.asyncio
async def test_navigation_timeout_is_network_error_and_browser_closed(config):
    launcher = FakeLauncher(error=PlaywrightTimeoutError("Timeout 5000ms exceeded"))
    scraper = TikTokScraper(config.tiktok, launcher=launcher)

    with pytest.raises(UpstreamError) as exc:
        await scraper.scrape(CANONICAL_URL)

    assert exc.value.kind is ErrorKind.NETWORK
    assert exc.value.http_status == 504
    assert launcher.launches[0].closed


@pytest.mark.asyncio
async def test_missing_item_path_is_extraction_error(config):
    launcher = FakeLauncher(universal_html(item=None))
    scraper = TikTokScraper(config.tiktok, launcher=launcher)

    with pytest.raises(UpstreamError) as exc:
        await scraper.scrape(CANONICAL_URL)

    assert exc.value.kind is ErrorKind.EXTRACTION
    assert exc.value.kind is not ErrorKind.NETWORK
    assert exc.value.raw_reason == "extractionFailed"
    assert not exc.value.terminal
    assert launcher.launches[0].closed


@pytest.mark.asyncio
async def test_concurrent_scrapes_use_separate_browsers(config):
    other_id = TIKTOK_ID[:-1] + "9"
    other_url = f"https://www.tiktok.com/@someone/video/{other_id}"

    def page_for(url):
        video_id = url.rsplit("/", 1)[-1]
        return universal_html(dict(TIKTOK_ITEM, id=video_id))

    launcher = FakeLauncher(page_for, delay=0.05)
    scraper = TikTokScraper(config.tiktok, launcher=launcher)

    first_record, second_record = await asyncio.gather(scraper.scrape(CANONICAL_URL), scraper.scrape(other_url))

    assert first_record.platform_video_id == TIKTOK_ID
    assert second_record.platform_video_id == other_id
    assert len(launcher.launches) == 2
    first, second = launcher.launches
    assert first.page is not second.page
    assert first.closed and second.closed


def test_sigi_state_window_assignment():
    legacy = dict(TIKTOK_ITEM, author="catlover")
    html = f"<html><script>window['x']=1;window.SIGI_STATE = {json.dumps({'ItemModule': {TIKTOK_ID: legacy}})};</script></html>"

    record = extract_video_record(html)

    assert record.platform_video_id == TIKTOK_ID
    assert record.author == "catlover"


def test_next_data_blob():
    blob = {"props": {"pageProps": {"itemInfo": {"itemStruct": TIKTOK_ITEM}}}}
    html = f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(blob)}</script>'

    assert extract_video_record(html).description == "Cats doing cat things"


def test_legacy_default_scope_path():
    blob = {"defaultScope": {"webapp": {"video": {"video": {"id": TIKTOK_ID, "playAddr": "https://cdn/p.mp4"}}}}}
    html = f'<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__">{json.dumps(blob)}</script>'

    record = extract_video_record(html)

    assert record.media_url == "https://cdn/p.mp4"
    assert record.media_url_for(watermark_free=True) == "https://cdn/p.mp4"


def test_watermark_free_prefers_play_address():
    record = extract_video_record(universal_html())

    assert record.media_url_for(watermark_free=True) == TIKTOK_ITEM["video"]["playAddr"]
    assert record.media_url_for(watermark_free=False) == TIKTOK_ITEM["video"]["downloadAddr"]


def test_private_video_status():
    with pytest.raises(UpstreamError) as exc:
        extract_video_record(universal_html(item=None, status_code=10216))

    assert exc.value.kind is ErrorKind.UPSTREAM_BLOCKED
    assert exc.value.terminal


def test_page_without_state():
    assert find_state_blobs("<html><body>captcha</body></html>") == {}

    with pytest.raises(UpstreamError) as exc:
        extract_video_record("<html><body>captcha</body></html>")

    assert exc.value.raw_reason == "stateBlobMissing"
    assert not exc.value.terminal
