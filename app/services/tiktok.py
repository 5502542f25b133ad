import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Optional
from urllib.parse import urlparse

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from app.config.settings import TikTokConfig
from app.core.errors import ErrorKind, ErrorNormalizer, UpstreamError
from app.models.internal import ScrapedVideoRecord
from app.services.extraction import extract_video_record
from app.utils.locale import safe_url_for_log
from app.utils.url import is_tiktok_host, is_tiktok_short_link, tiktok_video_id

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

# Yields a ready page; the browser behind it must be gone when the context exits
PageLauncher = Callable[[TikTokConfig], AsyncContextManager[Any]]


@asynccontextmanager
async def launch_chromium_page(config: TikTokConfig) -> AsyncIterator[Any]:
    """Fresh Chromium per call, closed on every exit path"""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless, args=CHROMIUM_ARGS)
        try:
            context = await browser.new_context(user_agent=config.user_agent)
            yield await context.new_page()
        finally:
            await browser.close()


class TikTokScraper:
    """
    Resolve a TikTok URL into a ScrapedVideoRecord by rendering the page in
    an isolated headless browser and reading its embedded state.
    """

    def __init__(
        self,
        config: TikTokConfig,
        launcher: Optional[PageLauncher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.launcher = launcher or launch_chromium_page
        self.transport = transport

    async def scrape(self, url: str) -> ScrapedVideoRecord:
        canonical = await self.normalize_url(url)
        logger.info(f"Scraping TikTok page {safe_url_for_log(canonical)}")

        html = await self._render(canonical)
        return extract_video_record(html)

    async def normalize_url(self, url: str) -> str:
        """Canonical tiktok.com/@user/video/<id> URL, following short links"""
        if is_tiktok_short_link(url):
            url = await self._follow_short_link(url)

        if tiktok_video_id(url) is None:
            raise UpstreamError(
                ErrorKind.INPUT_VALIDATION,
                "tiktok.invalid_url",
                title_key="title.tiktok_missing",
                details=url[:200],
            )
        return url

    async def _follow_short_link(self, url: str) -> str:
        """
        Follow redirects hop by hop. A hop leaving tiktok.com is rejected
        without being requested.
        """
        async with httpx.AsyncClient(
            transport=self.transport,
            follow_redirects=False,
            timeout=httpx.Timeout(self.config.redirect_timeout),
            headers={"User-Agent": self.config.user_agent},
        ) as client:
            current = url
            for _ in range(self.config.max_redirects):
                try:
                    response = await client.get(current)
                except httpx.HTTPError as e:
                    raise ErrorNormalizer.from_http_error(e, "TikTok") from e

                if not response.is_redirect:
                    return str(response.url)

                next_url = str(response.url.join(response.headers["location"]))
                if not is_tiktok_host(urlparse(next_url).hostname):
                    raise UpstreamError(
                        ErrorKind.INPUT_VALIDATION,
                        "tiktok.invalid_url",
                        title_key="title.tiktok_missing",
                        details=next_url[:200],
                    )
                if tiktok_video_id(next_url) is not None:
                    return next_url
                current = next_url

        raise UpstreamError(
            ErrorKind.INPUT_VALIDATION,
            "tiktok.redirect_loop",
            title_key="title.tiktok_missing",
            details=url[:200],
        )

    async def _render(self, url: str) -> str:
        try:
            async with self.launcher(self.config) as page:
                try:
                    await page.goto(
                        url,
                        wait_until="networkidle",
                        timeout=self.config.navigation_timeout * 1000,
                    )
                    return await page.content()
                except PlaywrightTimeoutError as e:
                    raise UpstreamError(
                        ErrorKind.NETWORK,
                        "tiktok.navigation_timeout",
                        params={"seconds": int(self.config.navigation_timeout)},
                        http_status=504,
                        raw_reason="navigationTimeout",
                        details=_first_line(e),
                    ) from e
                except PlaywrightError as e:
                    raise UpstreamError(
                        ErrorKind.NETWORK,
                        "tiktok.navigation_failed",
                        params={"reason": _first_line(e)},
                        raw_reason="navigationFailed",
                        details=_first_line(e),
                    ) from e
        except PlaywrightError as e:
            raise UpstreamError(
                ErrorKind.INTERNAL,
                "tiktok.browser_unavailable",
                params={"reason": _first_line(e)},
                raw_reason="browserUnavailable",
                details=_first_line(e),
            ) from e


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0][:300] if text else type(exc).__name__
