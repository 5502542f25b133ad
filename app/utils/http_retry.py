from typing import Dict, Optional
from urllib.parse import urlparse

import httpx

UA_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

UA_SAFARI = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.0 Safari/605.1.15"
)

LANG_US = "en-US,en;q=0.9"
LANG_GB = "en-GB,en;q=0.8"


class HttpRetryClient:
    """
    HTTP client with 403 recovery for media CDNs.
    Adjusts headers step by step until the CDN stops refusing.
    """

    def __init__(self, client: httpx.AsyncClient, user_agent: str = UA_CHROME):
        self.client = client
        self.user_agent = user_agent

    def _get_base_headers(self, url: str) -> Dict[str, str]:
        parsed = urlparse(url)
        referer = f"{parsed.scheme}://{parsed.netloc}/"

        return {
            "User-Agent": self.user_agent,
            "Accept": "*/*",
            "Accept-Language": LANG_US,
            "Accept-Encoding": "identity",
            "Connection": "keep-alive",
            "Referer": referer,
        }

    async def fetch_with_retry(
        self,
        url: str,
        original_page_url: Optional[str] = None,
        incoming_range: Optional[str] = None
    ) -> httpx.Response:
        """
        Fetch URL as a stream with the 403 retry plan.
        Returns the first non-403 response or the last 403. Refused responses
        are closed before the next attempt; the caller owns the returned one.
        """
        headers = self._get_base_headers(url)
        if original_page_url:
            headers["Referer"] = original_page_url
        if incoming_range:
            headers["Range"] = incoming_range

        resp = await self._send(url, headers)
        if resp.status_code != 403:
            return resp

        # 1. Origin-only referer, unless the page URL already is one
        if original_page_url:
            parsed = urlparse(original_page_url)
            origin = f"{parsed.scheme}://{parsed.netloc}/"
            if origin != headers["Referer"]:
                headers["Referer"] = origin
                resp = await self._retry(resp, url, headers)
                if resp.status_code != 403:
                    return resp

        # 2. Language
        headers["Accept-Language"] = LANG_GB
        resp = await self._retry(resp, url, headers)
        if resp.status_code != 403:
            return resp

        # 3. Fetch metadata headers
        headers.update({
            "Sec-Fetch-Site": "same-site",
            "Sec-Fetch-Mode": "no-cors",
            "Sec-Fetch-Dest": "video",
        })
        resp = await self._retry(resp, url, headers)
        if resp.status_code != 403:
            return resp

        # 4. Explicit range
        if "Range" not in headers:
            headers["Range"] = "bytes=0-"
            resp = await self._retry(resp, url, headers)
            if resp.status_code != 403:
                return resp

        # 5. User agent, last resort
        headers["User-Agent"] = UA_SAFARI
        return await self._retry(resp, url, headers)

    async def _retry(self, previous: httpx.Response, url: str, headers: Dict[str, str]) -> httpx.Response:
        await previous.aclose()
        return await self._send(url, headers)

    async def _send(self, url: str, headers: Dict[str, str]) -> httpx.Response:
        req = self.client.build_request("GET", url, headers=headers)
        return await self.client.send(req, stream=True)
