import logging
from typing import Any, Dict, Optional, Union

import httpx

from app.config.settings import YouTubeConfig
from app.core.errors import ErrorKind, ErrorNormalizer, UpstreamError
from app.models.internal import VideoIdentifier
from app.utils.url import youtube_identifier

logger = logging.getLogger(__name__)

VIDEO_PARTS = "snippet,contentDetails,statistics"


class MetadataResolver:
    """YouTube Data API v3 lookup. One request, no retries."""

    def __init__(self, config: YouTubeConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def resolve(self, identifier: Union[VideoIdentifier, str, None]) -> Dict[str, Any]:
        """
        Return the `videos` response body unchanged.
        Invalid ids and a missing API key fail before any network call.
        """
        if not isinstance(identifier, VideoIdentifier):
            identifier = youtube_identifier(identifier)

        if not self.config.api_key:
            raise UpstreamError(
                ErrorKind.UPSTREAM_AUTH,
                "youtube.missing_api_key",
                http_status=500,
                title_key="title.config_error",
                raw_reason="missingApiKey",
            )

        params = {"part": VIDEO_PARTS, "id": identifier.id, "key": self.config.api_key}
        url = f"{self.config.api_base_url.rstrip('/')}/videos"

        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=httpx.Timeout(self.config.metadata_timeout),
            ) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"YouTube API request failed for {identifier.id}: {type(e).__name__}")
            raise ErrorNormalizer.from_http_error(e, "YouTube API") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400 or (isinstance(data, dict) and "error" in data):
            logger.warning(f"YouTube API error {response.status_code} for {identifier.id}")
            raise ErrorNormalizer.from_youtube_api(response.status_code, data or {})

        if not isinstance(data, dict):
            raise UpstreamError(
                ErrorKind.INTERNAL,
                "youtube.api_error",
                params={"message": "Malformed response"},
                title_key="title.youtube_api_error",
                raw_reason="malformedResponse",
            )

        if not data.get("items"):
            raise UpstreamError(
                ErrorKind.UPSTREAM_NOT_FOUND,
                "youtube.not_found",
                title_key="title.video_not_found",
            )

        return data
