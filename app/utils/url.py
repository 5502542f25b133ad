import re
from typing import Optional
from urllib.parse import urlparse

from app.core.errors import ErrorKind, UpstreamError
from app.models.internal import Platform, VideoIdentifier

YOUTUBE_ID_RE = re.compile(r'^[A-Za-z0-9_-]{11}$')
TIKTOK_ID_RE = re.compile(r'^\d+$')
TIKTOK_VIDEO_PATH_RE = re.compile(r'^/@[\w.-]+/video/(\d+)/?$')

TIKTOK_SHORT_HOSTS = ("vm.tiktok.com", "vt.tiktok.com")
TIKTOK_FALLBACK_URL = "https://www.tiktok.com/@user/video/{video_id}"


def youtube_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def youtube_identifier(video_id: Optional[str]) -> VideoIdentifier:
    """Validate a bare YouTube id; never touches the network"""
    if not video_id:
        raise UpstreamError(
            ErrorKind.INPUT_VALIDATION,
            "youtube.missing_id",
            title_key="title.missing_id",
        )
    if not YOUTUBE_ID_RE.match(video_id):
        raise UpstreamError(
            ErrorKind.INPUT_VALIDATION,
            "youtube.invalid_id",
            title_key="title.invalid_id",
            details=video_id[:50],
        )
    return VideoIdentifier(platform=Platform.YOUTUBE, id=video_id, source_url=youtube_watch_url(video_id))


def is_tiktok_host(hostname: Optional[str]) -> bool:
    if not hostname:
        return False
    hostname = hostname.lower()
    return hostname == "tiktok.com" or hostname.endswith(".tiktok.com")


def is_tiktok_short_link(url: str) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    return host in TIKTOK_SHORT_HOSTS or (is_tiktok_host(host) and parsed.path.startswith("/t/"))


def tiktok_video_id(url: str) -> Optional[str]:
    """Video id of a canonical tiktok.com/@user/video/<id> URL, else None"""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not is_tiktok_host(parsed.hostname):
        return None
    match = TIKTOK_VIDEO_PATH_RE.match(parsed.path)
    return match.group(1) if match else None


def tiktok_identifier(video_id: Optional[str] = None, url: Optional[str] = None) -> VideoIdentifier:
    """
    Build a TikTok identifier. A URL is preferred; a bare id only works with a
    placeholder username, which TikTok usually redirects.
    """
    if url:
        parsed = urlparse(url.strip())
        if parsed.scheme not in ("http", "https") or not is_tiktok_host(parsed.hostname):
            raise UpstreamError(
                ErrorKind.INPUT_VALIDATION,
                "tiktok.invalid_url",
                title_key="title.tiktok_missing",
                details=url[:200],
            )
        url = url.strip()
        return VideoIdentifier(platform=Platform.TIKTOK, id=tiktok_video_id(url) or "", source_url=url)

    if video_id:
        if not TIKTOK_ID_RE.match(video_id):
            raise UpstreamError(
                ErrorKind.INPUT_VALIDATION,
                "tiktok.invalid_id",
                title_key="title.tiktok_missing",
                details=video_id[:50],
            )
        return VideoIdentifier(
            platform=Platform.TIKTOK,
            id=video_id,
            source_url=TIKTOK_FALLBACK_URL.format(video_id=video_id),
        )

    raise UpstreamError(
        ErrorKind.INPUT_VALIDATION,
        "tiktok.missing",
        title_key="title.tiktok_missing",
    )

