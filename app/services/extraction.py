import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from bs4 import BeautifulSoup

from app.core.errors import ErrorKind, UpstreamError
from app.models.internal import ScrapedVideoRecord, VideoStats

logger = logging.getLogger(__name__)

UNIVERSAL_DATA = "__UNIVERSAL_DATA_FOR_REHYDRATION__"
SIGI_STATE = "SIGI_STATE"
NEXT_DATA = "__NEXT_DATA__"
STATE_BLOBS = (UNIVERSAL_DATA, SIGI_STATE, NEXT_DATA)

# Path step selecting the first value of a mapping (SIGI keys items by id)
FIRST_VALUE = "*"

PRIVATE_STATUS = 10216

ASSIGNMENT_RE = re.compile(
    r"window\.(%s)\s*=\s*" % "|".join(re.escape(name) for name in STATE_BLOBS)
)

_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class ExtractionStrategy:
    """Where one page layout keeps the video item"""
    name: str
    blob: str
    path: Tuple[str, ...]
    status_path: Optional[Tuple[str, ...]] = None


EXTRACTION_STRATEGIES = (
    ExtractionStrategy(
        "universal-video-detail", UNIVERSAL_DATA,
        ("__DEFAULT_SCOPE__", "webapp.video-detail", "itemInfo", "itemStruct"),
        status_path=("__DEFAULT_SCOPE__", "webapp.video-detail", "statusCode"),
    ),
    ExtractionStrategy("universal-default-scope", UNIVERSAL_DATA, ("defaultScope", "webapp", "video", "video")),
    ExtractionStrategy("universal-legacy-scope", UNIVERSAL_DATA, ("__DEFAULT_SCOPE__", "webapp", "video", "video")),
    ExtractionStrategy("universal-webapp", UNIVERSAL_DATA, ("webapp", "video", "video")),
    ExtractionStrategy(
        "sigi-item-module", SIGI_STATE, ("ItemModule", FIRST_VALUE),
        status_path=("VideoPage", "statusCode"),
    ),
    ExtractionStrategy(
        "next-data", NEXT_DATA, ("props", "pageProps", "itemInfo", "itemStruct"),
        status_path=("props", "pageProps", "statusCode"),
    ),
)


def find_state_blobs(html: str) -> Dict[str, Any]:
    """
    Collect the page's embedded state objects, keyed by global name.
    TikTok ships them either as JSON script tags or as window assignments.
    """
    soup = BeautifulSoup(html, "html.parser")
    blobs: Dict[str, Any] = {}

    for name in STATE_BLOBS:
        tag = soup.find("script", id=name)
        if tag is None or not tag.string:
            continue
        try:
            blobs[name] = json.loads(tag.string)
        except ValueError:
            logger.debug(f"Script tag {name} is not valid JSON")

    for script in soup.find_all("script"):
        text = script.string or ""
        for match in ASSIGNMENT_RE.finditer(text):
            name = match.group(1)
            if name in blobs:
                continue
            try:
                blobs[name], _ = _decoder.raw_decode(text, match.end())
            except ValueError:
                logger.debug(f"Assignment to {name} is not valid JSON")

    return blobs


def traverse(data: Any, path: Tuple[str, ...]) -> Any:
    for step in path:
        if not isinstance(data, dict):
            return None
        if step == FIRST_VALUE:
            data = next(iter(data.values()), None)
        else:
            data = data.get(step)
    return data


def build_record(item: Dict[str, Any]) -> Optional[ScrapedVideoRecord]:
    """Record from an item node; None unless it has an id and a media address"""
    video = item.get("video") if isinstance(item.get("video"), dict) else item

    video_id = _text(item.get("id")) or _text(video.get("id"))
    download_addr = _text(video.get("downloadAddr"))
    play_addr = _text(video.get("playAddr"))
    if not video_id or not (download_addr or play_addr):
        return None

    author = item.get("author")
    if isinstance(author, dict):
        author = author.get("uniqueId") or author.get("nickname") or ""

    stats = item.get("stats") if isinstance(item.get("stats"), dict) else {}
    stats_v2 = item.get("statsV2") if isinstance(item.get("statsV2"), dict) else {}

    def count(key: str) -> int:
        return _int(stats.get(key)) or _int(stats_v2.get(key))

    return ScrapedVideoRecord(
        platform_video_id=video_id,
        description=_text(item.get("desc")) or "",
        author=author if isinstance(author, str) else "",
        stats=VideoStats(
            like_count=count("diggCount"),
            share_count=count("shareCount"),
            comment_count=count("commentCount"),
        ),
        download_addr=download_addr,
        play_addr=play_addr,
        cover_url=_text(video.get("cover")) or _text(video.get("dynamicCover")) or _text(video.get("originCover")),
        created_at=_timestamp(item.get("createTime") or video.get("createTime")),
    )


def extract_video_record(html: str) -> ScrapedVideoRecord:
    """
    Run the strategies in order and return the first complete record.
    A page that reached TikTok but matches no layout is an ExtractionError.
    """
    blobs = find_state_blobs(html)
    if not blobs:
        raise UpstreamError(
            ErrorKind.EXTRACTION,
            "tiktok.extraction",
            raw_reason="stateBlobMissing",
            details="no embedded state found in page",
        )

    page_status = 0
    for strategy in EXTRACTION_STRATEGIES:
        data = blobs.get(strategy.blob)
        if data is None:
            continue

        if strategy.status_path:
            page_status = page_status or _int(traverse(data, strategy.status_path))

        item = traverse(data, strategy.path)
        if not isinstance(item, dict):
            continue

        record = build_record(item)
        if record is not None:
            logger.debug(f"Extracted TikTok video {record.platform_video_id} via {strategy.name}")
            return record

    if page_status == PRIVATE_STATUS:
        raise UpstreamError(
            ErrorKind.UPSTREAM_BLOCKED,
            "tiktok.private",
            raw_reason="private",
            details=f"statusCode {page_status}",
            terminal=True,
        )
    if page_status:
        raise UpstreamError(
            ErrorKind.UPSTREAM_NOT_FOUND,
            "tiktok.unavailable",
            raw_reason="unavailable",
            details=f"statusCode {page_status}",
            terminal=True,
        )

    raise UpstreamError(
        ErrorKind.EXTRACTION,
        "tiktok.extraction",
        raw_reason="extractionFailed",
        details=f"no strategy matched ({', '.join(sorted(blobs))} present)",
    )


def _text(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str) and value:
        return value
    return None


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _timestamp(value: Any) -> datetime:
    seconds = _int(value)
    if seconds <= 0:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
