from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Platform(str, Enum):
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"


class Quality(str, Enum):
    P360 = "360p"
    P480 = "480p"
    P720 = "720p"
    P1080 = "1080p"

    @property
    def height(self) -> int:
        return int(self.value[:-1])


class MediaFormat(str, Enum):
    MP4 = "mp4"
    MP3 = "mp3"

    @property
    def audio_only(self) -> bool:
        return self is MediaFormat.MP3

    @property
    def content_type(self) -> str:
        return "audio/mpeg" if self is MediaFormat.MP3 else "video/mp4"


class VideoIdentifier(BaseModel):
    """A platform video reference"""
    model_config = ConfigDict(frozen=True)

    platform: Platform
    id: str
    source_url: str


class DownloadRequest(BaseModel):
    """Internal download request (separated from HTTP concerns)"""
    model_config = ConfigDict(frozen=True)

    identifier: VideoIdentifier
    quality: Quality = Quality.P720
    format: MediaFormat = MediaFormat.MP4
    watermark_free: bool = False

    @property
    def audio_only(self) -> bool:
        return self.format.audio_only


class VideoStats(BaseModel):
    like_count: int = 0
    share_count: int = 0
    comment_count: int = 0


class ScrapedVideoRecord(BaseModel):
    """Video data pulled out of a rendered TikTok page"""
    platform_video_id: str
    description: str = ""
    author: str = ""
    stats: VideoStats = VideoStats()
    download_addr: Optional[str] = None
    play_addr: Optional[str] = None
    cover_url: Optional[str] = None
    created_at: datetime

    @property
    def media_url(self) -> Optional[str]:
        return self.download_addr or self.play_addr

    def media_url_for(self, watermark_free: bool) -> Optional[str]:
        # playAddr is usually the watermark-free rendition, but not always
        if watermark_free:
            return self.play_addr or self.download_addr
        return self.media_url

