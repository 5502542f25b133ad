from typing import Optional

from pydantic import BaseModel, Field

from app.models.internal import DownloadRequest, MediaFormat, Quality, VideoIdentifier


class YouTubeDownloadQuery(BaseModel):
    """Query parameters of /api/youtube/download"""
    id: Optional[str] = Field(None, description="11 character YouTube video id")
    quality: Quality = Field(Quality.P720, description="Maximum video height")
    format: MediaFormat = Field(MediaFormat.MP4, description="mp4 video or mp3 audio")

    def to_request(self, identifier: VideoIdentifier) -> DownloadRequest:
        return DownloadRequest(identifier=identifier, quality=self.quality, format=self.format)


class TikTokQuery(BaseModel):
    """Query parameters of the /api/tiktok endpoints"""
    id: Optional[str] = Field(None, description="Numeric TikTok video id (url preferred)")
    url: Optional[str] = Field(None, description="TikTok video URL or short link")
    watermark_free: bool = Field(False, description="Prefer the watermark-free rendition")

    def to_request(self, identifier: VideoIdentifier) -> DownloadRequest:
        return DownloadRequest(identifier=identifier, watermark_free=self.watermark_free)
