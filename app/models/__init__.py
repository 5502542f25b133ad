from .internal import DownloadRequest, MediaFormat, Platform, Quality, ScrapedVideoRecord, VideoIdentifier
from .request import TikTokQuery, YouTubeDownloadQuery
from .response import ErrorBody, TikTokVideoInfo

__all__ = [
    "DownloadRequest",
    "ErrorBody",
    "MediaFormat",
    "Platform",
    "Quality",
    "ScrapedVideoRecord",
    "TikTokQuery",
    "TikTokVideoInfo",
    "VideoIdentifier",
    "YouTubeDownloadQuery",
]
