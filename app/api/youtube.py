from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from app.services.relay import StreamRelay, get_relay

router = APIRouter()


@router.get("/api/youtube")
async def youtube_metadata(
    request: Request,
    id: Optional[str] = Query(None, description="11 character YouTube video id"),
    relay: StreamRelay = Depends(get_relay),
) -> Response:
    """YouTube Data API metadata, passed through unchanged"""
    return await relay.youtube_metadata(request, id)


@router.get("/api/youtube/download")
async def youtube_download(
    request: Request,
    id: Optional[str] = Query(None, description="11 character YouTube video id"),
    quality: Optional[str] = Query(None, description="360p, 480p, 720p or 1080p (default 720p)"),
    format: Optional[str] = Query(None, description="mp4 or mp3 (default mp4)"),
    relay: StreamRelay = Depends(get_relay),
) -> Response:
    """Stream a YouTube video or its audio track as an attachment"""
    return await relay.youtube_download(request, id, quality, format)
