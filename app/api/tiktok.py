from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from app.services.relay import StreamRelay, get_relay

router = APIRouter()


@router.get("/api/tiktok")
async def tiktok_info(
    request: Request,
    id: Optional[str] = Query(None, description="Numeric TikTok video id"),
    url: Optional[str] = Query(None, description="TikTok video URL or short link"),
    relay: StreamRelay = Depends(get_relay),
) -> Response:
    """Scraped TikTok video metadata"""
    return await relay.tiktok_info(request, id, url)


@router.get("/api/tiktok/download")
async def tiktok_download(
    request: Request,
    id: Optional[str] = Query(None, description="Numeric TikTok video id"),
    url: Optional[str] = Query(None, description="TikTok video URL or short link"),
    watermark_free: Optional[str] = Query(None, alias="watermarkFree", description="'true' to prefer the watermark-free rendition"),
    relay: StreamRelay = Depends(get_relay),
) -> Response:
    """Stream a TikTok video as an attachment"""
    return await relay.tiktok_download(request, id, url, watermark_free)
