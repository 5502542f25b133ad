import asyncio
import importlib.util
from typing import Optional

import yt_dlp.version
from fastapi import APIRouter, Request

from app.config.settings import YtDlpConfig
from app.i18n import i18n
from app.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder

router = APIRouter()

VERSION_TIMEOUT = 5.0


async def ytdlp_binary_version(ytdlp: YtDlpConfig) -> Optional[str]:
    """Version printed by the external binary, None when it is missing or broken"""
    if SubprocessExecutor.which(ytdlp.binary) is None:
        return None
    try:
        result = await SubprocessExecutor.run(YTDLPCommandBuilder.build_version_command(ytdlp), timeout=VERSION_TIMEOUT)
    except (OSError, asyncio.TimeoutError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.decode(errors="ignore").strip() or None


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    return {"status": i18n.get("health.status")}


@router.get("/health/full")
async def health_check_full(request: Request):
    """Backend availability, checked on every call"""
    config = request.app.state.config

    return {
        "status": i18n.get("health.status"),
        "ytdlp_binary": SubprocessExecutor.which(config.ytdlp.binary),
        "ytdlp_binary_version": await ytdlp_binary_version(config.ytdlp),
        "ytdlp_binary_enabled": config.download.use_external_binary,
        "ytdlp_library_version": yt_dlp.version.__version__,
        "playwright_available": importlib.util.find_spec("playwright") is not None,
        "youtube_api_key_configured": bool(config.youtube.api_key),
    }
