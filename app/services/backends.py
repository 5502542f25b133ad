import asyncio
import logging
import os
import shutil
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError

from app.config.settings import Config
from app.core.errors import ErrorKind, ErrorNormalizer, UpstreamError
from app.models.internal import DownloadRequest
from app.services.format import FormatDecision
from app.services.media import (
    MediaStreamHandle,
    close_response,
    file_chunks,
    remove_tree,
    response_chunks,
)
from app.services.tiktok import TikTokScraper
from app.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder
from app.utils.http_retry import HttpRetryClient

logger = logging.getLogger(__name__)

Extractor = Callable[[str, Dict[str, Any]], Dict[str, Any]]

TIKTOK_REFERER = "https://www.tiktok.com/"


class DownloadBackend:
    """One way of obtaining media bytes"""
    name = "backend"

    async def available(self) -> bool:
        """Cheap usability check; must not spend a network attempt"""
        return True

    async def attempt(self, request: DownloadRequest) -> MediaStreamHandle:
        raise NotImplementedError


class ExternalBinaryBackend(DownloadBackend):
    """
    yt-dlp executable writing into a per-request temp directory.
    The file is relayed afterwards and the directory removed by the handle.
    """
    name = "yt-dlp-binary"

    def __init__(self, config: Config):
        self.ytdlp = config.ytdlp
        self.download = config.download

    async def available(self) -> bool:
        # Re-checked on every request
        return SubprocessExecutor.which(self.ytdlp.binary) is not None

    async def attempt(self, request: DownloadRequest) -> MediaStreamHandle:
        request_dir = os.path.join(self.download.temp_dir, uuid.uuid4().hex)
        os.makedirs(request_dir, exist_ok=True)
        output_template = os.path.join(request_dir, "media.%(ext)s")

        cmd = YTDLPCommandBuilder.build_download_command(
            request.identifier.source_url,
            FormatDecision.decide(request),
            output_template,
            request.audio_only,
            self.ytdlp,
            self.download,
        )
        logger.info(f"Running yt-dlp for {request.identifier.id} into {request_dir}")

        try:
            try:
                result = await SubprocessExecutor.run(cmd, timeout=self.download.attempt_timeout)
            except asyncio.TimeoutError:
                raise ErrorNormalizer.timeout(self.download.attempt_timeout) from None

            if result.returncode != 0:
                raise ErrorNormalizer.from_ytdlp_output(result.stderr.decode(errors="ignore"))

            title, path = self._parse_output(result.stdout.decode(errors="ignore"), request_dir)
            if path is None:
                raise UpstreamError(ErrorKind.INTERNAL, "download.output_missing", raw_reason="outputMissing")
        except BaseException:
            shutil.rmtree(request_dir, ignore_errors=True)
            raise

        return MediaStreamHandle(
            chunks=file_chunks(path, self.download.chunk_size),
            title=title,
            extension=request.format.value,
            content_type=request.format.content_type,
            content_length=os.path.getsize(path),
            cleanups=[remove_tree(request_dir)],
        )

    @staticmethod
    def _parse_output(stdout: str, request_dir: str) -> Tuple[str, Optional[str]]:
        """Title and file path from the two --print lines"""
        lines = [line.strip() for line in stdout.splitlines() if line.strip()]
        title = lines[0] if len(lines) >= 2 else ""

        if lines and os.path.isfile(lines[-1]):
            return title, lines[-1]

        # yt-dlp may have renamed the file during post-processing
        found = sorted(
            name for name in os.listdir(request_dir)
            if not name.endswith((".part", ".ytdl"))
        )
        if not found:
            return title, None
        return title, os.path.join(request_dir, found[0])


def extract_info(url: str, options: Dict[str, Any]) -> Dict[str, Any]:
    """Blocking yt_dlp metadata extraction, run in a worker thread"""
    with yt_dlp.YoutubeDL(options) as ydl:
        return ydl.extract_info(url, download=False)


class NativeLibraryBackend(DownloadBackend):
    """
    yt_dlp used in-process to resolve a direct stream URL, relayed with httpx.
    Nothing touches the disk.
    """
    name = "yt-dlp-library"

    def __init__(
        self,
        config: Config,
        extractor: Optional[Extractor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.download = config.download
        self.extractor = extractor or extract_info
        self.transport = transport

    def _options(self) -> Dict[str, Any]:
        return {
            'quiet': True,
            'no_warnings': True,
            'noplaylist': True,
            'skip_download': True,
            'socket_timeout': self.download.socket_timeout,
            'retries': self.download.retries,
        }

    async def attempt(self, request: DownloadRequest) -> MediaStreamHandle:
        try:
            info = await asyncio.to_thread(self.extractor, request.identifier.source_url, self._options())
        except DownloadError as e:
            raise ErrorNormalizer.from_ytdlp_output(str(e)) from e

        fmt = FormatDecision.select_native_format(info or {}, request)
        if fmt is None:
            raise UpstreamError(
                ErrorKind.EXTRACTION,
                "download.format_unavailable",
                raw_reason="formatUnavailable",
            )
        logger.info(
            f"Native backend picked format {fmt.get('format_id')} "
            f"({FormatDecision.native_hint(request)}) for {request.identifier.id}"
        )

        client = httpx.AsyncClient(
            transport=self.transport,
            timeout=httpx.Timeout(float(self.download.socket_timeout)),
            follow_redirects=True,
        )
        try:
            req = client.build_request("GET", fmt["url"], headers=fmt.get("http_headers") or {})
            response = await client.send(req, stream=True)
            if response.status_code >= 400:
                await response.aclose()
                raise ErrorNormalizer.from_cdn_status(response.status_code, "youtube")
        except httpx.HTTPError as e:
            await client.aclose()
            raise ErrorNormalizer.from_http_error(e, "YouTube") from e
        except BaseException:
            await client.aclose()
            raise

        return MediaStreamHandle(
            chunks=response_chunks(response, self.download.chunk_size, "YouTube"),
            title=info.get("title") or "",
            extension=request.format.value,
            content_type=request.format.content_type,
            cleanups=[close_response(response, client)],
        )


class TikTokScraperBackend(DownloadBackend):
    """Headless-browser scrape followed by a direct CDN fetch"""
    name = "tiktok-scraper"

    def __init__(
        self,
        config: Config,
        scraper: TikTokScraper,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.download = config.download
        self.tiktok = config.tiktok
        self.scraper = scraper
        self.transport = transport

    async def attempt(self, request: DownloadRequest) -> MediaStreamHandle:
        record = await self.scraper.scrape(request.identifier.source_url)

        media_url = record.media_url_for(request.watermark_free)
        if not media_url:
            raise UpstreamError(
                ErrorKind.EXTRACTION,
                "tiktok.no_media_url",
                raw_reason="mediaUrlMissing",
            )

        client = httpx.AsyncClient(
            transport=self.transport,
            timeout=httpx.Timeout(self.tiktok.redirect_timeout),
            follow_redirects=True,
        )
        try:
            response = await HttpRetryClient(client, self.tiktok.user_agent).fetch_with_retry(
                media_url,
                original_page_url=TIKTOK_REFERER,
            )
            if response.status_code >= 400:
                await response.aclose()
                raise ErrorNormalizer.from_cdn_status(response.status_code, "tiktok")
        except httpx.HTTPError as e:
            await client.aclose()
            raise ErrorNormalizer.from_http_error(e, "TikTok") from e
        except BaseException:
            await client.aclose()
            raise

        return MediaStreamHandle(
            chunks=response_chunks(response, self.download.chunk_size, "TikTok"),
            title=f"tiktok_{record.platform_video_id}",
            extension="mp4",
            content_type="video/mp4",
            cleanups=[close_response(response, client)],
        )
