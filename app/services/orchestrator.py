import asyncio
import logging
from typing import List, Optional, Sequence

import httpx

from app.config.settings import Config
from app.core.errors import ErrorKind, ErrorNormalizer, UpstreamError
from app.models.internal import DownloadRequest
from app.services.backends import (
    DownloadBackend,
    ExternalBinaryBackend,
    Extractor,
    NativeLibraryBackend,
    TikTokScraperBackend,
)
from app.services.media import MediaStreamHandle
from app.services.tiktok import TikTokScraper

logger = logging.getLogger(__name__)


class DownloadOrchestrator:
    """
    Try backends in order until one yields a byte stream.
    Terminal failures stop the chain; anything else moves on to the next
    backend. When every backend fails the last error is raised.
    """

    def __init__(self, backends: Sequence[DownloadBackend], attempt_timeout: float):
        self.backends = list(backends)
        self.attempt_timeout = attempt_timeout

    async def download(self, request: DownloadRequest) -> MediaStreamHandle:
        last_error: Optional[UpstreamError] = None
        video_id = request.identifier.id

        for backend in self.backends:
            if not await backend.available():
                logger.info(f"Backend {backend.name} unavailable, skipping")
                continue

            logger.info(f"Trying backend {backend.name} for {video_id}")
            try:
                handle = await asyncio.wait_for(backend.attempt(request), timeout=self.attempt_timeout)
            except asyncio.TimeoutError:
                last_error = ErrorNormalizer.timeout(self.attempt_timeout)
                logger.warning(f"Backend {backend.name} timed out after {self.attempt_timeout}s")
                continue
            except UpstreamError as e:
                last_error = e
                if e.terminal:
                    logger.warning(f"Backend {backend.name} failed terminally: {e.message_key} ({e.raw_reason})")
                    raise
                logger.warning(f"Backend {backend.name} failed: {e.message_key} ({e.raw_reason}), falling back")
                continue
            except Exception as e:
                logger.exception(f"Backend {backend.name} raised unexpectedly")
                last_error = ErrorNormalizer.unexpected(e)
                continue

            if not handle.title.strip():
                handle.title = f"video_{video_id}"
            logger.info(f"Backend {backend.name} succeeded for {video_id}")
            return handle

        if last_error is None:
            raise UpstreamError(
                ErrorKind.EXTRACTION,
                "download.service_unavailable",
                raw_reason="noBackendAvailable",
            )
        raise last_error


def youtube_orchestrator(
    config: Config,
    extractor: Optional[Extractor] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DownloadOrchestrator:
    backends: List[DownloadBackend] = []
    if config.download.use_external_binary:
        backends.append(ExternalBinaryBackend(config))
    backends.append(NativeLibraryBackend(config, extractor=extractor, transport=transport))
    return DownloadOrchestrator(backends, config.download.attempt_timeout)


def tiktok_orchestrator(
    config: Config,
    scraper: TikTokScraper,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DownloadOrchestrator:
    return DownloadOrchestrator(
        [TikTokScraperBackend(config, scraper, transport=transport)],
        config.download.attempt_timeout,
    )
