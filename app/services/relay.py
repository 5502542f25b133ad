import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError
from starlette.types import Receive, Scope, Send

from app.config.settings import Config
from app.core.errors import ErrorKind, ErrorNormalizer, UpstreamError
from app.core.logging import log_error, log_info, log_warning
from app.models.internal import MediaFormat, Quality
from app.models.request import TikTokQuery, YouTubeDownloadQuery
from app.models.response import TikTokVideoInfo
from app.services.media import MediaStreamHandle
from app.services.metadata import MetadataResolver
from app.services.orchestrator import DownloadOrchestrator, tiktok_orchestrator, youtube_orchestrator
from app.services.tiktok import TikTokScraper
from app.utils.locale import get_locale
from app.utils.url import tiktok_identifier, youtube_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Status code for a client that went away before a response was produced
CLIENT_CLOSED_REQUEST = 499


class MediaStreamingResponse(StreamingResponse):
    """
    StreamingResponse that owns a media handle. The body iterator and the
    handle are closed when the ASGI call returns, including when sending
    fails because the client went away.
    """

    def __init__(self, handle: MediaStreamHandle, content: Any, **kwargs: Any):
        super().__init__(content, **kwargs)
        self.handle = handle

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await asyncio.shield(self._close())

    async def _close(self) -> None:
        aclose = getattr(self.body_iterator, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.handle.aclose()


class StreamRelay:
    """
    HTTP-facing side of the service: validates parameters, dispatches to the
    resolver or an orchestrator and turns results into responses.
    Built per request; holds no state between requests.
    """

    def __init__(
        self,
        config: Config,
        resolver: Optional[MetadataResolver] = None,
        youtube: Optional[DownloadOrchestrator] = None,
        scraper: Optional[TikTokScraper] = None,
        tiktok: Optional[DownloadOrchestrator] = None,
    ):
        self.config = config
        self.resolver = resolver or MetadataResolver(config.youtube)
        self.scraper = scraper or TikTokScraper(config.tiktok)
        self.youtube = youtube or youtube_orchestrator(config)
        self.tiktok = tiktok or tiktok_orchestrator(config, self.scraper)

    def locale(self, request: Request) -> str:
        return get_locale(
            request.headers.get("accept-language"),
            self.config.i18n.supported_locales,
            self.config.i18n.default_locale,
        )

    async def youtube_metadata(self, request: Request, video_id: Optional[str]) -> Response:
        try:
            identifier = youtube_identifier(video_id)
            data = await self._guard(request, self.resolver.resolve(identifier))
        except UpstreamError as e:
            return self.error_response(request, e)
        except Exception as e:
            return self.unexpected_response(request, e)

        if data is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return JSONResponse(content=data)

    async def youtube_download(
        self,
        request: Request,
        video_id: Optional[str],
        quality: Optional[str],
        format: Optional[str],
    ) -> Response:
        try:
            identifier = youtube_identifier(video_id)
            query = self._parse_query(
                YouTubeDownloadQuery,
                id=video_id,
                quality=quality or Quality.P720,
                format=format or MediaFormat.MP4,
            )
            download_request = query.to_request(identifier)
            log_info(
                request,
                f"YouTube download {identifier.id} quality={download_request.quality.value} "
                f"format={download_request.format.value}",
            )
            handle = await self._guard(request, self.youtube.download(download_request))
        except UpstreamError as e:
            return self.error_response(request, e, failure_title="title.download_failed")
        except Exception as e:
            return self.unexpected_response(request, e, failure_title="title.download_failed")

        if handle is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return self.stream(request, handle)

    async def tiktok_info(self, request: Request, video_id: Optional[str], url: Optional[str]) -> Response:
        try:
            identifier = tiktok_identifier(video_id=video_id, url=url)
            record = await self._guard(request, self.scraper.scrape(identifier.source_url))
        except UpstreamError as e:
            return self.error_response(request, e, failure_title="title.tiktok_scrape_failed", failure_status=500)
        except Exception as e:
            return self.unexpected_response(request, e, failure_title="title.tiktok_scrape_failed")

        if record is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        info = TikTokVideoInfo(
            video_id=record.platform_video_id,
            description=record.description,
            thumbnail=record.cover_url,
            author=record.author,
            like_count=record.stats.like_count,
            share_count=record.stats.share_count,
            comment_count=record.stats.comment_count,
            upload_date=iso_timestamp(record.created_at),
            video_url=record.media_url or "",
        )
        return JSONResponse(content=info.model_dump(by_alias=True))

    async def tiktok_download(
        self,
        request: Request,
        video_id: Optional[str],
        url: Optional[str],
        watermark_free: Optional[str],
    ) -> Response:
        try:
            identifier = tiktok_identifier(video_id=video_id, url=url)
            query = TikTokQuery(id=video_id, url=url, watermark_free=watermark_free == "true")
            log_info(request, f"TikTok download {identifier.id or 'unknown'} watermark_free={query.watermark_free}")
            handle = await self._guard(request, self.tiktok.download(query.to_request(identifier)))
        except UpstreamError as e:
            return self.error_response(request, e, failure_title="title.tiktok_download_failed", failure_status=500)
        except Exception as e:
            return self.unexpected_response(request, e, failure_title="title.tiktok_download_failed")

        if handle is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return self.stream(request, handle)

    def stream(self, request: Request, handle: MediaStreamHandle) -> StreamingResponse:
        """
        Relay the handle's bytes. Headers go out before the first chunk; the
        handle is closed when the body ends, fails or the client goes away.
        """
        headers = {
            "Content-Disposition": f'attachment; filename="{handle.suggested_filename}"',
            "X-Content-Type-Options": "nosniff",
            "Cache-Control": "no-cache",
        }
        if handle.content_length is not None:
            headers["Content-Length"] = str(handle.content_length)

        async def relay():
            sent = 0
            try:
                async for chunk in handle.chunks:
                    sent += len(chunk)
                    yield chunk
                log_info(request, f"Relayed {sent} bytes as {handle.suggested_filename}")
            except UpstreamError as e:
                log_error(request, f"Stream failed after {sent} bytes: {e.message} ({e.raw_reason})")
            finally:
                await asyncio.shield(handle.aclose())

        return MediaStreamingResponse(
            handle,
            relay(),
            media_type=handle.content_type,
            headers=headers,
        )

    def error_response(
        self,
        request: Request,
        error: UpstreamError,
        failure_title: Optional[str] = None,
        failure_status: Optional[int] = None,
    ) -> JSONResponse:
        """
        Render an UpstreamError. Validation errors keep their own title and
        status; other failures may be reported under an endpoint-level title.
        """
        title_key = None
        status = error.http_status
        if error.kind is not ErrorKind.INPUT_VALIDATION:
            title_key = failure_title
            status = failure_status or status

        log_warning(request, f"{error.kind.value}: {error.message_key} ({error.raw_reason}) -> {status}")
        return JSONResponse(status_code=status, content=error.to_body(self.locale(request), title_key))

    def unexpected_response(
        self,
        request: Request,
        exc: Exception,
        failure_title: Optional[str] = None,
    ) -> JSONResponse:
        log_error(request, f"Unexpected error: {exc!r}", exc_info=True)
        return self.error_response(request, ErrorNormalizer.unexpected(exc), failure_title=failure_title)

    async def _guard(self, request: Request, work: Awaitable[T]) -> Optional[T]:
        """
        Await `work` while watching the client connection.
        Returns None when the client disconnected and the work was cancelled.
        """
        task = asyncio.ensure_future(work)
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=self.config.download.disconnect_poll_seconds)
                if done:
                    return task.result()
                if await request.is_disconnected():
                    break
        finally:
            if not task.done():
                task.cancel()

        log_info(request, "Client disconnected, cancelled pending work")
        try:
            result = await task
        except asyncio.CancelledError:
            return None
        except UpstreamError as e:
            logger.debug(f"Cancelled work ended with {e.message_key}")
            return None

        # Finished just before the cancel landed
        if isinstance(result, MediaStreamHandle):
            await result.aclose()
        return None

    @staticmethod
    def _parse_query(model: Any, **values: Any) -> Any:
        try:
            return model(**values)
        except ValidationError as e:
            fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
            if "quality" in fields:
                key, choices = "download.invalid_quality", [q.value for q in Quality]
            else:
                key, choices = "download.invalid_format", [f.value for f in MediaFormat]
            raise UpstreamError(
                ErrorKind.INPUT_VALIDATION,
                key,
                params={"choices": ", ".join(choices)},
                title_key="title.invalid_parameter",
                raw_reason="invalidParameter",
            ) from e


def iso_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a Z suffix"""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def get_relay(request: Request) -> StreamRelay:
    """Dependency building a relay from the app's config"""
    return StreamRelay(request.app.state.config)
