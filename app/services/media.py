import logging
import shutil
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List, Optional

import aiofiles
import httpx

from app.core.errors import ErrorKind, UpstreamError
from app.utils.filename import attachment_filename

logger = logging.getLogger(__name__)

Cleanup = Callable[[], Awaitable[None]]


@dataclass
class MediaStreamHandle:
    """
    Open byte stream plus naming info, owned by one request.
    Errors after the handle is returned surface as UpstreamError from `chunks`.
    """
    chunks: AsyncIterator[bytes]
    title: str
    extension: str
    content_type: str
    content_length: Optional[int] = None
    cleanups: List[Cleanup] = field(default_factory=list)
    closed: bool = False

    @property
    def suggested_filename(self) -> str:
        return attachment_filename(self.title, self.extension)

    async def aclose(self) -> None:
        """Release everything the handle owns. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True

        aclose = getattr(self.chunks, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception:
                logger.exception("Closing media stream failed")

        for cleanup in reversed(self.cleanups):
            try:
                await cleanup()
            except Exception:
                logger.exception("Media cleanup failed")


def remove_tree(path: str) -> Cleanup:
    """Cleanup callback deleting a per-request temp directory"""
    async def cleanup() -> None:
        shutil.rmtree(path, ignore_errors=True)
        logger.debug(f"Cleaned up {path}")
    return cleanup


def close_response(response: httpx.Response, client: httpx.AsyncClient) -> Cleanup:
    async def cleanup() -> None:
        await response.aclose()
        await client.aclose()
    return cleanup


async def file_chunks(path: str, chunk_size: int) -> AsyncIterator[bytes]:
    """Read a local file in chunks"""
    async with aiofiles.open(path, 'rb') as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


async def response_chunks(response: httpx.Response, chunk_size: int, service: str) -> AsyncIterator[bytes]:
    """Relay an httpx streaming body; transport failures become UpstreamError"""
    try:
        async for chunk in response.aiter_bytes(chunk_size):
            yield chunk
    except httpx.HTTPError as e:
        raise UpstreamError(
            ErrorKind.NETWORK,
            "network.stream_interrupted",
            params={"service": service},
            raw_reason="streamInterrupted",
            details=str(e) or type(e).__name__,
        ) from e
