import logging
import uuid
from typing import Any

from fastapi import Request
from rich.logging import RichHandler
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config.settings import LoggingConfig

logger = logging.getLogger("app")

REQUEST_ID_HEADER = "x-request-id"


class RequestIdFilter(logging.Filter):
    """Give every record a request_id so formats may reference it"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def setup_logging(config: LoggingConfig) -> None:
    """Configure the application logger once at startup"""
    if config.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.format))
    handler.addFilter(RequestIdFilter())

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(config.level)
    logger.propagate = False


class RequestIdMiddleware:
    """Attach a short request id to request.state and echo it in the response"""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = uuid.uuid4().hex[:12]
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER.encode(), request_id.encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_request_id)


def log_with_context(
    request: Request,
    level: int,
    message: str,
    exc_info: bool = False,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    Automatically includes request_id for tracing.
    """
    extra = {
        "request_id": getattr(request.state, "request_id", "unknown"),
        **kwargs
    }
    logger.log(level, message, extra=extra, exc_info=exc_info)


def log_info(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.INFO, message, **kwargs)


def log_error(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.ERROR, message, **kwargs)


def log_warning(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.WARNING, message, **kwargs)
