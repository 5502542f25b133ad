import re
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx

from app.i18n import i18n
from app.models.response import ErrorBody


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced to callers"""
    INPUT_VALIDATION = "InputValidationError"
    UPSTREAM_AUTH = "UpstreamAuthError"
    UPSTREAM_NOT_FOUND = "UpstreamNotFoundError"
    UPSTREAM_BLOCKED = "UpstreamBlockedError"
    NETWORK = "NetworkError"
    EXTRACTION = "ExtractionError"
    INTERNAL = "InternalError"


DEFAULT_STATUS = {
    ErrorKind.INPUT_VALIDATION: 400,
    ErrorKind.UPSTREAM_AUTH: 403,
    ErrorKind.UPSTREAM_NOT_FOUND: 404,
    ErrorKind.UPSTREAM_BLOCKED: 403,
    ErrorKind.NETWORK: 503,
    ErrorKind.EXTRACTION: 503,
    ErrorKind.INTERNAL: 500,
}

DEFAULT_TITLE = {
    ErrorKind.INPUT_VALIDATION: "title.invalid_parameter",
    ErrorKind.UPSTREAM_AUTH: "title.access_denied",
    ErrorKind.UPSTREAM_NOT_FOUND: "title.video_not_found",
    ErrorKind.UPSTREAM_BLOCKED: "title.access_denied",
    ErrorKind.NETWORK: "title.network_error",
    ErrorKind.EXTRACTION: "title.download_failed",
    ErrorKind.INTERNAL: "title.internal_error",
}


class UpstreamError(Exception):
    """
    Normalized failure.
    Messages are catalog keys so the relay can render them per request locale.
    `terminal` marks failures no other backend can recover from.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message_key: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None,
        title_key: Optional[str] = None,
        raw_reason: Optional[str] = None,
        details: Optional[str] = None,
        terminal: bool = False,
    ):
        self.kind = kind
        self.message_key = message_key
        self.params = params or {}
        self.http_status = http_status or DEFAULT_STATUS[kind]
        self.title_key = title_key or DEFAULT_TITLE[kind]
        self.raw_reason = raw_reason
        self.details = details
        self.terminal = terminal
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return i18n.get(self.message_key, **self.params)

    def localized_message(self, locale: Optional[str] = None) -> str:
        return i18n.get(self.message_key, locale=locale, **self.params)

    def to_body(self, locale: Optional[str] = None, title_key: Optional[str] = None) -> Dict[str, Any]:
        """Render the client-facing error body"""
        body = ErrorBody(
            error=i18n.get(title_key or self.title_key, locale=locale),
            message=self.localized_message(locale),
            reason=self.raw_reason,
            details=self.details,
        )
        return body.model_dump(exclude_none=True)

    def __repr__(self) -> str:
        return f"UpstreamError({self.kind.value}, {self.message_key!r}, status={self.http_status})"


# reason -> (kind, message key, status)
YOUTUBE_API_REASONS: Dict[str, Tuple[ErrorKind, str, int]] = {
    "quotaExceeded": (ErrorKind.UPSTREAM_AUTH, "youtube.quota_exceeded", 403),
    "dailyLimitExceeded": (ErrorKind.UPSTREAM_AUTH, "youtube.quota_exceeded", 403),
    "rateLimitExceeded": (ErrorKind.UPSTREAM_AUTH, "youtube.quota_exceeded", 403),
    "invalidCredentials": (ErrorKind.UPSTREAM_AUTH, "youtube.invalid_credentials", 403),
    "keyInvalid": (ErrorKind.UPSTREAM_AUTH, "youtube.invalid_credentials", 403),
    "keyExpired": (ErrorKind.UPSTREAM_AUTH, "youtube.invalid_credentials", 403),
    "videoNotFound": (ErrorKind.UPSTREAM_NOT_FOUND, "youtube.video_not_found", 404),
    "notFound": (ErrorKind.UPSTREAM_NOT_FOUND, "youtube.video_not_found", 404),
    "forbidden": (ErrorKind.UPSTREAM_BLOCKED, "youtube.forbidden", 403),
}

# Ordered: privacy and age checks must win over the generic "unavailable" wording
# yt-dlp prints alongside them.
YTDLP_PATTERNS = (
    (re.compile(r"private video|video is private", re.I),
     ErrorKind.UPSTREAM_BLOCKED, "download.blocked", True, "private"),
    (re.compile(r"confirm your age|age[- ]restricted|inappropriate for some users", re.I),
     ErrorKind.UPSTREAM_BLOCKED, "download.blocked", True, "ageRestricted"),
    (re.compile(r"members[- ]only|join this channel", re.I),
     ErrorKind.UPSTREAM_BLOCKED, "download.blocked", True, "membersOnly"),
    (re.compile(r"not available in your country|geo[- ]?restrict", re.I),
     ErrorKind.UPSTREAM_BLOCKED, "download.blocked", True, "geoRestricted"),
    (re.compile(r"not a bot", re.I),
     ErrorKind.UPSTREAM_BLOCKED, "download.bot_check", False, "botCheck"),
    (re.compile(r"HTTP Error 403|403: Forbidden", re.I),
     ErrorKind.UPSTREAM_BLOCKED, "download.cdn_blocked", False, "http403"),
    (re.compile(r"video unavailable|has been removed|no longer available|does not exist|HTTP Error 404", re.I),
     ErrorKind.UPSTREAM_NOT_FOUND, "download.unavailable", True, "unavailable"),
    (re.compile(r"requested format is not available", re.I),
     ErrorKind.EXTRACTION, "download.format_unavailable", False, "formatUnavailable"),
    (re.compile(r"unable to extract|could not extract|signature extraction|nsig extraction|unsupported url", re.I),
     ErrorKind.EXTRACTION, "download.extraction", False, "extractionFailed"),
    (re.compile(r"timed out|connection refused|name resolution|network is unreachable|"
                r"unable to download webpage|connection reset", re.I),
     ErrorKind.NETWORK, "network.unreachable", False, "connectionFailed"),
)

CDN_STATUS_KEYS = {
    "youtube": ("download.cdn_blocked", "download.unavailable"),
    "tiktok": ("tiktok.cdn_blocked", "tiktok.cdn_not_found"),
}

DETAILS_MAX_LENGTH = 300


class ErrorNormalizer:
    """Map heterogeneous upstream failures onto UpstreamError"""

    @staticmethod
    def from_youtube_api(status: int, payload: Any) -> UpstreamError:
        """Classify a structured YouTube Data API error body"""
        error = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error, dict):
            error = {"message": str(error)} if error else {}

        errors = error.get("errors") or []
        first = errors[0] if errors and isinstance(errors[0], dict) else {}
        reason = first.get("reason")
        upstream_message = first.get("message") or error.get("message") or "Unknown YouTube API error"

        if reason in YOUTUBE_API_REASONS:
            kind, key, http_status = YOUTUBE_API_REASONS[reason]
            return UpstreamError(
                kind,
                key,
                http_status=http_status,
                title_key="title.youtube_api_error",
                raw_reason=reason,
                terminal=True,
            )

        if status in (401, 403):
            kind = ErrorKind.UPSTREAM_AUTH
        elif status == 404:
            kind = ErrorKind.UPSTREAM_NOT_FOUND
        else:
            kind = ErrorKind.INTERNAL

        return UpstreamError(
            kind,
            "youtube.api_error",
            params={"message": upstream_message},
            http_status=status if status >= 400 else 502,
            title_key="title.youtube_api_error",
            raw_reason=reason,
            terminal=True,
        )

    @staticmethod
    def from_http_error(exc: httpx.HTTPError, service: str) -> UpstreamError:
        """Classify a transport failure talking to an upstream"""
        if isinstance(exc, httpx.TimeoutException):
            return UpstreamError(
                ErrorKind.NETWORK,
                "network.timeout",
                params={"service": service},
                http_status=504,
                title_key="title.request_timeout",
                raw_reason="timeout",
                details=str(exc) or None,
            )

        return UpstreamError(
            ErrorKind.NETWORK,
            "network.unreachable",
            params={"service": service},
            http_status=503,
            title_key="title.network_error",
            raw_reason="connectionFailed",
            details=str(exc) or None,
        )

    @staticmethod
    def from_cdn_status(status: int, platform: str) -> UpstreamError:
        """Classify a non-success status from a media CDN"""
        blocked_key, not_found_key = CDN_STATUS_KEYS[platform]

        if status in (401, 403, 429):
            return UpstreamError(
                ErrorKind.UPSTREAM_BLOCKED,
                blocked_key,
                raw_reason=f"http{status}",
            )
        if status in (404, 410):
            return UpstreamError(
                ErrorKind.UPSTREAM_NOT_FOUND,
                not_found_key,
                raw_reason=f"http{status}",
            )
        if status >= 500:
            return UpstreamError(
                ErrorKind.NETWORK,
                "network.unreachable",
                params={"service": platform},
                raw_reason=f"http{status}",
            )
        return UpstreamError(
            ErrorKind.INTERNAL,
            "download.failed",
            params={"reason": f"Unexpected HTTP {status} from {platform}"},
            raw_reason=f"http{status}",
        )

    @staticmethod
    def from_ytdlp_output(output: str) -> UpstreamError:
        """Classify yt-dlp stderr or a yt_dlp DownloadError message"""
        summary = ErrorNormalizer._error_summary(output)

        for pattern, kind, key, terminal, reason in YTDLP_PATTERNS:
            if pattern.search(output):
                return UpstreamError(
                    kind,
                    key,
                    params={"service": "YouTube"},
                    raw_reason=reason,
                    details=summary or None,
                    terminal=terminal,
                )

        return UpstreamError(
            ErrorKind.INTERNAL,
            "download.failed",
            params={"reason": summary or "yt-dlp failed"},
            details=summary or None,
        )

    @staticmethod
    def timeout(seconds: float) -> UpstreamError:
        return UpstreamError(
            ErrorKind.NETWORK,
            "download.timeout",
            params={"seconds": int(seconds)},
            http_status=504,
            title_key="title.request_timeout",
            raw_reason="timeout",
        )

    @staticmethod
    def unexpected(exc: BaseException) -> UpstreamError:
        return UpstreamError(
            ErrorKind.INTERNAL,
            "internal.unexpected",
            params={"reason": str(exc) or type(exc).__name__},
            details=type(exc).__name__,
        )

    @staticmethod
    def _error_summary(output: str) -> str:
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        error_lines = [line for line in lines if line.startswith("ERROR")]
        summary = error_lines[-1] if error_lines else (lines[-1] if lines else "")
        return summary[:DETAILS_MAX_LENGTH]
