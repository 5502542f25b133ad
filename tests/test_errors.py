import httpx
import pytest

from app.core.errors import ErrorKind, ErrorNormalizer, UpstreamError


def api_error(reason, message="upstream says no"):
    return {"error": {"code": 403, "message": message, "errors": [{"reason": reason, "message": message}]}}


def test_quota_exceeded_is_auth_error_mentioning_quota():
    error = ErrorNormalizer.from_youtube_api(403, api_error("quotaExceeded"))

    assert error.kind is ErrorKind.UPSTREAM_AUTH
    assert error.http_status == 403
    assert "quota" in error.message.lower()
    assert error.raw_reason == "quotaExceeded"


@pytest.mark.parametrize("reason,kind,status", [
    ("keyInvalid", ErrorKind.UPSTREAM_AUTH, 403),
    ("videoNotFound", ErrorKind.UPSTREAM_NOT_FOUND, 404),
    ("forbidden", ErrorKind.UPSTREAM_BLOCKED, 403),
])
def test_known_youtube_reasons(reason, kind, status):
    error = ErrorNormalizer.from_youtube_api(403, api_error(reason))
    assert error.kind is kind
    assert error.http_status == status


def test_unknown_youtube_reason_keeps_upstream_status_and_message():
    error = ErrorNormalizer.from_youtube_api(500, api_error("backendError", "Backend Error"))

    assert error.kind is ErrorKind.INTERNAL
    assert error.http_status == 500
    assert error.message == "Backend Error"


def test_timeout_and_connect_failures_are_network_errors():
    timeout = ErrorNormalizer.from_http_error(httpx.ReadTimeout("slow"), "YouTube API")
    refused = ErrorNormalizer.from_http_error(httpx.ConnectError("refused"), "YouTube API")

    assert timeout.kind is ErrorKind.NETWORK and timeout.http_status == 504
    assert refused.kind is ErrorKind.NETWORK and refused.http_status == 503
    assert "YouTube API" in refused.message


@pytest.mark.parametrize("stderr,kind,terminal", [
    ("ERROR: [youtube] abc: Private video. Sign in if you've been granted access", ErrorKind.UPSTREAM_BLOCKED, True),
    ("ERROR: [youtube] abc: Sign in to confirm your age", ErrorKind.UPSTREAM_BLOCKED, True),
    ("ERROR: [youtube] abc: Video unavailable. This video has been removed", ErrorKind.UPSTREAM_NOT_FOUND, True),
    ("ERROR: [youtube] abc: Sign in to confirm you're not a bot", ErrorKind.UPSTREAM_BLOCKED, False),
    ("ERROR: unable to download video data: HTTP Error 403: Forbidden", ErrorKind.UPSTREAM_BLOCKED, False),
    ("ERROR: [youtube] abc: Unable to extract nsig function code", ErrorKind.EXTRACTION, False),
    ("ERROR: Unable to download webpage: <urlopen error timed out>", ErrorKind.NETWORK, False),
])
def test_ytdlp_output_classification(stderr, kind, terminal):
    error = ErrorNormalizer.from_ytdlp_output("[youtube] abc: Downloading webpage\n" + stderr)

    assert error.kind is kind
    assert error.terminal is terminal
    assert error.details == stderr[:300]


def test_private_wins_over_generic_unavailable_wording():
    error = ErrorNormalizer.from_ytdlp_output("ERROR: Video unavailable. This video is private")
    assert error.raw_reason == "private"


def test_unclassified_ytdlp_output_is_internal_and_not_terminal():
    error = ErrorNormalizer.from_ytdlp_output("ERROR: something nobody has seen before")

    assert error.kind is ErrorKind.INTERNAL
    assert not error.terminal
    assert "something nobody has seen before" in error.message


@pytest.mark.parametrize("status,kind", [
    (403, ErrorKind.UPSTREAM_BLOCKED),
    (404, ErrorKind.UPSTREAM_NOT_FOUND),
    (502, ErrorKind.NETWORK),
])
def test_cdn_status(status, kind):
    assert ErrorNormalizer.from_cdn_status(status, "tiktok").kind is kind


def test_error_body_omits_absent_fields_and_localizes():
    error = UpstreamError(ErrorKind.INPUT_VALIDATION, "youtube.invalid_id", title_key="title.invalid_id")

    english = error.to_body("en")
    japanese = error.to_body("ja")

    assert english == {"error": "Invalid video ID", "message": "YouTube video IDs must be 11 characters long"}
    assert set(japanese) == {"error", "message"}
    assert japanese["message"] != english["message"]


def test_endpoint_title_overrides_kind_title():
    error = ErrorNormalizer.timeout(300)
    body = error.to_body("en", "title.download_failed")

    assert body["error"] == "Download failed"
    assert "300" in body["message"]
    assert body["reason"] == "timeout"
