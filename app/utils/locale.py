from typing import Optional, Sequence
from urllib.parse import urlparse


def get_locale(
    accept_language: Optional[str],
    supported_locales: Sequence[str],
    default_locale: str
) -> str:
    """Extract locale from Accept-Language header"""
    if not accept_language:
        return default_locale

    languages = []
    for lang in accept_language.split(","):
        parts = lang.strip().split(";")
        locale = parts[0].split("-")[0]
        languages.append(locale)

    for locale in languages:
        if locale in supported_locales:
            return locale

    return default_locale


def safe_url_for_log(url: str, debug: bool = False) -> str:
    """Safe URL for logging"""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "invalid_url"

    base_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"

    if debug and parsed.query:
        return f"{base_url}?..."

    return base_url
