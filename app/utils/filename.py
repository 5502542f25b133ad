import re
import unicodedata

MAX_TITLE_LENGTH = 100


def sanitize_filename(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    """Replace every non-alphanumeric character with '_' and truncate"""
    title = unicodedata.normalize("NFKC", title)
    return re.sub(r'[^A-Za-z0-9]', '_', title)[:max_length]


def attachment_filename(title: str, extension: str) -> str:
    """Filename for Content-Disposition: sanitized title plus extension"""
    return f"{sanitize_filename(title) or 'video'}.{extension}"
