from .filename import attachment_filename, sanitize_filename

__all__ = ["attachment_filename", "sanitize_filename"]
