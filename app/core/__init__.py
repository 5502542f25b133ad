from .errors import ErrorKind, ErrorNormalizer, UpstreamError

__all__ = ["ErrorKind", "ErrorNormalizer", "UpstreamError"]
