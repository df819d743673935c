import traceback
from typing import Optional

import structlog

__all__ = [
    "MetadataError",
    "TransportFailure",
    "BadStatus",
    "IncompleteResponse",
    "TokenError",
    "MalformedTokenResponse",
    "EmptyToken",
    "log_exception",
]

log = structlog.stdlib.get_logger("exceptions")


class MetadataError(Exception):
    """Base exception for lookups against the metadata service."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class TransportFailure(MetadataError):
    """The metadata host could not be reached.

    Expected when the process is not running on Compute Engine.
    """


class BadStatus(MetadataError):
    def __init__(self, status_code: int, url: str):
        self.status_code = status_code
        super().__init__(f"status code {status_code} trying to fetch {url}", url=url)


class IncompleteResponse(MetadataError):
    pass


class TokenError(Exception):
    pass


class MalformedTokenResponse(TokenError):
    pass


class EmptyToken(TokenError):
    def __init__(self, message: str = "no access token returned"):
        super().__init__(message)


def log_exception(ex: Exception, **kwargs) -> None:
    """Log the exception with its backtrace.

    Args:
    ex (``Exception``):
        Raised exception.
    kwargs:
        Additional metadata for the exception.
    """
    status_code = getattr(ex, "status_code", None)

    log.error(
        str(ex),
        status_code=status_code,
        backtrace=traceback.format_exc(),
        **kwargs,
    )
