from enum import Enum


class ErrorKind(str, Enum):
    """Failure kinds carried on a DownloadResult. Never raised."""

    EXTRACTION_EXHAUSTED = "extraction failed"
    CANCELLED = "cancelled"


class SessionLost(RuntimeError):
    """The browser page/context became unusable mid-run.

    This is the only condition allowed to abort a run outright; everything
    else travels as a result value.
    """


class FeedError(ValueError):
    """Invalid feed input (empty identifier, unbuildable URL)."""
