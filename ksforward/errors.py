"""Exceptions raised by the digest pipeline."""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for every failure the pipeline knows how to report."""

    category = "internal"
    retryable = False


class ConfigError(PipelineError):
    category = "config"


class TransientError(PipelineError):
    """A failure that is likely to go away on retry (timeout, reset, 5xx, 429)."""

    category = "transient"
    retryable = True

    def __init__(self, message: str, status: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class PermanentError(PipelineError):
    """A failure retrying will not fix (4xx, auth)."""

    category = "permanent"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MalformedResponseError(PermanentError):
    category = "malformed"


class NotFoundError(PipelineError):
    category = "not-found"


class CacheError(PipelineError):
    """Transcript cache could not be read or written."""

    category = "cache"


class UpstreamError(PipelineError):
    """A remote stage gave up, either after exhausting retries or on a permanent error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    @property
    def category(self) -> str:  # type: ignore[override]
        if isinstance(self.cause, TransientError):
            return "transient-exhausted"
        if isinstance(self.cause, PipelineError):
            return f"upstream-{self.cause.category}"
        return "upstream"

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return isinstance(self.cause, TransientError)


class PartialDeliveryError(UpstreamError):
    """Some notification chunks were delivered before a later one failed."""

    def __init__(self, message: str, sent: int, total: int, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.sent = sent
        self.total = total

    @property
    def category(self) -> str:  # type: ignore[override]
        return "partial-delivery"
