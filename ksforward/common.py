"""Shared helpers used by the digest pipeline."""

from __future__ import annotations

import logging
import os
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar
from urllib.parse import parse_qs, urlparse, urlsplit, urlunsplit

import feedparser
import requests

from .errors import MalformedResponseError, PermanentError, TransientError

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_RETRIES = 3
MAX_RETRY_AFTER_SECONDS = 60.0

# Connection failures, including resets while the body is still streaming.
TRANSIENT_REQUEST_ERRORS = (
    requests.Timeout,
    requests.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)
T = TypeVar("T")


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure process-wide logging."""
    if verbose and quiet:
        raise ValueError("Cannot use --verbose and --quiet together.")

    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def retry_call(
    operation: Callable[[], T],
    *,
    attempts: int = DEFAULT_RETRIES,
    initial_delay: float = 0.5,
    backoff_multiplier: float = 2.0,
    max_delay: float = 4.0,
    action_name: str = "operation",
    logger: logging.Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run an operation, retrying transient failures with bounded exponential backoff.

    Only ``TransientError`` is retried. Anything else propagates from the
    attempt that raised it. When attempts run out the last transient error is
    re-raised.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except TransientError as exc:
            if attempt >= attempts:
                if logger:
                    logger.error("Giving up on %s after %s attempts: %s", action_name, attempts, exc)
                raise
            delay_seconds = min(max_delay, initial_delay * (backoff_multiplier ** (attempt - 1)))
            if exc.retry_after is not None:
                delay_seconds = max(delay_seconds, min(exc.retry_after, MAX_RETRY_AFTER_SECONDS))
            if logger:
                logger.warning(
                    "Retrying %s in %.1fs after error (%s/%s): %s",
                    action_name,
                    delay_seconds,
                    attempt,
                    attempts,
                    exc,
                )
            sleep(delay_seconds)

    raise RuntimeError(f"Unreachable retry loop while running {action_name}")


@dataclass
class RetryPolicy:
    """Retry settings shared by every remote call of a run."""

    attempts: int = DEFAULT_RETRIES
    initial_delay: float = 1.0
    max_delay: float = 8.0
    sleep: Callable[[float], None] = time.sleep

    def call(self, operation: Callable[[], T], *, action_name: str, logger: logging.Logger | None = None) -> T:
        return retry_call(
            operation,
            attempts=self.attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            action_name=action_name,
            logger=logger,
            sleep=self.sleep,
        )


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_published_datetime(value: str) -> datetime | None:
    """Parse YouTube/RSS published timestamp as timezone-aware UTC datetime."""
    if not value:
        return None

    normalized = value.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except ValueError:
        pass

    try:
        parsed = datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
        return parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def extract_video_id(value: str) -> str:
    """Extract canonical 11-char video ID from ID or URL."""
    candidate = value.strip()
    if VIDEO_ID_RE.fullmatch(candidate):
        return candidate

    parsed = urlparse(candidate)
    host = parsed.netloc.lower()
    path = parsed.path.strip("/")

    if host.endswith("youtu.be") and path:
        part = path.split("/")[0]
        if VIDEO_ID_RE.fullmatch(part):
            return part

    if "youtube.com" in host:
        if path in {"watch", "watch/"}:
            query = parse_qs(parsed.query)
            part = (query.get("v") or [None])[0]
            if part and VIDEO_ID_RE.fullmatch(part):
                return part

        segments = [segment for segment in path.split("/") if segment]
        if len(segments) >= 2 and segments[0] in {"shorts", "embed", "live", "v"}:
            part = segments[1]
            if VIDEO_ID_RE.fullmatch(part):
                return part

    raise ValueError(f"Unable to parse YouTube video id from '{value}'")


def ensure_directory(path: str) -> None:
    """Create directory if missing."""
    if path:
        os.makedirs(path, exist_ok=True)


def is_transient_status(status: int) -> bool:
    return status >= 500 or status == 429


def parse_retry_after(value: str | None) -> float | None:
    """Read a ``Retry-After`` header given in seconds; other forms are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def redact_url(url: str) -> str:
    """Drop the query string, which may carry API keys, from a URL."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _send(
    session: requests.Session,
    method: str,
    url: str,
    *,
    params: dict | None = None,
    json_body: Any = None,
    headers: dict | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    label: str | None = None,
) -> requests.Response:
    """Send one request and map transport and status failures onto the error taxonomy."""
    target = label or redact_url(url)
    try:
        response = session.request(
            method,
            url,
            params=params,
            json=json_body,
            headers=headers,
            timeout=timeout,
        )
    except TRANSIENT_REQUEST_ERRORS as exc:
        raise TransientError(f"{method} {target} failed: {exc.__class__.__name__}") from exc
    except requests.RequestException as exc:
        raise PermanentError(f"{method} {target} failed: {exc.__class__.__name__}") from exc

    status = response.status_code
    if is_transient_status(status):
        raise TransientError(
            f"{method} {target} returned HTTP {status}",
            status=status,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status >= 400:
        raise PermanentError(f"{method} {target} returned HTTP {status}: {response.text[:200]}", status=status)
    return response


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    params: dict | None = None,
    json_body: Any = None,
    headers: dict | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    label: str | None = None,
) -> Any:
    """Perform one HTTP request and return the decoded JSON body (``None`` if empty)."""
    response = _send(
        session,
        method,
        url,
        params=params,
        json_body=json_body,
        headers=headers,
        timeout=timeout,
        label=label,
    )
    if not response.content or not response.content.strip():
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise MalformedResponseError(f"{method} {label or redact_url(url)} returned non-JSON body") from exc


def fetch_feed(
    session: requests.Session,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """Fetch and parse an RSS feed. Callers wrap this in ``retry_call``."""
    response = _send(session, "GET", url, timeout=timeout)
    feed = feedparser.parse(response.content)
    if getattr(feed, "bozo", False) and not feed.entries:
        raise MalformedResponseError(f"Feed {redact_url(url)} could not be parsed")
    return feed


def post_json(
    session: requests.Session,
    url: str,
    payload: dict,
    *,
    headers: dict | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    label: str | None = None,
) -> str:
    """POST a JSON payload and return the decoded response body."""
    response = _send(
        session,
        "POST",
        url,
        json_body=payload,
        headers=headers,
        timeout=timeout,
        label=label,
    )
    return response.text
