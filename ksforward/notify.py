"""
Discord delivery for summaries.

Long summaries are split into embeds no larger than the per-message limit and
posted one request per chunk, in order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import List

import requests

from .common import RetryPolicy, post_json, utc_now
from .errors import PartialDeliveryError, PermanentError, TransientError, UpstreamError
from .models import NotificationChunk

DISCORD_EMBED_LIMIT = 4096
DEFAULT_CHUNK_LIMIT = 4000
DEFAULT_LOOKBACK = 500
EMBED_TITLE_LIMIT = 256
EMBED_COLOR = 0x5865F2
FOOTER_TEXT = "KS Forward"

# Preferred break points, best first. Spaces and tabs are tried together.
PARAGRAPH_BREAK = "\n\n"
LINE_BREAK = "\n"
WORD_BREAKS = (" ", "\t")


def _find_break(text: str, start: int, end: int, lookback: int) -> int:
    floor = max(start + 1, end - lookback)
    for separator in (PARAGRAPH_BREAK, LINE_BREAK):
        position = text.rfind(separator, floor, end)
        if position != -1:
            return position + len(separator)

    position = max(text.rfind(separator, floor, end) for separator in WORD_BREAKS)
    if position != -1:
        return position + 1
    return end


def split_message(
    text: str,
    limit: int = DEFAULT_CHUNK_LIMIT,
    lookback: int = DEFAULT_LOOKBACK,
) -> List[NotificationChunk]:
    """Split text into ordered chunks of at most ``limit`` characters.

    A chunk ends just after the last paragraph break, else line break, else
    space or tab found in its final ``lookback`` characters; with none of
    those it is cut hard at ``limit``. Separators stay with the chunk they
    end, so joining the bodies gives back ``text`` unchanged.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")

    chunks: List[NotificationChunk] = []
    start = 0
    length = len(text)
    while start < length:
        end = start + limit
        cut = length if end >= length else _find_break(text, start, end, lookback)
        chunks.append(NotificationChunk(index=len(chunks), body=text[start:cut]))
        start = cut
    return chunks


def mask_webhook_url(url: str) -> str:
    """Hide the token part of a webhook URL."""
    head, sep, _ = url.rstrip("/").rpartition("/")
    if not sep:
        return "***"
    return f"{head}/***"


class DiscordNotifier:
    """Send a summary to a Discord webhook as one embed per chunk."""

    def __init__(
        self,
        session: requests.Session,
        webhook_url: str,
        *,
        chunk_limit: int = DEFAULT_CHUNK_LIMIT,
        lookback: int = DEFAULT_LOOKBACK,
        timeout: float = 30,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.webhook_url = webhook_url
        self.chunk_limit = chunk_limit
        self.lookback = lookback
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self.logger = logger or logging.getLogger("ksforward.notify")
        self.clock = clock

    def build_payload(self, title: str, chunk: NotificationChunk, total: int, timestamp: datetime) -> dict:
        suffix = f" ({chunk.index + 1}/{total})" if total > 1 else ""
        display_title = title[: EMBED_TITLE_LIMIT - len(suffix)] + suffix
        return {
            "embeds": [
                {
                    "title": display_title,
                    "description": chunk.body,
                    "color": EMBED_COLOR,
                    "timestamp": timestamp.isoformat(timespec="milliseconds"),
                    "footer": {"text": FOOTER_TEXT},
                }
            ]
        }

    def publish(self, title: str, summary_text: str) -> int:
        """Post every chunk in order and return how many were sent.

        Stops at the first chunk that still fails after retries; the chunks
        after it are not sent.
        """
        chunks = split_message(summary_text, self.chunk_limit, self.lookback)
        if not chunks:
            raise ValueError("Nothing to publish: summary is empty")

        total = len(chunks)
        target = mask_webhook_url(self.webhook_url)
        timestamp = self.clock()
        self.logger.info("Publishing %s chars to %s as %s chunk(s)", len(summary_text), target, total)

        sent = 0
        for chunk in chunks:
            payload = self.build_payload(title, chunk, total, timestamp)
            try:
                self.retry.call(
                    lambda payload=payload: post_json(
                        self.session,
                        self.webhook_url,
                        payload,
                        timeout=self.timeout,
                        label=target,
                    ),
                    action_name=f"Discord chunk {chunk.index + 1}/{total}",
                    logger=self.logger,
                )
            except (TransientError, PermanentError) as exc:
                if sent == 0:
                    raise UpstreamError(f"Discord webhook rejected the summary: {exc}", cause=exc) from exc
                raise PartialDeliveryError(
                    f"Delivered {sent}/{total} chunks before Discord failed: {exc}",
                    sent=sent,
                    total=total,
                    cause=exc,
                ) from exc
            sent += 1
            self.logger.info("Chunk %s/%s accepted (%s chars)", chunk.index + 1, total, len(chunk.body))

        return sent
