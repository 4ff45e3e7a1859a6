"""Durable transcript cache keyed by video id."""

from __future__ import annotations

import logging
import os
import sqlite3
from typing import Optional

from .common import ensure_directory, parse_published_datetime, utc_now
from .errors import CacheError
from .models import TranscriptCacheEntry

DEFAULT_CACHE_PATH = os.path.join("transcript_cache", "transcripts.db")
BUSY_TIMEOUT_SECONDS = 10


class TranscriptCache:
    """sqlite-backed store of fetched transcripts.

    Entries never expire. Every write is one ``INSERT OR REPLACE`` in its own
    transaction, so two runs racing on the same video id leave exactly one
    complete row behind.
    """

    def __init__(self, db_path: str = DEFAULT_CACHE_PATH, logger: logging.Logger | None = None):
        self.db_path = db_path
        self.logger = logger or logging.getLogger("ksforward.cache")
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        ensure_directory(os.path.dirname(self.db_path))
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        if not self._ready:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transcripts (
                    video_id TEXT PRIMARY KEY,
                    text TEXT NOT NULL,
                    fetched_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
            self._ready = True
        return conn

    def get(self, video_id: str) -> Optional[TranscriptCacheEntry]:
        """Return the cached transcript for ``video_id``, or None on a miss."""
        if not os.path.exists(self.db_path):
            return None
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT text, fetched_at FROM transcripts WHERE video_id = ?",
                    (video_id,),
                ).fetchone()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            self.logger.warning("Transcript cache unreadable at %s, treating as miss: %s", self.db_path, exc)
            return None

        if row is None:
            return None
        fetched_at = parse_published_datetime(row[1]) or utc_now()
        return TranscriptCacheEntry(video_id=video_id, text=row[0], fetched_at=fetched_at)

    def put(self, video_id: str, text: str) -> Optional[CacheError]:
        """Store or overwrite a transcript.

        Returns the failure instead of raising it: a transcript that could not
        be cached is still usable, so callers decide what to do with it.
        """
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        "INSERT OR REPLACE INTO transcripts (video_id, text, fetched_at) VALUES (?, ?, ?)",
                        (video_id, text, utc_now().isoformat()),
                    )
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            return CacheError(f"Could not cache transcript for {video_id} at {self.db_path}: {exc}")

        self.logger.debug("Cached transcript for %s (%s chars)", video_id, len(text))
        return None
