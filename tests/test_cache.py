from __future__ import annotations

import os
import sqlite3

from ksforward.cache import TranscriptCache
from ksforward.errors import CacheError


def test_put_then_get_round_trips_text(tmp_path) -> None:
    cache = TranscriptCache(str(tmp_path / "cache" / "transcripts.db"))

    assert cache.put("AAAAAAAAAAA", "hello world") is None
    entry = cache.get("AAAAAAAAAAA")

    assert entry is not None
    assert entry.video_id == "AAAAAAAAAAA"
    assert entry.text == "hello world"
    assert entry.fetched_at.tzinfo is not None


def test_get_missing_id_returns_none(tmp_path) -> None:
    cache = TranscriptCache(str(tmp_path / "transcripts.db"))
    cache.put("AAAAAAAAAAA", "one")

    assert cache.get("BBBBBBBBBBB") is None


def test_get_without_store_does_not_create_it(tmp_path) -> None:
    db_path = tmp_path / "never" / "transcripts.db"
    cache = TranscriptCache(str(db_path))

    assert cache.get("AAAAAAAAAAA") is None
    assert not db_path.exists()


def test_put_overwrites_existing_entry(tmp_path) -> None:
    cache = TranscriptCache(str(tmp_path / "transcripts.db"))
    cache.put("AAAAAAAAAAA", "first")
    cache.put("AAAAAAAAAAA", "second")

    assert cache.get("AAAAAAAAAAA").text == "second"
    conn = sqlite3.connect(tmp_path / "transcripts.db")
    count = conn.execute("SELECT COUNT(*) FROM transcripts").fetchone()[0]
    conn.close()
    assert count == 1


def test_old_entries_are_returned_verbatim(tmp_path) -> None:
    db_path = tmp_path / "transcripts.db"
    cache = TranscriptCache(str(db_path))
    cache.put("AAAAAAAAAAA", "placeholder")

    conn = sqlite3.connect(db_path)
    conn.execute(
        "UPDATE transcripts SET text = ?, fetched_at = ? WHERE video_id = ?",
        ("  ancient\ntext  ", "2001-01-01T00:00:00+00:00", "AAAAAAAAAAA"),
    )
    conn.commit()
    conn.close()

    entry = TranscriptCache(str(db_path)).get("AAAAAAAAAAA")
    assert entry.text == "  ancient\ntext  "
    assert entry.fetched_at.year == 2001


def test_put_returns_cache_error_when_store_is_unwritable(tmp_path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("file in the way", encoding="utf-8")
    cache = TranscriptCache(os.path.join(str(blocker), "transcripts.db"))

    error = cache.put("AAAAAAAAAAA", "text")

    assert isinstance(error, CacheError)
    assert error.category == "cache"
    assert cache.get("AAAAAAAAAAA") is None
