from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import FakeResponse, FakeSession
from ksforward.errors import PartialDeliveryError, UpstreamError
from ksforward.notify import DiscordNotifier, mask_webhook_url, split_message

WEBHOOK_URL = "https://discord.com/api/webhooks/123456/secret-token"
FIXED_TIME = datetime(2026, 2, 17, 11, 22, 33, tzinfo=timezone.utc)


def _words(count: int) -> str:
    return " ".join(f"word{index}" for index in range(count))


def test_split_message_respects_limit_and_preserves_text() -> None:
    text = _words(1000)[:7000]
    chunks = split_message(text, limit=4096)

    assert len(chunks) >= 2
    assert all(len(chunk.body) <= 4096 for chunk in chunks)
    assert "".join(chunk.body for chunk in chunks) == text
    assert [chunk.index for chunk in chunks] == list(range(len(chunks)))


def test_split_message_prefers_paragraph_break() -> None:
    text = "a " * 1500 + "\n\n" + "b " * 1500
    chunks = split_message(text, limit=3200)

    assert chunks[0].body.endswith("\n\n")
    assert len(chunks[0].body) == 3002


def test_split_message_breaks_on_words_without_newlines() -> None:
    text = _words(2000)
    chunks = split_message(text, limit=100)

    assert all(chunk.body.endswith(" ") for chunk in chunks[:-1])
    assert "".join(chunk.body for chunk in chunks) == text


def test_split_message_hard_splits_unbroken_text() -> None:
    chunks = split_message("x" * 9000, limit=4096)
    assert [len(chunk.body) for chunk in chunks] == [4096, 4096, 808]


def test_split_message_short_and_empty_text() -> None:
    assert [chunk.body for chunk in split_message("short")] == ["short"]
    assert split_message("") == []


def test_split_message_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        split_message("text", limit=0)


def test_mask_webhook_url_hides_token() -> None:
    assert mask_webhook_url(WEBHOOK_URL) == "https://discord.com/api/webhooks/123456/***"


def test_publish_posts_chunks_in_order(retry) -> None:
    session = FakeSession(default=FakeResponse(204))
    notifier = DiscordNotifier(session, WEBHOOK_URL, chunk_limit=100, retry=retry, clock=lambda: FIXED_TIME)
    text = _words(60)

    sent = notifier.publish("KS Forward Ep5", text)

    assert sent == len(session.calls) > 1
    embeds = [call["json"]["embeds"][0] for call in session.calls]
    assert "".join(embed["description"] for embed in embeds) == text
    assert embeds[0]["title"] == f"KS Forward Ep5 (1/{sent})"
    assert embeds[-1]["title"] == f"KS Forward Ep5 ({sent}/{sent})"
    assert embeds[0]["timestamp"] == "2026-02-17T11:22:33.000+00:00"
    assert embeds[0]["footer"] == {"text": "KS Forward"}
    assert all(call["url"] == WEBHOOK_URL for call in session.calls)


def test_publish_single_chunk_has_plain_title(retry) -> None:
    session = FakeSession(FakeResponse(204))
    notifier = DiscordNotifier(session, WEBHOOK_URL, retry=retry, clock=lambda: FIXED_TIME)

    assert notifier.publish("KS Forward Ep5", "Short summary") == 1
    assert session.calls[0]["json"]["embeds"][0]["title"] == "KS Forward Ep5"


def test_publish_retries_a_throttled_chunk(retry, sleeps) -> None:
    session = FakeSession(FakeResponse(429, text="slow down"), default=FakeResponse(204))
    notifier = DiscordNotifier(session, WEBHOOK_URL, retry=retry, clock=lambda: FIXED_TIME)

    assert notifier.publish("Title", "Short summary") == 1
    assert len(session.calls) == 2
    assert sleeps == [1.0]


def test_publish_stops_at_first_failing_chunk(retry) -> None:
    session = FakeSession(FakeResponse(204), default=FakeResponse(500, text="down"))
    notifier = DiscordNotifier(session, WEBHOOK_URL, chunk_limit=100, retry=retry, clock=lambda: FIXED_TIME)
    text = _words(60)
    total = len(split_message(text, limit=100))

    with pytest.raises(PartialDeliveryError) as info:
        notifier.publish("Title", text)

    assert info.value.sent == 1
    assert info.value.total == total
    assert info.value.category == "partial-delivery"
    # One accepted chunk, then three attempts at the second; nothing after it.
    assert len(session.calls) == 4
    assert {call["json"]["embeds"][0]["title"] for call in session.calls[1:]} == {f"Title (2/{total})"}


def test_publish_rejected_first_chunk_is_upstream_error(retry) -> None:
    session = FakeSession(FakeResponse(404, text="Unknown Webhook"))
    notifier = DiscordNotifier(session, WEBHOOK_URL, retry=retry, clock=lambda: FIXED_TIME)

    with pytest.raises(UpstreamError) as info:
        notifier.publish("Title", "Short summary")

    assert not isinstance(info.value, PartialDeliveryError)
    assert "secret-token" not in str(info.value)
    assert len(session.calls) == 1


def test_publish_rejects_empty_summary(retry) -> None:
    notifier = DiscordNotifier(FakeSession(), WEBHOOK_URL, retry=retry)
    with pytest.raises(ValueError):
        notifier.publish("Title", "")


def test_publish_honours_retry_after_on_throttle(retry, sleeps) -> None:
    throttled = FakeResponse(429, text='{"retry_after": 5}', headers={"Retry-After": "5"})
    session = FakeSession(throttled, default=FakeResponse(204))
    notifier = DiscordNotifier(session, WEBHOOK_URL, retry=retry, clock=lambda: FIXED_TIME)

    assert notifier.publish("Title", "Short summary") == 1
    assert sleeps == [5.0]
