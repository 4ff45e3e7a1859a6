from __future__ import annotations

import json
from typing import Any

import pytest

from ksforward.common import RetryPolicy


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str | None = None, headers: dict | None = None):
        self.status_code = status_code
        self.headers = headers or {}
        if text is None:
            text = "" if body is None else json.dumps(body)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Stands in for ``requests.Session``; replays queued responses or exceptions."""

    def __init__(self, *responses: Any, default: Any = None):
        self.queue = list(responses)
        self.default = default
        self.calls: list[dict] = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "params": params, "json": json, "headers": headers, "timeout": timeout}
        )
        outcome = self.queue.pop(0) if self.queue else self.default
        if outcome is None:
            raise AssertionError(f"Unexpected request {method} {url}")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def retry(sleeps) -> RetryPolicy:
    return RetryPolicy(attempts=3, initial_delay=1.0, max_delay=8.0, sleep=sleeps.append)
