"""Summarize a transcript with the AI chat endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from .common import RetryPolicy, request_json
from .errors import MalformedResponseError, PermanentError, TransientError, UpstreamError
from .models import SummaryRequest

DEFAULT_PERSONA = "ks-discord"
DEFAULT_USER_ID = "ks-discord"


def _strip_code_fence(text: str) -> str:
    """Remove a Markdown code fence wrapped around the whole text."""
    if not text.startswith("```"):
        return text
    first_newline = text.find("\n")
    last_fence = text.rfind("\n```")
    if first_newline == -1 or last_fence <= first_newline:
        return text
    return text[first_newline + 1:last_fence]


def clean_answer(answer: str) -> str:
    """Normalize the model's answer into plain prose.

    Models sometimes wrap their reply in a code fence, or return a JSON object
    that itself carries an ``answer`` field. Both are unwrapped; anything else
    is returned trimmed.
    """
    text = _strip_code_fence(answer.strip()).strip()
    if not text.startswith("{"):
        return text
    try:
        payload = json.loads(text)
    except ValueError:
        return text
    inner = payload.get("answer") if isinstance(payload, dict) else None
    if isinstance(inner, str) and inner.strip():
        return inner.strip()
    return text


def extract_answer(body: Any) -> str:
    if not isinstance(body, dict):
        raise MalformedResponseError("AI response is not a JSON object")
    answer = body.get("answer")
    if not isinstance(answer, str):
        raise MalformedResponseError("AI response has no answer field")
    cleaned = clean_answer(answer)
    if not cleaned:
        raise MalformedResponseError("AI answer is empty")
    return cleaned


class Summarizer:
    """Send a transcript to the AI endpoint and return its answer."""

    def __init__(
        self,
        session: requests.Session,
        api_url: str,
        *,
        api_key: Optional[str] = None,
        persona: str = DEFAULT_PERSONA,
        user_id: str = DEFAULT_USER_ID,
        timeout: float = 120,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
    ):
        self.session = session
        self.api_url = api_url
        self.api_key = api_key
        self.persona = persona
        self.user_id = user_id
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self.logger = logger or logging.getLogger("ksforward.summarizer")

    def _headers(self) -> dict:
        headers = {"accept": "application/json", "content-type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def summarize(self, transcript: str) -> str:
        request = SummaryRequest.for_transcript(transcript, persona=self.persona, user_id=self.user_id)
        payload = request.to_payload()
        self.logger.info("Requesting summary for %s-char transcript", len(transcript))

        try:
            body = self.retry.call(
                lambda: request_json(
                    self.session,
                    "POST",
                    self.api_url,
                    json_body=payload,
                    headers=self._headers(),
                    timeout=self.timeout,
                ),
                action_name="AI summary request",
                logger=self.logger,
            )
        except MalformedResponseError:
            raise
        except (TransientError, PermanentError) as exc:
            raise UpstreamError(f"AI summary request failed: {exc}", cause=exc) from exc

        answer = extract_answer(body)
        self.logger.info("Summary received (%s chars)", len(answer))
        return answer
