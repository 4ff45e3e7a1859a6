"""Fetch video transcripts, consulting the local cache first."""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, List, Optional, Sequence

import requests
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeRequestFailed, YouTubeTranscriptApi

from .cache import TranscriptCache
from .common import TRANSIENT_REQUEST_ERRORS, RetryPolicy, is_transient_status, request_json
from .errors import MalformedResponseError, PermanentError, TransientError, UpstreamError
from .models import VideoRef

SUPADATA_URL = "https://api.supadata.ai/v1/transcript"
PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
SAMPLE_TRANSCRIPT_PATH = os.path.join(PACKAGE_DIR, "data", "sample_transcript.json")
STATUS_RE = re.compile(r"(\d{3})\b")


def join_segments(content: Any) -> str:
    """Flatten a transcript payload's ``content`` into one string.

    ``content`` is either already plain text or a list of timed segments, each
    with a ``text`` field. Segments are joined with single spaces.
    """
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts: List[str] = []
        for segment in content:
            if not isinstance(segment, dict) or not isinstance(segment.get("text"), str):
                raise MalformedResponseError("Transcript segment has no text field")
            parts.append(segment["text"].strip())
        return " ".join(part for part in parts if part)
    raise MalformedResponseError("Transcript payload has no content")


def _request_failed_status(exc: YouTubeRequestFailed) -> Optional[int]:
    """HTTP status behind a ``YouTubeRequestFailed``, if one can be found."""
    for candidate in (exc.__cause__, *exc.args):
        response = getattr(candidate, "response", None)
        if isinstance(getattr(response, "status_code", None), int):
            return response.status_code
    match = STATUS_RE.match(str(getattr(exc, "reason", "")).strip())
    return int(match.group(1)) if match else None


def load_sample_transcript(path: str = SAMPLE_TRANSCRIPT_PATH) -> str:
    """Read the local fixture used in mock mode."""
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return join_segments(payload.get("content") if isinstance(payload, dict) else payload)


class SupadataTranscriptClient:
    """Supadata transcript API, authenticated with an ``x-api-key`` header."""

    def __init__(self, session: requests.Session, api_key: str, *, timeout: float = 30):
        self.session = session
        self.api_key = api_key
        self.timeout = timeout

    def fetch(self, video: VideoRef) -> str:
        body = request_json(
            self.session,
            "GET",
            SUPADATA_URL,
            params={"url": video.url},
            headers={"x-api-key": self.api_key},
            timeout=self.timeout,
        )
        if not isinstance(body, dict):
            raise MalformedResponseError("Transcript response is not an object")
        return join_segments(body.get("content"))


class YouTubeTranscriptClient:
    """Captions straight from YouTube through youtube-transcript-api."""

    def __init__(self, languages: Sequence[str] = ("en",), api: Optional[YouTubeTranscriptApi] = None):
        self.languages = list(languages)
        self.api = api or YouTubeTranscriptApi()

    def fetch(self, video: VideoRef) -> str:
        try:
            transcript = self.api.fetch(video.video_id, languages=self.languages)
        except YouTubeRequestFailed as exc:
            status = _request_failed_status(exc)
            message = f"YouTube request failed for {video.video_id}: {getattr(exc, 'reason', exc)}"
            if status is None or is_transient_status(status):
                raise TransientError(message, status=status) from exc
            raise PermanentError(message, status=status) from exc
        except CouldNotRetrieveTranscript as exc:
            raise PermanentError(f"No transcript for {video.video_id}: {exc.__class__.__name__}") from exc
        except TRANSIENT_REQUEST_ERRORS as exc:
            raise TransientError(f"Transcript fetch for {video.video_id} failed: {exc.__class__.__name__}") from exc
        except requests.RequestException as exc:
            raise PermanentError(f"Transcript fetch for {video.video_id} failed: {exc.__class__.__name__}") from exc
        return " ".join(snippet.text.strip() for snippet in transcript if snippet.text.strip())


class TranscriptProvider:
    """Return a transcript for a video from the mock fixture, the cache, or the remote client."""

    def __init__(
        self,
        client: SupadataTranscriptClient | YouTubeTranscriptClient,
        cache: TranscriptCache,
        *,
        use_mock_data: bool = False,
        mock_path: str = SAMPLE_TRANSCRIPT_PATH,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.cache = cache
        self.use_mock_data = use_mock_data
        self.mock_path = mock_path
        self.retry = retry or RetryPolicy()
        self.logger = logger or logging.getLogger("ksforward.transcripts")

    def get_transcript(self, video: VideoRef) -> str:
        if self.use_mock_data:
            self.logger.info("Mock mode: using sample transcript from %s", self.mock_path)
            try:
                return load_sample_transcript(self.mock_path)
            except (OSError, ValueError) as exc:
                raise PermanentError(f"Sample transcript {self.mock_path} unreadable: {exc}") from exc

        cached = self.cache.get(video.video_id)
        if cached is not None:
            self.logger.info(
                "Transcript cache hit for %s (%s chars, fetched %s)",
                video.video_id,
                len(cached.text),
                cached.fetched_at.isoformat(),
            )
            return cached.text

        self.logger.info("Transcript cache miss for %s, fetching", video.video_id)
        try:
            text = self.retry.call(
                lambda: self._fetch_nonempty(video),
                action_name=f"transcript fetch {video.video_id}",
                logger=self.logger,
            )
        except (TransientError, PermanentError) as exc:
            raise UpstreamError(f"Transcript fetch for {video.video_id} failed: {exc}", cause=exc) from exc

        error = self.cache.put(video.video_id, text)
        if error is not None:
            self.logger.warning("%s; continuing without cache", error)
        return text

    def _fetch_nonempty(self, video: VideoRef) -> str:
        text = self.client.fetch(video)
        if not text:
            raise MalformedResponseError(f"Transcript for {video.video_id} is empty")
        return text
