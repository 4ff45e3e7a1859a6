"""Run one find -> transcribe -> summarize -> notify pass."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

import requests

from .cache import TranscriptCache
from .common import RetryPolicy
from .errors import PipelineError
from .models import VideoRef
from .notify import DiscordNotifier
from .search import ChannelFeedClient, VideoLocator, YouTubeSearchClient
from .settings import Settings
from .summarizer import Summarizer
from .transcripts import SupadataTranscriptClient, TranscriptProvider, YouTubeTranscriptClient


class Stage(Enum):
    IDLE = "idle"
    LOCATING_VIDEO = "locating_video"
    FETCHING_TRANSCRIPT = "fetching_transcript"
    SUMMARIZING = "summarizing"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Done:
    video: VideoRef
    summary: str
    chunks_sent: int
    stage: Stage = Stage.DONE


@dataclass(frozen=True)
class Failed:
    stage: Stage
    cause: PipelineError

    @property
    def category(self) -> str:
        return self.cause.category

    @property
    def retryable(self) -> bool:
        return self.cause.retryable


RunResult = Union[Done, Failed]


class DigestPipeline:
    """Sequence the four stages of a run.

    Each stage starts only after the previous one succeeded. The first
    failure ends the run as ``Failed(stage, cause)``; there is no resume, a
    new run starts again from ``IDLE``.
    """

    def __init__(
        self,
        *,
        locator: VideoLocator,
        transcripts: TranscriptProvider,
        summarizer: Summarizer,
        notifier: DiscordNotifier,
        channel_id: str,
        title_pattern: str,
        logger: logging.Logger | None = None,
    ):
        self.locator = locator
        self.transcripts = transcripts
        self.summarizer = summarizer
        self.notifier = notifier
        self.channel_id = channel_id
        self.title_pattern = title_pattern
        self.logger = logger or logging.getLogger("ksforward.pipeline")
        self.stage = Stage.IDLE
        self.history: List[Stage] = []

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        self.history.append(stage)
        self.logger.debug("Entering stage %s", stage.value)

    def run(self, video_id: Optional[str] = None) -> RunResult:
        """Process the latest matching video, or ``video_id`` when given."""
        self.history = []
        self._enter(Stage.IDLE)
        try:
            self._enter(Stage.LOCATING_VIDEO)
            if video_id:
                video = self.locator.describe(self.channel_id, video_id)
            else:
                video = self.locator.find_latest_matching(self.channel_id, self.title_pattern)
            self.logger.info("Video: %s (%s)", video.title, video.url)

            self._enter(Stage.FETCHING_TRANSCRIPT)
            transcript = self.transcripts.get_transcript(video)
            self.logger.info("Transcript ready (%s chars)", len(transcript))

            self._enter(Stage.SUMMARIZING)
            summary = self.summarizer.summarize(transcript)

            self._enter(Stage.NOTIFYING)
            sent = self.notifier.publish(video.title, summary)
        except PipelineError as exc:
            failed_stage = self.stage
            self._enter(Stage.FAILED)
            self.logger.error("Stage %s failed [%s]: %s", failed_stage.value, exc.category, exc)
            return Failed(stage=failed_stage, cause=exc)

        self._enter(Stage.DONE)
        self.logger.info("Posted summary of '%s' in %s message(s)", video.title, sent)
        return Done(video=video, summary=summary, chunks_sent=sent)


def build_pipeline(settings: Settings, session: Optional[requests.Session] = None) -> DigestPipeline:
    """Wire the concrete clients named by ``settings`` into a pipeline."""
    session = session or requests.Session()
    retry = RetryPolicy(
        attempts=settings.retry_attempts,
        initial_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )

    if settings.search_backend == "rss":
        search_client: YouTubeSearchClient | ChannelFeedClient = ChannelFeedClient(
            session, timeout=settings.http_timeout
        )
    else:
        search_client = YouTubeSearchClient(
            session,
            settings.youtube_api_key,
            event_type=settings.search_event_type,
            timeout=settings.http_timeout,
        )

    if settings.transcript_backend == "youtube":
        transcript_client: SupadataTranscriptClient | YouTubeTranscriptClient = YouTubeTranscriptClient(
            settings.transcript_languages
        )
    else:
        transcript_client = SupadataTranscriptClient(
            session, settings.supadata_api_key, timeout=settings.http_timeout
        )

    return DigestPipeline(
        locator=VideoLocator(search_client, max_results=settings.search_max_results, retry=retry),
        transcripts=TranscriptProvider(
            transcript_client,
            TranscriptCache(settings.cache_path),
            use_mock_data=settings.use_mock_data,
            mock_path=settings.mock_transcript_path,
            retry=retry,
        ),
        summarizer=Summarizer(
            session,
            settings.ai_api_url,
            api_key=settings.ai_api_key or None,
            persona=settings.persona,
            user_id=settings.user_id,
            timeout=settings.ai_timeout,
            retry=retry,
        ),
        notifier=DiscordNotifier(
            session,
            settings.discord_webhook_url,
            chunk_limit=settings.chunk_limit,
            timeout=settings.http_timeout,
            retry=retry,
        ),
        channel_id=settings.channel_id,
        title_pattern=settings.title_pattern,
    )
