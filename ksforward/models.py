"""Records passed between pipeline stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


@dataclass(frozen=True)
class VideoRef:
    """The video a run works on."""

    video_id: str
    title: str
    published_at: Optional[datetime] = None

    @property
    def url(self) -> str:
        return WATCH_URL.format(video_id=self.video_id)


@dataclass(frozen=True)
class TranscriptCacheEntry:
    video_id: str
    text: str
    fetched_at: datetime


@dataclass
class SummaryRequest:
    """Body sent to the summarization endpoint."""

    persona: str
    user_id: str
    messages: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def for_transcript(cls, transcript: str, persona: str, user_id: str) -> "SummaryRequest":
        return cls(
            persona=persona,
            user_id=user_id,
            messages=[{"role": "user", "content": transcript}],
        )

    def to_payload(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class NotificationChunk:
    index: int
    body: str
