"""Locate the newest matching video on a channel."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests

from .common import RetryPolicy, fetch_feed, parse_published_datetime, request_json
from .errors import MalformedResponseError, NotFoundError, PermanentError, TransientError, UpstreamError
from .models import VideoRef

SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"
RSS_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={}"
DEFAULT_MAX_RESULTS = 5


def _snippet_to_ref(video_id: Optional[str], snippet: Any) -> VideoRef:
    if not video_id or not isinstance(snippet, dict):
        raise MalformedResponseError("Search result is missing id or snippet")
    published_raw = snippet.get("publishedAt") or snippet.get("publishTime") or ""
    return VideoRef(
        video_id=video_id,
        title=snippet.get("title") or "",
        published_at=parse_published_datetime(published_raw),
    )


class YouTubeSearchClient:
    """YouTube Data API v3 search, newest first."""

    def __init__(
        self,
        session: requests.Session,
        api_key: str,
        *,
        event_type: Optional[str] = "completed",
        timeout: float = 30,
    ):
        self.session = session
        self.api_key = api_key
        self.event_type = event_type
        self.timeout = timeout

    def search(self, channel_id: str, max_results: int) -> List[VideoRef]:
        params = {
            "part": "snippet",
            "channelId": channel_id,
            "maxResults": str(max_results),
            "order": "date",
            "type": "video",
            "key": self.api_key,
        }
        if self.event_type:
            params["eventType"] = self.event_type

        body = request_json(self.session, "GET", SEARCH_URL, params=params, timeout=self.timeout)
        if not isinstance(body, dict) or not isinstance(body.get("items"), list):
            raise MalformedResponseError("YouTube search response has no items list")

        results: List[VideoRef] = []
        for item in body["items"]:
            if not isinstance(item, dict):
                raise MalformedResponseError("YouTube search item is not an object")
            item_id = item.get("id")
            video_id = item_id.get("videoId") if isinstance(item_id, dict) else item_id
            results.append(_snippet_to_ref(video_id, item.get("snippet")))
        return results

    def get_video(self, channel_id: str, video_id: str) -> Optional[VideoRef]:
        params = {"part": "snippet", "id": video_id, "key": self.api_key}
        body = request_json(self.session, "GET", VIDEOS_URL, params=params, timeout=self.timeout)
        if not isinstance(body, dict) or not isinstance(body.get("items"), list):
            raise MalformedResponseError("YouTube videos response has no items list")
        if not body["items"]:
            return None
        item = body["items"][0]
        if not isinstance(item, dict):
            raise MalformedResponseError("YouTube videos item is not an object")
        return _snippet_to_ref(item.get("id"), item.get("snippet"))


class ChannelFeedClient:
    """The channel's public RSS feed. Needs no API key; YouTube lists newest first."""

    def __init__(self, session: requests.Session, *, timeout: float = 30):
        self.session = session
        self.timeout = timeout

    def _entries(self, channel_id: str) -> List[VideoRef]:
        feed = fetch_feed(self.session, RSS_URL.format(channel_id), timeout=self.timeout)
        results: List[VideoRef] = []
        for entry in feed.entries:
            video_id = getattr(entry, "yt_videoid", None)
            if not video_id:
                continue
            results.append(
                VideoRef(
                    video_id=video_id,
                    title=getattr(entry, "title", ""),
                    published_at=parse_published_datetime(getattr(entry, "published", "")),
                )
            )
        return results

    def search(self, channel_id: str, max_results: int) -> List[VideoRef]:
        return self._entries(channel_id)[:max_results]

    def get_video(self, channel_id: str, video_id: str) -> Optional[VideoRef]:
        """Look ``video_id`` up in the feed, which only lists the ~15 newest uploads."""
        for video in self._entries(channel_id):
            if video.video_id == video_id:
                return video
        return None


class VideoLocator:
    """Find the video a run should summarize."""

    def __init__(
        self,
        client: YouTubeSearchClient | ChannelFeedClient,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.max_results = max_results
        self.retry = retry or RetryPolicy()
        self.logger = logger or logging.getLogger("ksforward.search")

    def _call(self, operation, action_name: str):
        try:
            return self.retry.call(operation, action_name=action_name, logger=self.logger)
        except (TransientError, PermanentError) as exc:
            raise UpstreamError(f"{action_name} failed: {exc}", cause=exc) from exc

    def find_latest_matching(self, channel_id: str, title_pattern: str) -> VideoRef:
        """Return the newest video whose title contains ``title_pattern`` (case-insensitive)."""
        results = self._call(
            lambda: self.client.search(channel_id, self.max_results),
            f"video search on channel {channel_id}",
        )
        self.logger.info("Search returned %s videos", len(results))

        needle = title_pattern.casefold()
        for video in results:
            if needle in video.title.casefold():
                self.logger.info("Latest match: %s (%s)", video.title, video.video_id)
                return video

        raise NotFoundError(
            f"No video titled like '{title_pattern}' among the {len(results)} newest on channel {channel_id}"
        )

    def describe(self, channel_id: str, video_id: str) -> VideoRef:
        """Resolve one video by id."""
        video = self._call(
            lambda: self.client.get_video(channel_id, video_id),
            f"video lookup {video_id}",
        )
        if video is None:
            raise NotFoundError(f"Video {video_id} not found")
        self.logger.info("Resolved video: %s (%s)", video.title, video.video_id)
        return video
