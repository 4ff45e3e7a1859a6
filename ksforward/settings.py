"""Runtime configuration read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .cache import DEFAULT_CACHE_PATH
from .errors import ConfigError
from .notify import DEFAULT_CHUNK_LIMIT, DISCORD_EMBED_LIMIT
from .search import DEFAULT_MAX_RESULTS
from .summarizer import DEFAULT_PERSONA, DEFAULT_USER_ID
from .transcripts import SAMPLE_TRANSCRIPT_PATH

SEARCH_BACKENDS = ("youtube-api", "rss")
TRANSCRIPT_BACKENDS = ("supadata", "youtube")
TRUE_VALUES = {"1", "true", "yes", "on"}


def mask_key(key: str) -> str:
    """Shorten a secret for logging."""
    if len(key) <= 8:
        return "***"
    return f"{key[:4]}...{key[-4:]}"


def mask_url(url: str) -> str:
    """Keep scheme and host of a URL, hide the rest."""
    scheme, sep, rest = url.partition("://")
    if not sep:
        return "***"
    host = rest.split("/", 1)[0]
    return f"{scheme}://{host}/***"


def _as_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from None


def _as_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from None


@dataclass
class Settings:
    channel_id: str
    ai_api_url: str
    discord_webhook_url: str
    title_pattern: str = "KS Forward"
    search_backend: str = "youtube-api"
    youtube_api_key: str = ""
    search_max_results: int = DEFAULT_MAX_RESULTS
    search_event_type: Optional[str] = "completed"
    transcript_backend: str = "supadata"
    supadata_api_key: str = ""
    transcript_languages: List[str] = field(default_factory=lambda: ["th", "en"])
    use_mock_data: bool = False
    mock_transcript_path: str = SAMPLE_TRANSCRIPT_PATH
    cache_path: str = DEFAULT_CACHE_PATH
    ai_api_key: str = ""
    persona: str = DEFAULT_PERSONA
    user_id: str = DEFAULT_USER_ID
    chunk_limit: int = DEFAULT_CHUNK_LIMIT
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0
    http_timeout: float = 30
    ai_timeout: float = 120

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from environment variables.

        When ``environ`` is omitted the process environment is used, after
        loading ``dotenv_path`` (or ``.env`` in the working directory) without
        overriding variables that are already set.
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        event_type = environ.get("SEARCH_EVENT_TYPE")
        languages = environ.get("TRANSCRIPT_LANGUAGES", "th,en")
        return cls(
            channel_id=environ.get("KSFORWARD_CHANNEL_ID", "").strip(),
            ai_api_url=environ.get("MY_AI_API_URL", "").strip(),
            discord_webhook_url=environ.get("DISCORD_KS_BOT_TOKEN", "").strip(),
            title_pattern=environ.get("KSFORWARD_TITLE_PATTERN", "KS Forward"),
            search_backend=environ.get("SEARCH_BACKEND", "youtube-api").strip().lower(),
            youtube_api_key=environ.get("YOUTUBE_API_KEY", "").strip(),
            search_max_results=_as_int(environ, "SEARCH_MAX_RESULTS", DEFAULT_MAX_RESULTS),
            search_event_type="completed" if event_type is None else (event_type.strip() or None),
            transcript_backend=environ.get("TRANSCRIPT_BACKEND", "supadata").strip().lower(),
            supadata_api_key=environ.get("SUPADATA_API_KEY", "").strip(),
            transcript_languages=[code.strip() for code in languages.split(",") if code.strip()],
            use_mock_data=environ.get("USE_MOCK_DATA", "false").strip().lower() in TRUE_VALUES,
            mock_transcript_path=environ.get("MOCK_TRANSCRIPT_PATH") or SAMPLE_TRANSCRIPT_PATH,
            cache_path=environ.get("TRANSCRIPT_CACHE_PATH") or DEFAULT_CACHE_PATH,
            ai_api_key=environ.get("MY_AI_API_KEY", "").strip(),
            persona=environ.get("AI_PERSONA") or DEFAULT_PERSONA,
            user_id=environ.get("AI_USER_ID") or DEFAULT_USER_ID,
            chunk_limit=_as_int(environ, "DISCORD_CHUNK_LIMIT", DEFAULT_CHUNK_LIMIT),
            retry_attempts=_as_int(environ, "RETRY_ATTEMPTS", 3),
            retry_base_delay=_as_float(environ, "RETRY_BASE_DELAY", 1.0),
            retry_max_delay=_as_float(environ, "RETRY_MAX_DELAY", 8.0),
            http_timeout=_as_float(environ, "HTTP_TIMEOUT", 30),
            ai_timeout=_as_float(environ, "AI_TIMEOUT", 120),
        )

    def validate(self) -> None:
        """Raise ``ConfigError`` describing the first problem found."""
        if len(self.channel_id) < 10:
            raise ConfigError("KSFORWARD_CHANNEL_ID must be set to a YouTube channel id")
        if not self.title_pattern.strip():
            raise ConfigError("KSFORWARD_TITLE_PATTERN cannot be empty")
        self._validate_url(self.ai_api_url, "MY_AI_API_URL")
        self._validate_url(self.discord_webhook_url, "DISCORD_KS_BOT_TOKEN")

        if self.search_backend not in SEARCH_BACKENDS:
            raise ConfigError(f"SEARCH_BACKEND must be one of {', '.join(SEARCH_BACKENDS)}")
        if self.search_backend == "youtube-api" and len(self.youtube_api_key) < 10:
            raise ConfigError("YOUTUBE_API_KEY appears to be invalid (too short)")
        if self.search_max_results < 1:
            raise ConfigError("SEARCH_MAX_RESULTS must be >= 1")

        if self.transcript_backend not in TRANSCRIPT_BACKENDS:
            raise ConfigError(f"TRANSCRIPT_BACKEND must be one of {', '.join(TRANSCRIPT_BACKENDS)}")
        if self.transcript_backend == "supadata" and not self.use_mock_data and not self.supadata_api_key:
            raise ConfigError("SUPADATA_API_KEY cannot be empty")

        if not 1 <= self.chunk_limit <= DISCORD_EMBED_LIMIT:
            raise ConfigError(f"DISCORD_CHUNK_LIMIT must be between 1 and {DISCORD_EMBED_LIMIT}")
        if self.retry_attempts < 1:
            raise ConfigError("RETRY_ATTEMPTS must be >= 1")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ConfigError("Retry delays cannot be negative")

    @staticmethod
    def _validate_url(url: str, name: str) -> None:
        if not url:
            raise ConfigError(f"{name} cannot be empty")
        if not url.startswith(("http://", "https://")):
            raise ConfigError(f"{name} must be a valid URL (starting with http:// or https://)")

    def to_safe_string(self) -> str:
        """Render settings for logs with secrets masked."""
        return (
            f"Settings(channel_id={self.channel_id}, title_pattern={self.title_pattern!r}, "
            f"search_backend={self.search_backend}, youtube_api_key={mask_key(self.youtube_api_key)}, "
            f"transcript_backend={self.transcript_backend}, supadata_api_key={mask_key(self.supadata_api_key)}, "
            f"use_mock_data={self.use_mock_data}, cache_path={self.cache_path}, "
            f"ai_api_url={self.ai_api_url}, ai_api_key={mask_key(self.ai_api_key)}, "
            f"discord_webhook={mask_url(self.discord_webhook_url)}, chunk_limit={self.chunk_limit}, "
            f"retry_attempts={self.retry_attempts})"
        )
