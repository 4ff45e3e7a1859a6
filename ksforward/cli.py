#!/usr/bin/env python3
"""Summarize the latest KS Forward video and post it to Discord."""

from __future__ import annotations

import argparse
import logging
import sys

from . import __version__
from .common import configure_logging, extract_video_id
from .errors import ConfigError
from .pipeline import Done, build_pipeline
from .settings import Settings

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_RETRYABLE = 2


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Find the latest KS Forward video, summarize its transcript and post it to Discord"
    )
    parser.add_argument(
        "--video",
        help=(
            "Summarize this video (ID or URL) instead of searching the channel. "
            "With SEARCH_BACKEND=rss only the ~15 newest uploads in the channel feed can be found"
        ),
    )
    parser.add_argument("--mock", action="store_true", help="Use the bundled sample transcript")
    parser.add_argument("--env-file", help="Load environment variables from this file (default: .env)")
    parser.add_argument("--show-config", action="store_true", help="Print the effective settings and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", action="store_true", help="Only show errors")
    args = parser.parse_args(argv)

    try:
        configure_logging(verbose=args.verbose, quiet=args.quiet)
    except ValueError as exc:
        parser.error(str(exc))
    logger = logging.getLogger("ksforward")

    video_id = None
    if args.video:
        try:
            video_id = extract_video_id(args.video)
        except ValueError as exc:
            parser.error(str(exc))

    try:
        settings = Settings.from_env(dotenv_path=args.env_file)
        if args.mock:
            settings.use_mock_data = True
        settings.validate()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_FAILED

    if args.show_config:
        print(settings.to_safe_string())
        return EXIT_OK

    logger.info("Starting KS Forward digest %s", __version__)
    logger.debug("%s", settings.to_safe_string())

    result = build_pipeline(settings).run(video_id=video_id)
    if isinstance(result, Done):
        logger.info("Run completed: posted summary of %s", result.video.url)
        return EXIT_OK

    logger.error(
        "Run failed at stage %s: %s (category=%s, retryable=%s)",
        result.stage.value,
        result.cause,
        result.category,
        result.retryable,
    )
    return EXIT_RETRYABLE if result.retryable else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
