from __future__ import annotations

import pytest

import ksforward.cli as cli_module
from ksforward.errors import TransientError, UpstreamError
from ksforward.models import VideoRef
from ksforward.pipeline import Done, Failed, Stage

ENVIRONMENT = {
    "KSFORWARD_CHANNEL_ID": "UCabcdefghijklmnopqrstuv",
    "MY_AI_API_URL": "https://ai.example.com/chat",
    "DISCORD_KS_BOT_TOKEN": "https://discord.com/api/webhooks/123456/secret-token",
    "YOUTUBE_API_KEY": "AIzaSyA-0123456789abcdefghijklmnopqrst",
    "SUPADATA_API_KEY": "sd_0123456789abcdef",
}


@pytest.fixture
def environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name, value in ENVIRONMENT.items():
        monkeypatch.setenv(name, value)
    monkeypatch.delenv("USE_MOCK_DATA", raising=False)


class DummyPipeline:
    def __init__(self, result):
        self.result = result
        self.video_ids = []

    def run(self, video_id=None):
        self.video_ids.append(video_id)
        return self.result


def _install(monkeypatch, result):
    pipeline = DummyPipeline(result)
    captured = {}

    def fake_build(settings, session=None):
        captured["settings"] = settings
        return pipeline

    monkeypatch.setattr(cli_module, "build_pipeline", fake_build)
    return pipeline, captured


def test_main_returns_zero_on_done(monkeypatch, environment) -> None:
    video = VideoRef("dQw4w9WgXcQ", "KS Forward Ep5")
    pipeline, captured = _install(monkeypatch, Done(video=video, summary="s", chunks_sent=1))

    assert cli_module.main(["--mock", "--video", "https://youtu.be/dQw4w9WgXcQ"]) == cli_module.EXIT_OK
    assert pipeline.video_ids == ["dQw4w9WgXcQ"]
    assert captured["settings"].use_mock_data is True


def test_main_returns_retryable_code_when_retries_ran_out(monkeypatch, environment) -> None:
    cause = UpstreamError("AI summary request failed", cause=TransientError("HTTP 503", status=503))
    _install(monkeypatch, Failed(stage=Stage.SUMMARIZING, cause=cause))

    assert cli_module.main([]) == cli_module.EXIT_RETRYABLE


def test_main_returns_one_for_permanent_failures(monkeypatch, environment) -> None:
    _install(monkeypatch, Failed(stage=Stage.LOCATING_VIDEO, cause=UpstreamError("gone")))

    assert cli_module.main([]) == cli_module.EXIT_FAILED


def test_main_rejects_invalid_configuration(monkeypatch, environment) -> None:
    monkeypatch.setenv("MY_AI_API_URL", "")
    pipeline, _ = _install(monkeypatch, None)

    assert cli_module.main([]) == cli_module.EXIT_FAILED
    assert pipeline.video_ids == []


def test_main_show_config_prints_masked_settings(monkeypatch, environment, capsys) -> None:
    pipeline, _ = _install(monkeypatch, None)

    assert cli_module.main(["--show-config"]) == cli_module.EXIT_OK

    output = capsys.readouterr().out
    assert "UCabcdefghijklmnopqrstuv" in output
    assert "secret-token" not in output
    assert pipeline.video_ids == []


def test_main_rejects_bad_video_argument(monkeypatch, environment) -> None:
    pipeline, _ = _install(monkeypatch, None)

    for value in ("not a video id", "https://example.com/watch?v=x"):
        with pytest.raises(SystemExit) as info:
            cli_module.main(["--video", value])
        assert info.value.code == 2
    assert pipeline.video_ids == []


def test_video_help_mentions_feed_limit(capsys) -> None:
    with pytest.raises(SystemExit) as info:
        cli_module.main(["--help"])
    assert info.value.code == 0

    help_text = " ".join(capsys.readouterr().out.split())
    assert "SEARCH_BACKEND=rss only the ~15 newest uploads" in help_text
