"""Tests for the analysis-upload command line."""
import io
import json
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from rich.console import Console

from analysis_uploader import cli, cli_progress
from analysis_uploader.errors import FetchError, ProcessingError
from analysis_uploader.models import (
    AnalysisResult,
    OrchestratorSnapshot,
    OrchestratorState,
    ProcessingState,
    ProcessingStatus,
    TransferProgress,
    UploadJob,
)

ENV_VARS = ("ANALYSIS_API_URL", "ANALYSIS_EMAIL", "ANALYSIS_API_TOKEN", "RESUMABLE_UPLOAD_URL", "LOG_LEVEL")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    logging.disable(logging.NOTSET)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


@pytest.fixture
def captured(monkeypatch):
    buffer = io.StringIO()
    monkeypatch.setattr(cli_progress, "console", Console(file=buffer, width=120))
    return buffer


@pytest.fixture
def video(tmp_path):
    path = tmp_path / "squat.mp4"
    path.write_bytes(b"\x00" * 32)
    return path


class TestEnvFile:
    def test_loads_values(self, tmp_path, monkeypatch):
        env = tmp_path / "custom.env"
        env.write_text(
            "# analysis\n"
            "export ANALYSIS_API_URL='https://api.test'\n"
            'ANALYSIS_EMAIL="lifter@example.com"\n'
            "ANALYSIS_API_TOKEN=already-set\n"
            "not a pair\n"
        )
        monkeypatch.setenv("ANALYSIS_API_TOKEN", "from-shell")

        cli._load_env_file(env)

        import os

        assert os.environ["ANALYSIS_API_URL"] == "https://api.test"
        assert os.environ["ANALYSIS_EMAIL"] == "lifter@example.com"
        assert os.environ["ANALYSIS_API_TOKEN"] == "from-shell"

    def test_missing_file(self, tmp_path):
        with pytest.raises(cli.CLIError, match="not found"):
            cli._load_env_file(tmp_path / "nope.env")

    def test_default_env_file(self, tmp_path):
        assert cli._resolve_default_env_file() is None
        (tmp_path / ".env").write_text("LOG_LEVEL=INFO\n")
        assert cli._resolve_default_env_file() is not None


class TestLogging:
    def test_silent_by_default(self):
        assert cli._setup_logging(debug=False, silent=False, log_level=None) == "silent"
        assert logging.getLogger().level > logging.CRITICAL

    def test_debug(self):
        assert cli._setup_logging(debug=True, silent=False, log_level=None) == "DEBUG"
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_explicit_level(self):
        assert cli._setup_logging(debug=False, silent=False, log_level="warning") == "WARNING"

    def test_env_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "info")
        assert cli._setup_logging(debug=False, silent=False, log_level=None) == "INFO"

    def test_silent_wins(self):
        assert cli._setup_logging(debug=True, silent=True, log_level=None) == "silent"


class TestBuildConfig:
    def _args(self, **overrides):
        values = dict(strategy="direct", resumable_endpoint=None, require_record=False, poll_interval=None)
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_defaults(self):
        config = cli._build_config(self._args())
        assert config.strategy == "direct"
        assert config.record_failure_policy == "continue"
        assert config.poll_interval == 5.0

    def test_require_record_and_interval(self):
        config = cli._build_config(self._args(require_record=True, poll_interval=2))
        assert config.record_failure_policy == "fail"
        assert config.poll_interval == 2

    def test_resumable_endpoint_from_env(self, monkeypatch):
        monkeypatch.setenv("RESUMABLE_UPLOAD_URL", "https://tus.test/files/")
        config = cli._build_config(self._args(strategy="resumable"))
        assert config.resumable_endpoint == "https://tus.test/files/"

    def test_resumable_without_endpoint(self):
        with pytest.raises(cli.CLIError, match="resumable_endpoint"):
            cli._build_config(self._args(strategy="resumable"))


class TestRunCli:
    def test_no_source_prints_help(self, capsys):
        assert cli.run_cli([]) == 0
        assert "analysis-upload" in capsys.readouterr().out

    def test_missing_source(self, tmp_path, capsys):
        assert cli.run_cli([str(tmp_path / "missing.mp4")]) == 1
        assert "does not exist" in capsys.readouterr().err

    def test_missing_api_url(self, video, capsys):
        assert cli.run_cli([str(video), "--email", "a@b.c"]) == 1
        assert "ANALYSIS_API_URL" in capsys.readouterr().err

    def test_missing_email(self, video, capsys):
        assert cli.run_cli([str(video), "--api-url", "https://api.test"]) == 1
        assert "email" in capsys.readouterr().err

    def test_runs_analysis(self, video, monkeypatch, captured):
        run = AsyncMock(return_value=0)
        monkeypatch.setattr(cli, "_run_analysis", run)
        monkeypatch.setenv("ANALYSIS_API_URL", "https://api.test")
        monkeypatch.setenv("ANALYSIS_EMAIL", "lifter@example.com")

        code = cli.run_cli([str(video), "-w", "80", "-l", "120", "--token", "tok"])

        assert code == 0
        kwargs = run.await_args.kwargs
        assert kwargs["api_url"] == "https://api.test"
        assert kwargs["token"] == "tok"
        assert kwargs["attributes"].email == "lifter@example.com"
        assert kwargs["attributes"].load == 120
        assert kwargs["as_json"] is False
        assert "Analysis API" in captured.getvalue()

    def test_env_file_option(self, video, tmp_path, monkeypatch):
        env = tmp_path / "job.env"
        env.write_text("ANALYSIS_API_URL=https://api.test\nANALYSIS_EMAIL=a@b.c\n")
        run = AsyncMock(return_value=1)
        monkeypatch.setattr(cli, "_run_analysis", run)

        assert cli.run_cli([str(video), "--env-file", str(env), "--json"]) == 1
        assert run.await_args.kwargs["as_json"] is True

    def test_keyboard_interrupt(self, video, monkeypatch):
        monkeypatch.setattr(cli, "_run_analysis", Mock(return_value=None))
        monkeypatch.setattr(cli, "asyncio", Mock(run=Mock(side_effect=KeyboardInterrupt)))
        args = [str(video), "--api-url", "https://api.test", "--email", "a@b.c", "--json"]
        assert cli.run_cli(args) == 130


def _job():
    from pathlib import Path

    return UploadJob(
        id="abcDEF123456",
        local_file_ref=Path("squat.mp4"),
        content_type="video/mp4",
        is_portrait=True,
        owner_identity="a@b.c",
        size=2048,
    )


class TestRendering:
    def test_success_panel(self, captured):
        snapshot = OrchestratorSnapshot(
            state=OrchestratorState.COMPLETE,
            job=_job(),
            result=AnalysisResult.success({"metrics": {"peak_velocity": 0.91}, "tension_windows": [[0, 1], [2, 3]]}),
        )
        cli_progress.render_result(snapshot)
        output = captured.getvalue()
        assert "peak velocity" in output
        assert "0.91" in output
        assert "reps" in output

    def test_fetch_error_hint(self, captured):
        snapshot = OrchestratorSnapshot(
            state=OrchestratorState.FAILED, job=_job(), error=FetchError("analysis store down")
        )
        cli_progress.render_result(snapshot)
        output = captured.getvalue()
        assert "analysis store down" in output
        assert "retrying the fetch" in output

    def test_json_output(self, captured):
        snapshot = OrchestratorSnapshot(
            state=OrchestratorState.FAILED,
            job=_job(),
            error=ProcessingError("abcDEF123456", "lifter out of frame"),
            result=AnalysisResult.failure("lifter out of frame"),
        )
        cli_progress.render_result(snapshot, as_json=True)
        body = json.loads(captured.getvalue())
        assert body["state"] == "failed"
        assert body["job_id"] == "abcDEF123456"
        assert body["error"] == "lifter out of frame"
        assert body["result"]["status"] == "error"

    def test_progress_display_follows_states(self, captured):
        display = cli_progress.JobProgressDisplay()
        job = _job()
        snapshots = [
            OrchestratorSnapshot(state=OrchestratorState.SELECTING, local_file_ref=job.local_file_ref),
            OrchestratorSnapshot(state=OrchestratorState.UPLOADING, job=job, progress=TransferProgress(0, 2048)),
            OrchestratorSnapshot(state=OrchestratorState.UPLOADING, job=job, progress=TransferProgress(1024, 2048)),
            OrchestratorSnapshot(
                state=OrchestratorState.PROCESSING,
                job=job,
                status=ProcessingStatus(job.id, ProcessingState.PROCESSING),
            ),
        ]
        for snapshot in snapshots:
            display(snapshot)
        display.close()

        output = captured.getvalue()
        assert "squat.mp4" in output
        assert job.id in output

    def test_human_size(self):
        assert cli_progress._human_size(512) == "512 B"
        assert cli_progress._human_size(50_000_000) == "47.68 MB"
