"""Unit tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from calendar_ingest import __version__
from calendar_ingest.cli import main
from calendar_ingest.exceptions import BackendUnavailableError
from calendar_ingest.jobs import JOB_REGISTRY, ScheduledJob


@pytest.fixture
def cli_env(settings):
    """Patch settings and logging so commands run without a .env or side effects."""
    with patch("calendar_ingest.cli.get_settings", return_value=settings), patch(
        "calendar_ingest.cli.setup_logging"
    ) as setup:
        yield setup


@pytest.fixture
def fake_job():
    """Swap a registered job's runner for an AsyncMock."""
    originals = {}

    def _fake(name, **mock_kwargs):
        originals[name] = JOB_REGISTRY[name]
        runner = AsyncMock(**mock_kwargs)
        job = originals[name]
        JOB_REGISTRY[name] = ScheduledJob(job.name, job.cron, job.description, runner)
        return runner

    yield _fake
    JOB_REGISTRY.update(originals)


class TestCli:
    """Tests for calendar_ingest.cli.main."""

    def test_version(self, capsys):
        """Should print the package version."""
        assert main(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_command_required(self, capsys):
        """Should fail without a command."""
        assert main([]) == 1
        assert "Command required" in capsys.readouterr().err

    def test_schedule(self, capsys):
        """Should print crontab lines without touching settings."""
        with patch("calendar_ingest.cli.get_settings") as get_settings:
            assert main(["schedule", "--command", "ci"]) == 0
        get_settings.assert_not_called()
        out = capsys.readouterr().out
        assert "0 */4 * * * ci ingest" in out
        assert "# cleanup-placeholders" in out

    def test_sources(self, cli_env, capsys):
        """Should list the bundled sources."""
        assert main(["sources"]) == 0
        out = capsys.readouterr().out
        assert "kpbs" in out
        assert "voice_of_san_diego" in out

    def test_ingest_prints_json(self, cli_env, fake_job, settings, capsys):
        """Should pass --only through and print the job result."""
        runner = fake_job("ingest", return_value={"written": 5, "errors": {}})

        assert main(["--json-logs", "ingest", "--only", "kpbs", "sdma"]) == 0

        runner.assert_awaited_once_with(settings, sources=["kpbs", "sdma"])
        assert json.loads(capsys.readouterr().out) == {"written": 5, "errors": {}}
        cli_env.assert_called_once_with(settings.LOG_LEVEL, True)

    def test_backend_unavailable_exit_code(self, cli_env, fake_job, capsys):
        """Should exit with 2 when a backend cannot be reached."""
        fake_job("expire-images", side_effect=BackendUnavailableError("no storage"))
        assert main(["expire-images"]) == 2
        assert "backend unavailable" in capsys.readouterr().err

    def test_invalid_settings_exit_code(self, monkeypatch, capsys):
        """Should exit with 1 when settings cannot be built."""
        from calendar_ingest.configs.settings import Settings, get_settings

        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setitem(Settings.model_config, "env_file", None)
        get_settings.cache_clear()
        try:
            assert main(["backfill-images"]) == 1
        finally:
            get_settings.cache_clear()
        assert "invalid settings" in capsys.readouterr().err
