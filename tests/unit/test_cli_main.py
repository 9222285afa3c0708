"""Unit tests for CLI main app."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from agentbox import __version__
from agentbox.cli.main import app


@pytest.fixture
def runner():
    """CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("agentbox.cli.main.configure_logging"):
        yield


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "agentbox.yaml"
    path.write_text(
        "agent:\n"
        "  sandbox:\n"
        "    mode: non-main\n"
        f"    workspaceRoot: {tmp_path / 'sbx'}\n"
    )
    return path


class TestMainApp:
    """Test main CLI app registration."""

    def test_app_name(self):
        assert app.info.name == "agentbox"

    def test_app_help(self, runner):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "Per-session container sandboxing" in result.stdout
        for command in ("resolve", "build", "status", "stop", "version"):
            assert command in result.stdout

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestResolveCommand:
    def test_dry_run_sandboxed_agent(self, runner, config_file, fake_runtime, mock_settings):
        result = runner.invoke(
            app, ["resolve", "agent:family:whatsapp:1", "--config", str(config_file), "--dry-run"]
        )

        assert result.exit_code == 0
        assert "non-main" in result.stdout
        assert "yes" in result.stdout
        assert fake_runtime.calls == []

    def test_main_agent_not_sandboxed(self, runner, config_file, fake_runtime, mock_settings):
        result = runner.invoke(app, ["resolve", "agent:main:main", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Container" not in result.stdout
        assert fake_runtime.calls == []

    def test_resolves_container(self, runner, config_file, fake_runtime, mock_settings):
        result = runner.invoke(app, ["resolve", "agent:family:whatsapp:1", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "c0ffee1234567890" in result.stdout
        assert fake_runtime.count("run") == 1

    def test_missing_image_exits_nonzero(
        self, runner, config_file, fake_runtime, mock_settings
    ):
        fake_runtime.respond("image", returncode=1, stderr=b"No such image")

        result = runner.invoke(app, ["resolve", "agent:family:whatsapp:1", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "Sandbox failed" in result.stdout

    def test_bad_config_exits_nonzero(self, runner, tmp_path, mock_settings):
        path = tmp_path / "bad.yaml"
        path.write_text("agent:\n  sandbox:\n    mode: sometimes\n")

        result = runner.invoke(app, ["resolve", "agent:main:main", "-c", str(path)])

        assert result.exit_code == 1


class TestBuildCommand:
    def test_success(self, runner, fake_runtime, mock_settings):
        result = runner.invoke(app, ["build"])

        assert result.exit_code == 0
        assert "Sandbox image built" in result.stdout
        assert fake_runtime.count("build") == 1

    def test_failure(self, runner, fake_runtime, mock_settings):
        fake_runtime.respond("build", returncode=2, stderr=b"failed to solve")

        result = runner.invoke(app, ["build", "--image", "sbx:dev"])

        assert result.exit_code == 1
        assert "Build failed" in result.stdout


class TestStatusCommand:
    def test_ok(self, runner, fake_runtime, mock_settings):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "27.1.1" in result.stdout

    def test_runtime_unreachable(self, runner, fake_runtime, mock_settings):
        fake_runtime.respond("version", returncode=1, stderr=b"Cannot connect")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1

    def test_runtime_missing(self, runner, fake_runtime, mock_settings):
        fake_runtime.spawn_error = FileNotFoundError()

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1


class TestStopCommand:
    def test_removes(self, runner, fake_runtime, mock_settings):
        result = runner.invoke(app, ["stop", "agentbox-sbx-x"])

        assert result.exit_code == 0
        assert "Removed" in result.stdout
        assert fake_runtime.calls_for("rm")[0][-1] == "agentbox-sbx-x"
