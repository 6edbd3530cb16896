"""Tests for the agentshell command line interface."""

import json
import os
import shutil
import sys

import pytest
from click.testing import CliRunner

from agentshell.cli.main import EXIT_TIMEOUT, cli
from agentshell.security.secrets import ENV_SECRET_NAME_RE

pytestmark = pytest.mark.skipif(
    sys.platform == "win32" or shutil.which("bash") is None, reason="requires bash"
)


@pytest.fixture
def project(tmp_path, monkeypatch):
    """Isolated home and project directory with no ambient secrets."""
    home = tmp_path / "home"
    home.mkdir()
    project_dir = tmp_path / "project"
    project_dir.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(project_dir)
    for name in list(os.environ):
        if name.startswith("AGENTSHELL_") and name != "AGENTSHELL_DISABLE_FILE_LOGGING":
            monkeypatch.delenv(name)
        elif ENV_SECRET_NAME_RE.search(name.upper()):
            monkeypatch.delenv(name)
    return project_dir


def write_secrets(project_dir, entries):
    config_dir = project_dir / ".agentshell"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "secrets.json").write_text(json.dumps(entries))


@pytest.fixture
def runner():
    return CliRunner()


class TestRunCommand:
    def test_prints_output(self, runner, project):
        result = runner.invoke(cli, ["run", "echo hello"])

        assert result.exit_code == 0
        assert "hello" in result.stdout

    def test_exit_code_passthrough(self, runner, project):
        result = runner.invoke(cli, ["run", "exit 3"])

        assert result.exit_code == 3

    def test_timeout_exit_code(self, runner, project):
        result = runner.invoke(cli, ["run", "sleep 5", "--timeout", "1"])

        assert result.exit_code == EXIT_TIMEOUT
        assert "Command timed out after 1 seconds" in result.stdout

    def test_env_secret_is_redacted(self, runner, project, monkeypatch):
        monkeypatch.setenv("MY_API_KEY", "sk-test-1234567890")

        result = runner.invoke(cli, ["run", "echo $MY_API_KEY"])

        assert result.exit_code == 0
        assert "sk-test-1234567890" not in result.stdout
        assert "<<$env:S0>>" in result.stdout

    def test_no_redact(self, runner, project, monkeypatch):
        monkeypatch.setenv("MY_API_KEY", "sk-test-1234567890")

        result = runner.invoke(cli, ["run", "echo $MY_API_KEY", "--no-redact"])

        assert "sk-test-1234567890" in result.stdout

    def test_project_replace_secret(self, runner, project):
        write_secrets(project, [{"content": "hunter2-password", "mode": "replace"}])

        result = runner.invoke(cli, ["run", "echo pw=hunter2-password"])

        assert result.stdout.strip() == "pw=" + "*" * len("hunter2-password")

    def test_json_output(self, runner, project):
        result = runner.invoke(cli, ["run", "echo hi; exit 4", "--json"])

        data = json.loads(result.stdout)
        assert result.exit_code == 4
        assert data["output"] == "hi\n"
        assert data["exit_code"] == 4
        assert data["cancelled"] is False
        assert data["truncated"] is False

    def test_cwd_option(self, runner, project, tmp_path):
        result = runner.invoke(cli, ["run", "pwd", "--cwd", str(tmp_path)])

        assert result.stdout.strip() == str(tmp_path)

    def test_invalid_secrets_file(self, runner, project):
        write_secrets(project, [{"content": "/(broken/", "type": "regex"}])

        result = runner.invoke(cli, ["run", "echo hi"])

        assert result.exit_code == 1
        assert "Invalid secret pattern" in result.output


class TestSecretsCommand:
    def test_no_secrets(self, runner, project):
        result = runner.invoke(cli, ["secrets"])

        assert result.exit_code == 0
        assert "No secrets configured" in result.output

    def test_lists_without_values(self, runner, project):
        write_secrets(
            project,
            [{"content": "hunter2-password"}, {"content": "tok_\\w+", "type": "regex"}],
        )

        result = runner.invoke(cli, ["secrets"])

        assert result.exit_code == 0
        assert "<<$env:S0>>" in result.output
        assert "regex" in result.output
        assert "hunter2-password" not in result.output

    def test_reads_project_config(self, runner, project):
        config_dir = project / ".agentshell"
        config_dir.mkdir()
        (config_dir / "config.json").write_text(json.dumps({"spill_threshold": 0}))

        result = runner.invoke(cli, ["secrets"])

        assert result.exit_code == 1
        assert "Configuration error 'spill_threshold'" in result.output


class TestCliGroup:
    def test_without_subcommand_shows_commands(self, runner):
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        assert "agentshell run" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert "0.1.0" in result.output
