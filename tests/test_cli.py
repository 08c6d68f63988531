"""Tests for the click CLI and logging helpers."""

import logging
from types import SimpleNamespace

import pytest
import yaml
from click.testing import CliRunner

from devagent import __version__
from devagent.logger import PARSE_ERROR, log_agent_error, setup_error_log
from devagent.main import cli, compose_task


@pytest.fixture
def project(tmp_dir):
    """Project dir whose config keeps logs inside the temp tree."""
    with open(tmp_dir / ".agent.conf.yml", "w") as f:
        yaml.dump({
            "model": "cli-model",
            "log-file": str(tmp_dir / "logs" / "agent.log"),
            "error-log": str(tmp_dir / "logs" / "errors.log"),
        }, f)
    yield tmp_dir
    for name in ("devagent", "devagent.errors"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True


def test_compose_task():
    assert compose_task("fix it") == "fix it"
    assert compose_task("check", review=True) == "[MODE: REVIEW] check"
    assert compose_task("build", target="web") == "[TARGET FOLDER: web] build"


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert __version__ in result.output


class TestConfigCommand:

    def test_show(self, project):
        result = CliRunner().invoke(cli, ["config", "-d", str(project)])
        assert result.exit_code == 0
        assert "cli-model" in result.output

    def test_set_persists(self, project):
        result = CliRunner().invoke(cli, ["config", "-d", str(project), "set", "max-steps", "12"])
        assert result.exit_code == 0
        data = yaml.safe_load((project / ".agent.conf.yml").read_text())
        assert data["max-steps"] == 12
        assert data["model"] == "cli-model"

    def test_set_guard(self, project):
        CliRunner().invoke(cli, ["config", "-d", str(project), "set", "guards.duplicate", "8"])
        data = yaml.safe_load((project / ".agent.conf.yml").read_text())
        assert data["guards"]["duplicate"] == 8

    def test_set_invalid_value(self, project):
        result = CliRunner().invoke(cli, ["config", "-d", str(project), "set", "max-steps", "0"])
        assert result.exit_code == 1

    def test_set_unknown_key(self, project):
        result = CliRunner().invoke(cli, ["config", "-d", str(project), "set", "colour", "blue"])
        assert result.exit_code == 2
        assert "Unknown key" in result.output


class TestRunCommand:

    def _patch_transport(self, monkeypatch, transport):
        monkeypatch.setattr("devagent.main.ChatTransport",
                            SimpleNamespace(from_config=lambda config: transport))

    def test_successful_run(self, project, scripted, reply, monkeypatch):
        transport = scripted([
            reply("write_file", '{"path": "hello.txt", "content": "hello world"}'),
            reply("finish", '{"response": "Wrote hello.txt"}'),
        ])
        self._patch_transport(monkeypatch, transport)
        result = CliRunner().invoke(cli, ["run", "create", "hello.txt", "-d", str(project)])
        assert result.exit_code == 0, result.output
        assert (project / "hello.txt").read_text() == "hello world"
        assert transport.calls[0][-1]["content"] == "create hello.txt"

    def test_review_flag_tags_task(self, project, scripted, reply, monkeypatch):
        transport = scripted([reply("finish", '{"response": "no report"}')])
        self._patch_transport(monkeypatch, transport)
        result = CliRunner().invoke(cli, ["run", "check", "--review", "-d", str(project),
                                          "--max-steps", "2"])
        assert result.exit_code == 1
        assert transport.calls[0][-1]["content"] == "[MODE: REVIEW] check"

    def test_bad_max_steps(self, project, monkeypatch, scripted):
        self._patch_transport(monkeypatch, scripted(["unused"]))
        result = CliRunner().invoke(cli, ["run", "x", "-d", str(project), "--max-steps", "9999"])
        assert result.exit_code == 2


def test_error_log_entries(tmp_path):
    path = tmp_path / "errors.log"
    setup_error_log(path)
    try:
        log_agent_error(PARSE_ERROR, "no JSON after PARAMETERS", {"step": 2})
    finally:
        setup_error_log(False)
    line = path.read_text(encoding="utf-8").strip()
    assert line.endswith('PARSE_ERROR: no JSON after PARAMETERS | {"step": 2}')
