"""Shared fixtures for devagent tests."""

import os
from typing import Any, List
from unittest.mock import MagicMock

import pytest
import yaml

from devagent.errors import AgentStoppedError

ENV_VARS = ("LM_STUDIO_BASE_URL", "LM_STUDIO_MODEL", "AGENT_MAX_STEPS",
            "AGENT_VERBOSE", "WORKSPACE_DIR", "PORT")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Keep tests away from the user's ~/.devagent and environment."""
    home = tmp_path_factory.mktemp("devagent-home")
    monkeypatch.setattr("devagent.config.CONFIG_DIR", home)
    monkeypatch.setattr("devagent.config.CONFIG_FILE", home / "config.yml")
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def sample_config_data():
    """Minimal .agent.conf.yml data dict."""
    return {
        "base-url": "http://localhost:4321",
        "model": "qwen2.5-coder-7b",
        "max-steps": 20,
        "stall-timeout": 15,
        "report-file": "REVIEW_REPORT.md",
        "require-review-request": True,
        "verbose": False,
        "guards": {
            "duplicate": 6,
            "chain-error": 2,
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".agent.conf.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    return c


class ScriptedTransport:
    """Transport stub that replays pre-set replies, one per call.

    A reply may be a string, an exception instance (raised) or a callable
    taking the messages and returning a string. The last reply repeats
    once the script runs out.
    """

    def __init__(self, replies: List[Any], chunk_size: int = 0):
        self._replies = list(replies)
        self._call_count = 0
        self.chunk_size = chunk_size
        self.calls: List[List[dict]] = []

    def complete(self, messages, on_chunk=None, cancel=None, model=None):
        if cancel is not None and cancel.cancelled:
            raise AgentStoppedError()
        self.calls.append([dict(m) for m in messages])
        idx = min(self._call_count, len(self._replies) - 1)
        self._call_count += 1
        reply = self._replies[idx]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(messages)
        if on_chunk is not None and reply:
            size = self.chunk_size or len(reply)
            for i in range(0, len(reply), size):
                on_chunk(reply[i:i + size])
        return reply


@pytest.fixture
def scripted():
    """Factory for ScriptedTransport instances."""
    return ScriptedTransport


def tool_reply(action: str, params: str, thought: str = "Working on it.") -> str:
    return f"THOUGHT: {thought}\nACTION: {action}\nPARAMETERS: {params}"


@pytest.fixture
def reply():
    """Builder for well-formed THOUGHT / ACTION / PARAMETERS replies."""
    return tool_reply
