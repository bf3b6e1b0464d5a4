"""
Shared test fixtures for safety_net tests.
"""

import json

import pytest

from safety_net.core.config import ENV_CONFIG, ENV_LOG_LEVEL, Config, configure_logging
from safety_net.core.pipeline import evaluate_command
from safety_net.core.request import ToolKind

CWD = "/home/user/project"


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep the developer's own config and log level out of every test."""
    monkeypatch.setenv(ENV_CONFIG, str(tmp_path / "no-user-config.toml"))
    monkeypatch.setenv(ENV_LOG_LEVEL, "critical")
    configure_logging("critical")


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def cwd():
    return CWD


@pytest.fixture
def evaluate_cmd(config):
    """Evaluate a command with the default config, cwd and branch."""

    def _evaluate(command, cfg=None, cwd=CWD, branch=None, tool=ToolKind.BASH):
        return evaluate_command(
            command,
            cfg if cfg is not None else config,
            tool=tool,
            cwd=cwd,
            current_branch=branch,
        )

    return _evaluate


@pytest.fixture
def hook_input():
    """Factory for generating hook input JSON."""

    def _make(command=None, tool="Bash", file_path=None, cwd=CWD, **extra):
        tool_input = {"command": command} if command is not None else {"file_path": file_path}
        return json.dumps({"tool_name": tool, "tool_input": tool_input, "cwd": cwd, **extra})

    return _make


def rule_of(decision):
    """Rule id of a decision, or None when allowed."""
    return None if decision.is_allowed else decision.rule_id
