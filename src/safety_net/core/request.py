"""Typed tool requests parsed from the PreToolUse hook payload."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum

from safety_net.core.errors import InputError


class ToolKind(str, Enum):
    BASH = "Bash"
    READ = "Read"
    EDIT = "Edit"
    WRITE = "Write"

    @property
    def is_file_tool(self) -> bool:
        return self is not ToolKind.BASH


@dataclass(frozen=True)
class Request:
    """One tool invocation to be judged."""

    tool: ToolKind
    raw_command: str | None = None
    file_path: str | None = None
    cwd: str = "/"
    session_id: str | None = None

    @property
    def summary(self) -> str:
        """The command or path this request is about."""
        if self.raw_command is not None:
            return self.raw_command
        if self.file_path is not None:
            return self.file_path
        return "<unknown>"


def parse_hook_input(text: str) -> Request | None:
    """Parse the hook's stdin JSON into a Request.

    Returns None for tools this hook does not judge. Raises InputError when
    the payload is not valid JSON or lacks the fields its tool requires.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InputError("hook input must be a JSON object")

    tool_name = data.get("tool_name")
    if not isinstance(tool_name, str):
        raise InputError("missing tool_name")
    try:
        tool = ToolKind(tool_name)
    except ValueError:
        return None

    tool_input = data.get("tool_input") or {}
    if not isinstance(tool_input, dict):
        raise InputError("tool_input must be an object")

    cwd = data.get("cwd")
    if not isinstance(cwd, str) or not cwd:
        cwd = os.getcwd()
    session_id = data.get("session_id")
    if not isinstance(session_id, str):
        session_id = None

    if tool is ToolKind.BASH:
        command = tool_input.get("command")
        if not isinstance(command, str):
            raise InputError("Bash tool_input needs a string 'command'")
        return Request(tool, raw_command=command, cwd=cwd, session_id=session_id)

    file_path = tool_input.get("file_path")
    if not isinstance(file_path, str):
        raise InputError(f"{tool.value} tool_input needs a string 'file_path'")
    return Request(tool, file_path=file_path, cwd=cwd, session_id=session_id)
