"""
PreToolUse hook entry point.

Reads the hook payload from stdin, loads configuration for the request's
working directory, evaluates the request and renders the decision as an
exit code plus stdout/stderr text.

The hook fails open: a malformed payload, an unreadable config or an
unexpected error during evaluation is logged and the request is allowed.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import TextIO

import structlog

from safety_net.core.audit import build_audit_record, write_audit_record
from safety_net.core.config import ENV_LOG_LEVEL, Config, configure_logging, load_config
from safety_net.core.decision import ALLOW, Decision
from safety_net.core.errors import ConfigError, InputError
from safety_net.core.output import render_decision
from safety_net.core.pipeline import evaluate, evaluate_request
from safety_net.core.request import Request, ToolKind, parse_hook_input
from safety_net.core.segmenter import segment
from safety_net.core.tokenizer import tokenize
from safety_net.core.wrappers import unwrap

log = structlog.get_logger(__name__)


def read_current_branch(cwd: str | Path) -> str | None:
    """Name of the checked-out branch of the repository containing ``cwd``.

    Reads .git/HEAD directly (following a ``gitdir:`` file for worktrees and
    submodules). Returns None for a detached HEAD or outside a repository.
    """
    current = Path(cwd)
    for directory in (current, *current.parents):
        git = directory / ".git"
        if git.is_dir():
            head = git / "HEAD"
            break
        if git.is_file():
            try:
                content = git.read_text().strip()
            except OSError:
                return None
            if not content.startswith("gitdir:"):
                return None
            gitdir = Path(content.removeprefix("gitdir:").strip())
            if not gitdir.is_absolute():
                gitdir = directory / gitdir
            head = gitdir / "HEAD"
            break
    else:
        return None

    try:
        ref = head.read_text().strip()
    except OSError:
        return None
    if ref.startswith("ref: refs/heads/"):
        return ref.removeprefix("ref: refs/heads/")
    return None


def _load(cwd: str) -> Config:
    try:
        return load_config(Path(cwd))
    except ConfigError as e:
        log.warning("config_load_failed", error=str(e))
        return Config()


def run_hook(payload: str, stdout: TextIO, stderr: TextIO) -> int:
    """Judge one hook payload, write the response, return the exit code."""
    try:
        request = parse_hook_input(payload)
    except InputError as e:
        log.warning("invalid_hook_input", error=str(e))
        return 0
    if request is None:
        return 0

    config = _load(request.cwd)
    if ENV_LOG_LEVEL not in os.environ:
        configure_logging(config.log_level)

    branch = read_current_branch(request.cwd) if request.tool is ToolKind.BASH else None
    try:
        decision = evaluate_request(request, config, current_branch=branch)
    except Exception:
        log.exception("evaluation_failed", tool=request.tool.value)
        decision = ALLOW

    log.info("decision", tool=request.tool.value, action=decision.action, rule=decision.rule_id)
    _audit(request, decision, config)

    rendered = render_decision(decision)
    if rendered.stdout:
        stdout.write(rendered.stdout)
    if rendered.stderr:
        stderr.write(rendered.stderr)
    return rendered.exit_code


def _audit(request: Request, decision: Decision, config: Config) -> None:
    if not config.audit.enabled:
        return
    try:
        write_audit_record(build_audit_record(request, decision), config.audit.log_path)
    except OSError as e:
        log.warning("audit_write_failed", path=str(config.audit.log_path), error=str(e))


def explain(command: str, cwd: str, out: TextIO) -> int:
    """Print how ``command`` is tokenized, segmented and judged."""
    config = _load(cwd)
    print(f"Command: {command!r}", file=out)
    print("-" * 40, file=out)
    tokens = tokenize(command)
    print("Tokens:", file=out)
    for token in tokens:
        extra = f" substitutions={list(token.substitutions)}" if token.substitutions else ""
        print(f"  {token.kind:<10} {token.value!r}{extra}", file=out)
    print("Segments:", file=out)
    for i, seg in enumerate(segment(tokens)):
        inner = unwrap(seg)
        operator = seg.operator.value if seg.operator else "start"
        print(f"  [{i}] ({operator!r}) {seg.display}", file=out)
        if inner.wrappers:
            print(f"      unwrapped ({' > '.join(inner.wrappers)}): {inner.display}", file=out)
        for child in inner.nested:
            print(f"      nested: {child.display}", file=out)
        verdict = evaluate(inner, config, cwd=cwd, current_branch=read_current_branch(cwd))
        print(f"      -> {verdict.action} {verdict.rule_id or ''}".rstrip(), file=out)
    decision = evaluate_request(
        Request(ToolKind.BASH, raw_command=command, cwd=cwd),
        config,
        current_branch=read_current_branch(cwd),
    )
    print("-" * 40, file=out)
    print(f"Decision: {decision.action}", file=out)
    if not decision.is_allowed:
        print(f"Rule: {decision.rule_id}", file=out)
        print(f"Reason: {decision.reason}", file=out)
    return 0


def check_config(cwd: str, out: TextIO) -> int:
    """Load configuration strictly; print errors and return 1 if invalid."""
    try:
        load_config(Path(cwd), strict=True)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=out)
        return 1
    print("Configuration OK", file=out)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="aca-safety-net",
        description="PreToolUse hook that blocks destructive and secret-exposing tool calls.",
    )
    parser.add_argument("--explain", metavar="COMMAND", help="show how a command is parsed and judged")
    parser.add_argument("--check-config", action="store_true", help="validate configuration and exit")
    args = parser.parse_args(argv)

    configure_logging(os.environ.get(ENV_LOG_LEVEL, "warning"))
    cwd = os.getcwd()

    if args.check_config:
        sys.exit(check_config(cwd, sys.stdout))
    if args.explain is not None:
        sys.exit(explain(args.explain, cwd, sys.stdout))
    sys.exit(run_hook(sys.stdin.read(), sys.stdout, sys.stderr))
