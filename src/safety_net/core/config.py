"""
Configuration for aca-safety-net.

A Config is an immutable value. ``Config()`` is the hardcoded default policy;
``load_config`` layers the user file (~/.claude/security-hook.toml, or the
file named by $ACO_SAFETY_NET_CONFIG) and the nearest project file
(.security-hook.toml, found by walking up from cwd) on top of it. Lists
accumulate in load order, scalars set by a later layer win.
"""

from __future__ import annotations

import logging
import os
import re
import sys
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Literal, TextIO

import structlog

from safety_net.core.errors import ConfigError
from safety_net.core.request import ToolKind

USER_CONFIG = Path.home() / ".claude" / "security-hook.toml"
PROJECT_CONFIG_NAME = ".security-hook.toml"
ENV_CONFIG = "ACO_SAFETY_NET_CONFIG"
ENV_LOG_LEVEL = "ACO_SAFETY_NET_LOG_LEVEL"
DEFAULT_AUDIT_LOG = Path.home() / ".claude" / "security-hook-audit.jsonl"

log = structlog.get_logger(__name__)

RuleAction = Literal["block", "allow", "ask"]
RULE_ACTIONS = ("block", "allow", "ask")
ALL_TOOLS = frozenset(ToolKind)

DEFAULT_SENSITIVE_FILES = (
    # Environment files
    r"\.env\b",
    r"\.envrc\b",
    # Credentials
    r"credentials",
    r"secrets",
    r"\.netrc\b",
    r"\.npmrc\b",
    r"\.pypirc\b",
    # Keys and certs
    r"\.pem\b",
    r"\.key\b",
    r"id_rsa",
    r"id_ed25519",
    r"id_ecdsa",
    r"\.git-credentials",
    # Cloud configs
    r"\.kube/config",
    r"kubeconfig",
    r"\.aws/credentials",
    r"\.config/gcloud/",
    r"\.config/gh/hosts\.yml",
    # Shell history
    r"_history\b",
    r"\.bash_history",
    r"\.zsh_history",
)

DEFAULT_SENSITIVE_EXEMPTIONS = (r"\.env\.(example|sample|template|dist)$",)

DEFAULT_READ_COMMANDS = (
    "cat", "head", "tail", "less", "more", "grep", "rg", "ag", "sed", "awk",
    "strings", "xxd", "hexdump", "bat", "view",
)

DEFAULT_DEPENDENCY_FILES = (
    r"(^|/)Cargo\.toml$",
    r"(^|/)pyproject\.toml$",
    r"(^|/)package\.json$",
    r"(^|/)requirements\.txt$",
    r"(^|/)Gemfile$",
    r"(^|/)go\.mod$",
    r"(^|/)pom\.xml$",
    r"(^|/)build\.gradle(\.kts)?$",
    r"(^|/)composer\.json$",
    r"(^|/)Package\.swift$",
)

DEFAULT_DEPENDENCY_SUGGESTION = (
    "Use package manager CLI (cargo add, uv add, npm install, etc.) instead of editing directly"
)

TOP_LEVEL_KEYS = frozenset({
    "sensitive_files",
    "sensitive_exemptions",
    "read_commands",
    "deny",
    "rules",
    "paranoid",
    "git",
    "rm",
    "dependencies",
    "audit",
    "log_level",
})


# === Patterns and rules ===


@dataclass(frozen=True)
class Pattern:
    """A regular expression with its source text.

    An invalid source compiles to ``regex=None`` with the error recorded, so
    it can be reported at validation time and skipped at evaluation time.
    """

    source: str
    regex: re.Pattern[str] | None = field(default=None, compare=False, repr=False)
    error: str | None = None

    def search(self, text: str) -> re.Match[str] | None:
        if self.regex is None:
            return None
        return self.regex.search(text)


def compile_pattern(source: str) -> Pattern:
    try:
        return Pattern(source, re.compile(source))
    except re.error as e:
        return Pattern(source, None, str(e))


def _patterns(sources: Iterable[str]) -> tuple[Pattern, ...]:
    return tuple(compile_pattern(s) for s in sources)


@dataclass(frozen=True)
class DenyRule:
    """Explicit deny rule. Always blocks; checked before everything else."""

    name: str
    tool_scope: frozenset[ToolKind]
    pattern: Pattern
    reason: str
    source: str | None = None  # file path the rule came from
    action: RuleAction = field(default="block", init=False)

    def applies_to(self, tool: ToolKind) -> bool:
        return tool in self.tool_scope


@dataclass(frozen=True)
class CustomRule:
    """User rule: first match among custom rules governs the segment."""

    name: str
    tool_scope: frozenset[ToolKind]
    pattern: Pattern
    action: RuleAction = "block"
    reason: str | None = None
    source: str | None = None

    def applies_to(self, tool: ToolKind) -> bool:
        return tool in self.tool_scope


DEFAULT_DENY_RULES = (
    DenyRule(
        name="proc_environ",
        tool_scope=frozenset({ToolKind.READ}),
        pattern=compile_pattern(r"^/proc/[^/]+/environ$"),
        reason="Exposes process environment",
    ),
)


# === Policies ===


@dataclass(frozen=True)
class GitPolicy:
    block_destructive: bool = True
    block_add_sensitive: bool = True
    protected_branches: tuple[str, ...] = ("main", "master", "develop", "release")
    force_push_allowed_branches: tuple[str, ...] = ()

    def is_protected(self, branch: str) -> bool:
        """Whether force pushes and deletions of ``branch`` are blocked (fnmatch globs)."""
        if any(fnmatchcase(branch, p) for p in self.force_push_allowed_branches):
            return False
        return any(fnmatchcase(branch, p) for p in self.protected_branches)


@dataclass(frozen=True)
class RmPolicy:
    block_outside_cwd: bool = True
    allowed_paths: tuple[str, ...] = ("/tmp", "/var/tmp")
    system_dirs: tuple[str, ...] = (
        "/", "/bin", "/boot", "/dev", "/etc", "/home", "/lib", "/opt",
        "/proc", "/root", "/sbin", "/sys", "/usr", "/var",
    )
    max_parent_depth: int = 0


@dataclass(frozen=True)
class ParanoidPolicy:
    enabled: bool = False
    extra_patterns: tuple[Pattern, ...] = ()


@dataclass(frozen=True)
class DependencyPolicy:
    enabled: bool = True
    patterns: tuple[Pattern, ...] = field(default_factory=lambda: _patterns(DEFAULT_DEPENDENCY_FILES))
    suggestion: str | None = DEFAULT_DEPENDENCY_SUGGESTION

    def matches(self, path: str) -> Pattern | None:
        for pattern in self.patterns:
            if pattern.search(path):
                return pattern
        return None


@dataclass(frozen=True)
class AuditPolicy:
    enabled: bool = False
    path: Path | None = None

    @property
    def log_path(self) -> Path:
        return self.path if self.path is not None else DEFAULT_AUDIT_LOG


def _read_commands_pattern(commands: Iterable[str]) -> Pattern:
    return compile_pattern(r"\b(" + "|".join(re.escape(c) for c in commands) + r")\b")


@dataclass(frozen=True)
class Config:
    """Merged, immutable configuration. ``Config()`` is the built-in policy."""

    sensitive_file_patterns: tuple[Pattern, ...] = field(
        default_factory=lambda: _patterns(DEFAULT_SENSITIVE_FILES)
    )
    sensitive_file_exemptions: tuple[Pattern, ...] = field(
        default_factory=lambda: _patterns(DEFAULT_SENSITIVE_EXEMPTIONS)
    )
    read_command_pattern: Pattern = field(
        default_factory=lambda: _read_commands_pattern(DEFAULT_READ_COMMANDS)
    )
    deny_rules: tuple[DenyRule, ...] = DEFAULT_DENY_RULES
    custom_rules: tuple[CustomRule, ...] = ()
    git: GitPolicy = field(default_factory=GitPolicy)
    rm: RmPolicy = field(default_factory=RmPolicy)
    paranoid: ParanoidPolicy = field(default_factory=ParanoidPolicy)
    dependencies: DependencyPolicy = field(default_factory=DependencyPolicy)
    audit: AuditPolicy = field(default_factory=AuditPolicy)
    log_level: str = "warning"

    def match_sensitive(self, text: str) -> Pattern | None:
        """Return the sensitive pattern ``text`` matches, unless it is exempt."""
        for pattern in self.sensitive_file_patterns:
            if pattern.search(text):
                if any(e.search(text) for e in self.sensitive_file_exemptions):
                    return None
                return pattern
        return None

    def invalid_patterns(self) -> list[tuple[str, Pattern]]:
        """(where, pattern) for every pattern that failed to compile."""
        found: list[tuple[str, Pattern]] = []
        for p in self.sensitive_file_patterns:
            found.append(("sensitive_files", p))
        for p in self.sensitive_file_exemptions:
            found.append(("sensitive_exemptions", p))
        found.append(("read_commands", self.read_command_pattern))
        for rule in self.deny_rules:
            found.append((f"deny.{rule.name}", rule.pattern))
        for rule in self.custom_rules:
            found.append((f"rules.{rule.name}", rule.pattern))
        for p in self.paranoid.extra_patterns:
            found.append(("paranoid.extra_patterns", p))
        for p in self.dependencies.patterns:
            found.append(("dependencies.patterns", p))
        return [(where, p) for where, p in found if p.error is not None]

    def validate(self) -> None:
        """Raise ConfigError listing every invalid pattern."""
        invalid = self.invalid_patterns()
        if invalid:
            details = "; ".join(f"{where}: {p.source!r}: {p.error}" for where, p in invalid)
            raise ConfigError(f"invalid pattern(s): {details}")


# === Parsing one layer ===


def _expect(value: Any, kind: type | tuple[type, ...], where: str) -> Any:
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        names = kind.__name__ if isinstance(kind, type) else "/".join(k.__name__ for k in kind)
        raise ConfigError(f"{where}: expected {names}, got {type(value).__name__}")
    return value


def _str_list(table: Mapping[str, Any], key: str, where: str) -> tuple[str, ...]:
    value = table.get(key, [])
    _expect(value, list, f"{where}{key}")
    for item in value:
        _expect(item, str, f"{where}{key}")
    return tuple(value)


def _tool_scope(value: Any, where: str) -> frozenset[ToolKind]:
    names = [value] if isinstance(value, str) else value
    _expect(names, list, f"{where}.tool")
    tools = set()
    for name in names:
        _expect(name, str, f"{where}.tool")
        if name == "*":
            return ALL_TOOLS
        try:
            tools.add(ToolKind(name))
        except ValueError:
            raise ConfigError(f"{where}.tool: unknown tool {name!r}") from None
    return frozenset(tools)


def _table(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    return _expect(data.get(key, {}), dict, key)


def merge_config(base: Config, data: Mapping[str, Any], source: str | None = None) -> Config:
    """Layer one parsed TOML document onto ``base``.

    Lists (sensitive files, deny rules, custom rules, extra patterns, allowed
    paths and branches, dependency patterns) are appended; scalars present in
    ``data`` replace the base value.
    """
    unknown = set(data) - TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"unknown config key(s): {', '.join(sorted(unknown))}")

    config = replace(
        base,
        sensitive_file_patterns=base.sensitive_file_patterns
        + _patterns(_str_list(data, "sensitive_files", "")),
        sensitive_file_exemptions=base.sensitive_file_exemptions
        + _patterns(_str_list(data, "sensitive_exemptions", "")),
        deny_rules=base.deny_rules + _parse_deny(data.get("deny", []), source),
        custom_rules=base.custom_rules + _parse_rules(data.get("rules", []), source),
    )

    if "read_commands" in data:
        config = replace(
            config,
            read_command_pattern=compile_pattern(_expect(data["read_commands"], str, "read_commands")),
        )
    if "log_level" in data:
        config = replace(config, log_level=_expect(data["log_level"], str, "log_level"))

    paranoid = _table(data, "paranoid")
    config = replace(
        config,
        paranoid=replace(
            config.paranoid,
            enabled=_expect(paranoid.get("enabled", config.paranoid.enabled), bool, "paranoid.enabled"),
            extra_patterns=config.paranoid.extra_patterns
            + _patterns(_str_list(paranoid, "extra_patterns", "paranoid.")),
        ),
    )

    git = _table(data, "git")
    config = replace(
        config,
        git=replace(
            config.git,
            block_destructive=_expect(
                git.get("block_destructive", config.git.block_destructive), bool, "git.block_destructive"
            ),
            block_add_sensitive=_expect(
                git.get("block_add_sensitive", config.git.block_add_sensitive), bool, "git.block_add_sensitive"
            ),
            protected_branches=_str_list(git, "protected_branches", "git.")
            if "protected_branches" in git
            else config.git.protected_branches,
            force_push_allowed_branches=config.git.force_push_allowed_branches
            + _str_list(git, "force_push_allowed_branches", "git."),
        ),
    )

    rm = _table(data, "rm")
    config = replace(
        config,
        rm=replace(
            config.rm,
            block_outside_cwd=_expect(
                rm.get("block_outside_cwd", config.rm.block_outside_cwd), bool, "rm.block_outside_cwd"
            ),
            allowed_paths=config.rm.allowed_paths
            + tuple(os.path.expanduser(p) for p in _str_list(rm, "allowed_paths", "rm.")),
            max_parent_depth=_expect(
                rm.get("max_parent_depth", config.rm.max_parent_depth), int, "rm.max_parent_depth"
            ),
        ),
    )

    deps = _table(data, "dependencies")
    suggestion = deps.get("suggestion", config.dependencies.suggestion)
    if suggestion is not None:
        _expect(suggestion, str, "dependencies.suggestion")
    config = replace(
        config,
        dependencies=replace(
            config.dependencies,
            # An explicit false in any layer opts out
            enabled=config.dependencies.enabled
            and _expect(deps.get("enabled", True), bool, "dependencies.enabled"),
            patterns=config.dependencies.patterns + _patterns(_str_list(deps, "patterns", "dependencies.")),
            suggestion=suggestion,
        ),
    )

    audit = _table(data, "audit")
    audit_path = audit.get("path")
    if audit_path is not None:
        audit_path = Path(_expect(audit_path, str, "audit.path")).expanduser()
    config = replace(
        config,
        audit=replace(
            config.audit,
            enabled=_expect(audit.get("enabled", config.audit.enabled), bool, "audit.enabled"),
            path=audit_path if audit_path is not None else config.audit.path,
        ),
    )
    return config


def _parse_deny(entries: Any, source: str | None) -> tuple[DenyRule, ...]:
    _expect(entries, list, "deny")
    rules = []
    for i, entry in enumerate(entries):
        where = f"deny[{i}]"
        _expect(entry, dict, where)
        if "pattern" not in entry or "reason" not in entry:
            raise ConfigError(f"{where}: 'pattern' and 'reason' are required")
        rules.append(
            DenyRule(
                name=_expect(entry.get("name", f"rule{i + 1}"), str, f"{where}.name"),
                tool_scope=_tool_scope(entry.get("tool", "Bash"), where),
                pattern=compile_pattern(_expect(entry["pattern"], str, f"{where}.pattern")),
                reason=_expect(entry["reason"], str, f"{where}.reason"),
                source=source,
            )
        )
    return tuple(rules)


def _parse_rules(entries: Any, source: str | None) -> tuple[CustomRule, ...]:
    _expect(entries, list, "rules")
    rules = []
    for i, entry in enumerate(entries):
        where = f"rules[{i}]"
        _expect(entry, dict, where)
        if "name" not in entry or "pattern" not in entry:
            raise ConfigError(f"{where}: 'name' and 'pattern' are required")
        action = entry.get("action", "block")
        if action not in RULE_ACTIONS:
            raise ConfigError(f"{where}.action: expected one of {', '.join(RULE_ACTIONS)}, got {action!r}")
        reason = entry.get("reason")
        if reason is not None:
            _expect(reason, str, f"{where}.reason")
        rules.append(
            CustomRule(
                name=_expect(entry["name"], str, f"{where}.name"),
                tool_scope=_tool_scope(entry.get("tool", "Bash"), where),
                pattern=compile_pattern(_expect(entry["pattern"], str, f"{where}.pattern")),
                action=action,
                reason=reason,
                source=source,
            )
        )
    return tuple(rules)


def parse_config(text: str, source: str | None = None) -> dict[str, Any]:
    """Parse TOML text into a config layer. Raises ConfigError on syntax errors."""
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        where = f"{source}: " if source else ""
        raise ConfigError(f"{where}{e}") from e


# === Config Loading ===


def user_config_path() -> Path:
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        return Path(env_path).expanduser()
    return USER_CONFIG


def _find_project_config(cwd: Path) -> Path | None:
    """Walk up from cwd to find .security-hook.toml."""
    current = cwd.resolve()
    while True:
        candidate = current / PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:  # reached root
            return None
        current = parent


def _load_layer(config: Config, path: Path) -> Config:
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigError(f"{path}: {e}") from e
    data = parse_config(text, str(path))
    try:
        return merge_config(config, data, source=str(path))
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e


def load_config(cwd: Path, strict: bool = False) -> Config:
    """Load defaults, then the user file, then the project file.

    Read and TOML errors raise ConfigError. Invalid regular expressions
    raise only when ``strict``; otherwise they are logged once and the
    affected rules are skipped during evaluation.
    """
    config = Config()

    user_path = user_config_path()
    if user_path.is_file():
        config = _load_layer(config, user_path)

    project_path = _find_project_config(cwd)
    if project_path is not None and project_path.resolve() != user_path.resolve():
        config = _load_layer(config, project_path)

    if strict:
        config.validate()
    else:
        for where, pattern in config.invalid_patterns():
            log.warning("invalid_pattern_skipped", where=where, pattern=pattern.source, error=pattern.error)
    return config


# === Logging ===


def configure_logging(level: str = "warning", stream: TextIO | None = None) -> None:
    """Configure structlog to write JSON lines to ``stream`` (stderr by default).

    Stdout is reserved for the hook response, so logs never go there.
    """
    level_no = logging.getLevelNamesMapping().get(level.upper(), logging.WARNING)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        logger_factory=structlog.PrintLoggerFactory(file=stream if stream is not None else sys.stderr),
        cache_logger_on_first_use=False,
    )
