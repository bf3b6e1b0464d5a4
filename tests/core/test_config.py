"""Tests for configuration parsing, merging and loading."""

import io
import json
from pathlib import Path

import pytest
import structlog
from structlog.testing import capture_logs

from safety_net.core.config import (
    ALL_TOOLS,
    ENV_CONFIG,
    PROJECT_CONFIG_NAME,
    Config,
    ConfigError,
    compile_pattern,
    configure_logging,
    load_config,
    merge_config,
    parse_config,
)
from safety_net.core.request import ToolKind


def layer(text, base=None, source="test.toml"):
    return merge_config(base or Config(), parse_config(text, source), source)


class TestDefaults:
    def test_default_policy(self):
        config = Config()
        assert config.git.protected_branches == ("main", "master", "develop", "release")
        assert config.rm.allowed_paths == ("/tmp", "/var/tmp")
        assert config.rm.max_parent_depth == 0
        assert not config.paranoid.enabled
        assert config.dependencies.enabled
        assert not config.audit.enabled
        assert config.log_level == "warning"

    def test_default_deny_rule_for_proc_environ(self):
        (rule,) = Config().deny_rules
        assert rule.name == "proc_environ"
        assert rule.applies_to(ToolKind.READ)
        assert not rule.applies_to(ToolKind.BASH)

    @pytest.mark.parametrize(
        "path",
        [".env", "config/.env.local", "~/.ssh/id_rsa", "server.pem", "~/.aws/credentials", "~/.kube/config"],
    )
    def test_sensitive(self, path):
        assert Config().match_sensitive(path) is not None

    @pytest.mark.parametrize(
        "path", [".env.example", ".env.sample", "app/.env.template", ".env.dist", "README.md", "src/environment.py"]
    )
    def test_not_sensitive(self, path):
        assert Config().match_sensitive(path) is None

    def test_valid(self):
        Config().validate()


class TestPattern:
    def test_valid(self):
        pattern = compile_pattern(r"\.env$")
        assert pattern.error is None
        assert pattern.search("x/.env")

    def test_invalid_never_raises(self):
        pattern = compile_pattern("[unclosed")
        assert pattern.regex is None
        assert pattern.error
        assert pattern.search("[unclosed") is None


class TestMerge:
    def test_lists_accumulate(self):
        config = layer('sensitive_files = ["\\\\.vault$"]')
        assert config.sensitive_file_patterns[-1].source == r"\.vault$"
        assert len(config.sensitive_file_patterns) == len(Config().sensitive_file_patterns) + 1

    def test_layers_append_in_order(self):
        config = layer('sensitive_files = ["b"]', layer('sensitive_files = ["a"]'))
        assert [p.source for p in config.sensitive_file_patterns[-2:]] == ["a", "b"]

    def test_scalars_override(self):
        config = layer("[rm]\nblock_outside_cwd = false\nmax_parent_depth = 2\n")
        assert not config.rm.block_outside_cwd
        assert config.rm.max_parent_depth == 2

    def test_unset_scalars_keep_base(self):
        base = layer("[paranoid]\nenabled = true\n")
        assert layer("[paranoid]\nextra_patterns = ['x']\n", base).paranoid.enabled

    def test_protected_branches_replace(self):
        config = layer('[git]\nprotected_branches = ["prod"]\n')
        assert config.git.protected_branches == ("prod",)

    def test_force_push_allowed_branches_accumulate(self):
        config = layer('[git]\nforce_push_allowed_branches = ["feature/*"]\n')
        assert not config.git.is_protected("feature/x")

    def test_allowed_paths_expand_home(self):
        config = layer('[rm]\nallowed_paths = ["~/scratch"]\n')
        assert config.rm.allowed_paths[-1] == str(Path.home() / "scratch")

    def test_dependencies_disabled_by_any_layer(self):
        disabled = layer("[dependencies]\nenabled = false\n")
        assert not disabled.dependencies.enabled
        assert not layer("[dependencies]\nenabled = true\n", disabled).dependencies.enabled

    def test_audit(self):
        config = layer('[audit]\nenabled = true\npath = "~/audit.jsonl"\n')
        assert config.audit.enabled
        assert config.audit.log_path == Path.home() / "audit.jsonl"

    def test_log_level(self):
        assert layer('log_level = "debug"').log_level == "debug"

    def test_read_commands_replaced(self):
        config = layer('read_commands = "\\\\b(cat|mycat)\\\\b"')
        assert config.read_command_pattern.search("mycat")


class TestRules:
    def test_deny_rule(self):
        config = layer(
            '[[deny]]\nname = "prod_db"\ntool = "Bash"\npattern = "psql.*prod"\nreason = "no prod"\n'
        )
        rule = config.deny_rules[-1]
        assert (rule.name, rule.reason, rule.action, rule.source) == ("prod_db", "no prod", "block", "test.toml")
        assert rule.tool_scope == frozenset({ToolKind.BASH})

    def test_deny_default_name_and_tool(self):
        rule = layer('[[deny]]\npattern = "x"\nreason = "r"\n').deny_rules[-1]
        assert rule.name == "rule1"
        assert rule.tool_scope == frozenset({ToolKind.BASH})

    def test_tool_list_and_wildcard(self):
        config = layer(
            '[[rules]]\nname = "a"\ntool = ["Read", "Write"]\npattern = "x"\n'
            '[[rules]]\nname = "b"\ntool = "*"\npattern = "y"\naction = "allow"\n'
        )
        a, b = config.custom_rules
        assert a.tool_scope == frozenset({ToolKind.READ, ToolKind.WRITE})
        assert b.tool_scope == ALL_TOOLS
        assert (a.action, b.action) == ("block", "allow")

    @pytest.mark.parametrize(
        "text",
        [
            '[[deny]]\npattern = "x"\n',
            '[[rules]]\npattern = "x"\n',
            '[[rules]]\nname = "a"\npattern = "x"\naction = "deny"\n',
            '[[rules]]\nname = "a"\npattern = "x"\ntool = "Grep"\n',
            'sensitive_files = "x"',
            "[rm]\nmax_parent_depth = true\n",
            "[git]\nblock_destructive = 1\n",
            'unknown_key = 1',
        ],
    )
    def test_invalid_layers(self, text):
        with pytest.raises(ConfigError):
            layer(text)

    def test_unknown_key_named(self):
        with pytest.raises(ConfigError, match="bogus"):
            layer("bogus = 1")

    def test_toml_syntax_error_names_source(self):
        with pytest.raises(ConfigError, match="broken.toml"):
            parse_config("[unclosed", "broken.toml")


class TestValidate:
    def test_invalid_patterns_listed(self):
        config = layer('sensitive_files = ["[bad"]\n[[rules]]\nname = "r"\npattern = "(oops"\n')
        where = [w for w, _ in config.invalid_patterns()]
        assert where == ["sensitive_files", "rules.r"]
        with pytest.raises(ConfigError, match="rules.r"):
            config.validate()


class TestLoadConfig:
    def test_no_files(self, tmp_path):
        assert load_config(tmp_path) == Config()

    def test_user_file(self, tmp_path, monkeypatch):
        user = tmp_path / "user.toml"
        user.write_text("[paranoid]\nenabled = true\n")
        monkeypatch.setenv(ENV_CONFIG, str(user))
        assert load_config(tmp_path).paranoid.enabled

    def test_project_file_found_walking_up(self, tmp_path):
        (tmp_path / PROJECT_CONFIG_NAME).write_text('[git]\nprotected_branches = ["trunk"]\n')
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert load_config(nested).git.protected_branches == ("trunk",)

    def test_project_overrides_user(self, tmp_path, monkeypatch):
        user = tmp_path / "user.toml"
        user.write_text('sensitive_files = ["user"]\n[rm]\nmax_parent_depth = 1\n')
        monkeypatch.setenv(ENV_CONFIG, str(user))
        project = tmp_path / "proj"
        project.mkdir()
        (project / PROJECT_CONFIG_NAME).write_text('sensitive_files = ["project"]\n[rm]\nmax_parent_depth = 3\n')
        config = load_config(project)
        assert config.rm.max_parent_depth == 3
        assert [p.source for p in config.sensitive_file_patterns[-2:]] == ["user", "project"]
        assert config.sensitive_file_patterns[-1].regex is not None

    def test_error_names_file(self, tmp_path):
        (tmp_path / PROJECT_CONFIG_NAME).write_text("nope = 1\n")
        with pytest.raises(ConfigError, match=PROJECT_CONFIG_NAME):
            load_config(tmp_path)

    def test_invalid_pattern_lenient(self, tmp_path):
        (tmp_path / PROJECT_CONFIG_NAME).write_text('sensitive_files = ["[bad"]\n')
        configure_logging("debug")
        with capture_logs() as logs:
            config = load_config(tmp_path)
        assert config.sensitive_file_patterns[-1].error
        assert [e["event"] for e in logs] == ["invalid_pattern_skipped"]

    def test_invalid_pattern_strict(self, tmp_path):
        (tmp_path / PROJECT_CONFIG_NAME).write_text('sensitive_files = ["[bad"]\n')
        with pytest.raises(ConfigError):
            load_config(tmp_path, strict=True)


class TestConfigureLogging:
    def test_json_lines_to_stream(self):
        stream = io.StringIO()
        configure_logging("info", stream=stream)
        structlog.get_logger("test").info("hello", rule="git.reset.hard")
        entry = json.loads(stream.getvalue())
        assert entry["event"] == "hello"
        assert entry["level"] == "info"
        assert entry["rule"] == "git.reset.hard"
        assert "timestamp" in entry

    def test_level_filters(self):
        stream = io.StringIO()
        configure_logging("warning", stream=stream)
        structlog.get_logger("test").info("quiet")
        assert stream.getvalue() == ""
