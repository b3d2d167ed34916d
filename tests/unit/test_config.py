"""Tests for configuration loading.

Verifies that:
- Every field has a default, so a missing file is a valid config
- YAML sections are parsed into the nested dataclasses
- ${VAR} references are resolved from the environment
- Invalid values raise ConfigError
"""

from pathlib import Path

import pytest
import yaml

from spec_pilot.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_YAML,
    ConfigError,
    PilotConfig,
    load_config,
    load_config_or_default,
    parse_config,
    write_default_config,
)


def write_config(root: Path, content: str) -> Path:
    path = root / CONFIG_FILENAME
    path.write_text(content)
    return path


class TestDefaults:
    """Tests for default values."""

    def test_pilot_config_defaults(self, tmp_path):
        config = PilotConfig(repo_root=str(tmp_path))

        assert config.max_retries == 3
        assert config.verbosity == "normal"
        assert config.priorities == ["P1", "P2", "P3", "P4"]
        assert config.agent.binary == "claude"
        assert config.agent.auto_approve_flag == "--dangerously-skip-permissions"
        assert config.checks.tests and config.checks.linting and config.checks.build
        assert config.commands.test is None
        assert config.timeouts.test == 300
        assert config.timeouts.lint == 120
        assert config.timeouts.build == 300

    def test_derived_paths(self, tmp_path):
        config = PilotConfig(repo_root=str(tmp_path))

        assert config.specs_path == tmp_path / "specs"
        assert config.state_file == tmp_path / ".spec-pilot" / "state.json"
        assert config.logs_path == tmp_path / ".spec-pilot" / "logs"

    def test_repo_root_made_absolute(self):
        assert Path(PilotConfig(repo_root=".").repo_root).is_absolute()

    def test_missing_file_yields_defaults(self, tmp_path):
        config = load_config_or_default(tmp_path)

        assert config.max_retries == 3
        assert config.repo_root == str(tmp_path.absolute())


class TestLoadConfig:
    """Tests for load_config()."""

    def test_full_file(self, tmp_path):
        write_config(tmp_path, """
agent:
  binary: /opt/claude
  timeout_seconds: 60
max_retries: 5
verbosity: verbose
priorities: [p1, P2]
checks:
  linting: false
commands:
  test: "pytest -q"
timeouts:
  build: 900
""")

        config = load_config(repo_root=tmp_path)

        assert config.agent.binary == "/opt/claude"
        assert config.agent.timeout_seconds == 60
        assert config.agent.prompt_timeout_seconds == 600
        assert config.max_retries == 5
        assert config.verbosity == "verbose"
        assert config.priorities == ["P1", "P2"]
        assert config.checks.linting is False
        assert config.checks.tests is True
        assert config.gate_command("test") == "pytest -q"
        assert config.gate_command("lint") is None
        assert config.gate_timeout("build") == 900
        assert config.gate_timeout("lint") == 120

    def test_missing_explicit_file_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file_is_defaults(self, tmp_path):
        write_config(tmp_path, "")

        assert load_config(repo_root=tmp_path).max_retries == 3

    def test_invalid_yaml_raises(self, tmp_path):
        write_config(tmp_path, "agent: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(repo_root=tmp_path)

    def test_non_mapping_raises(self, tmp_path):
        write_config(tmp_path, "- just\n- a list\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(repo_root=tmp_path)

    def test_repo_root_defaults_to_config_directory(self, tmp_path):
        path = write_config(tmp_path, "max_retries: 1\n")

        assert load_config(path).repo_root == str(tmp_path.absolute())

    def test_invalid_file_not_masked_by_default_loader(self, tmp_path):
        write_config(tmp_path, "max_retries: -1\n")

        with pytest.raises(ConfigError):
            load_config_or_default(tmp_path)


class TestValidation:
    """Tests for value validation in parse_config()."""

    @pytest.mark.parametrize("data", [
        {"max_retries": -1},
        {"max_retries": "many"},
        {"verbosity": "loud"},
        {"priorities": "P1"},
        {"priorities": ["P9"]},
        {"agent": {"timeout_seconds": 0}},
        {"timeouts": {"test": -5}},
        {"commands": {"test": 42}},
        {"checks": ["tests"]},
    ])
    def test_invalid_values_raise(self, tmp_path, data):
        with pytest.raises(ConfigError):
            parse_config(data, repo_root=tmp_path)

    def test_zero_retries_allowed(self, tmp_path):
        assert parse_config({"max_retries": 0}, repo_root=tmp_path).max_retries == 0

    def test_blank_command_means_auto_detect(self, tmp_path):
        config = parse_config({"commands": {"lint": "   "}}, repo_root=tmp_path)

        assert config.commands.lint is None

    def test_null_section_is_empty(self, tmp_path):
        config = parse_config({"agent": None}, repo_root=tmp_path)

        assert config.agent.binary == "claude"


class TestEnvironment:
    """Tests for environment variable handling."""

    def test_env_var_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLAUDE_BIN", "/usr/local/bin/claude")

        config = parse_config({"agent": {"binary": "${CLAUDE_BIN}"}}, repo_root=tmp_path)

        assert config.agent.binary == "/usr/local/bin/claude"

    def test_unset_env_var_raises(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SPEC_PILOT_UNSET_VAR", raising=False)

        with pytest.raises(ConfigError, match="SPEC_PILOT_UNSET_VAR"):
            parse_config({"commands": {"test": "${SPEC_PILOT_UNSET_VAR}"}}, repo_root=tmp_path)

    def test_log_level_env_overrides_verbosity(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPEC_PILOT_LOG_LEVEL", "DEBUG")

        config = parse_config({"verbosity": "quiet"}, repo_root=tmp_path)

        assert config.verbosity == "debug"


class TestWriteDefaultConfig:
    """Tests for write_default_config()."""

    def test_writes_loadable_file(self, tmp_path):
        path = write_default_config(tmp_path)

        assert path == tmp_path / CONFIG_FILENAME
        assert path.read_text() == DEFAULT_CONFIG_YAML
        config = load_config(repo_root=tmp_path)
        assert config.max_retries == 3
        assert config.commands.build is None

    def test_default_yaml_parses_to_mapping(self):
        assert isinstance(yaml.safe_load(DEFAULT_CONFIG_YAML), dict)

    def test_refuses_to_overwrite(self, tmp_path):
        write_config(tmp_path, "max_retries: 1\n")

        with pytest.raises(ConfigError, match="already exists"):
            write_default_config(tmp_path)

    def test_overwrite_flag(self, tmp_path):
        write_config(tmp_path, "max_retries: 1\n")

        write_default_config(tmp_path, overwrite=True)

        assert load_config(repo_root=tmp_path).max_retries == 3
