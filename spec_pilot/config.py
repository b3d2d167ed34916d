"""
Configuration loading and validation for spec-pilot.

This module handles:
- Loading .spec-pilot.yaml from the project root
- Environment variable resolution (${VAR} syntax)
- Validation of values (retry budget, verbosity, timeouts)
- Default values for every field, so a missing file is a valid config
- Writing a starter configuration file
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from spec_pilot.errors import SpecPilotError
from spec_pilot.utils.fs import FileSystemError, safe_write

CONFIG_FILENAME = ".spec-pilot.yaml"
LOG_LEVEL_ENV_VAR = "SPEC_PILOT_LOG_LEVEL"
VERBOSITY_LEVELS = ("quiet", "normal", "verbose", "debug")
DEFAULT_PRIORITIES = ["P1", "P2", "P3", "P4"]


class ConfigError(SpecPilotError):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


@dataclass
class AgentConfig:
    """Code generation agent (Claude CLI) configuration."""
    binary: str = "claude"                               # Path to agent binary
    timeout_seconds: int = 300                           # Timeout for implement calls
    prompt_timeout_seconds: int = 600                    # Timeout for pipeline step prompts
    auto_approve_flag: str = "--dangerously-skip-permissions"


@dataclass
class ChecksConfig:
    """Which quality gates are enabled."""
    tests: bool = True
    linting: bool = True
    build: bool = True


@dataclass
class CommandsConfig:
    """Override commands per gate. None means auto-detect."""
    test: Optional[str] = None
    lint: Optional[str] = None
    build: Optional[str] = None


@dataclass
class TimeoutsConfig:
    """Per-gate timeouts in seconds."""
    test: int = 300
    lint: int = 120
    build: int = 300


@dataclass
class PilotConfig:
    """
    Main configuration for spec-pilot.

    This is the top-level config loaded from .spec-pilot.yaml.
    """
    # Paths
    repo_root: str = "."
    specs_dir: str = "specs"
    state_dir: str = ".spec-pilot"

    # Behaviour
    max_retries: int = 3
    verbosity: str = "normal"
    priorities: list[str] = field(default_factory=lambda: list(DEFAULT_PRIORITIES))

    # Nested configurations
    agent: AgentConfig = field(default_factory=AgentConfig)
    checks: ChecksConfig = field(default_factory=ChecksConfig)
    commands: CommandsConfig = field(default_factory=CommandsConfig)
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)

    def __post_init__(self) -> None:
        """Convert paths to absolute paths based on repo_root."""
        self.repo_root = str(Path(self.repo_root).absolute())

    @property
    def specs_path(self) -> Path:
        """Absolute path to specs directory."""
        return Path(self.repo_root) / self.specs_dir

    @property
    def pilot_path(self) -> Path:
        """Absolute path to the .spec-pilot working directory."""
        return Path(self.repo_root) / self.state_dir

    @property
    def state_file(self) -> Path:
        """Absolute path to the persisted state file."""
        return self.pilot_path / "state.json"

    @property
    def logs_path(self) -> Path:
        """Absolute path to logs directory."""
        return self.pilot_path / "logs"

    def gate_command(self, gate: str) -> Optional[str]:
        """Configured override command for a gate ("test", "lint", "build")."""
        return getattr(self.commands, gate, None)

    def gate_timeout(self, gate: str) -> int:
        """Configured timeout for a gate ("test", "lint", "build")."""
        return getattr(self.timeouts, gate)


def _resolve_env_vars(value: Any) -> Any:
    """
    Resolve environment variables in a value.

    Supports ${VAR} syntax for environment variable substitution.
    Returns the original value if it's not a string.
    """
    if isinstance(value, str):
        pattern = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

        def replace(match: re.Match) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ConfigError(f"Environment variable ${{{var_name}}} is not set")
            return env_value

        return pattern.sub(replace, value)

    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]

    return value


def _positive_int(value: Any, name: str, allow_zero: bool = False) -> int:
    """Coerce a value to int and check its sign."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < 0 or (number == 0 and not allow_zero):
        raise ConfigError(f"{name} must be {'non-negative' if allow_zero else 'positive'}, got {number}")
    return number


def _parse_agent_config(data: dict[str, Any]) -> AgentConfig:
    """Parse agent configuration from dict."""
    return AgentConfig(
        binary=data.get("binary", "claude"),
        timeout_seconds=_positive_int(data.get("timeout_seconds", 300), "agent.timeout_seconds"),
        prompt_timeout_seconds=_positive_int(
            data.get("prompt_timeout_seconds", 600), "agent.prompt_timeout_seconds"
        ),
        auto_approve_flag=data.get("auto_approve_flag", "--dangerously-skip-permissions"),
    )


def _parse_checks_config(data: dict[str, Any]) -> ChecksConfig:
    """Parse enabled-gate flags from dict."""
    return ChecksConfig(
        tests=bool(data.get("tests", True)),
        linting=bool(data.get("linting", True)),
        build=bool(data.get("build", True)),
    )


def _parse_commands_config(data: dict[str, Any]) -> CommandsConfig:
    """Parse gate override commands from dict."""
    def command(key: str) -> Optional[str]:
        value = data.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ConfigError(f"commands.{key} must be a string, got {value!r}")
        return value.strip() or None

    return CommandsConfig(test=command("test"), lint=command("lint"), build=command("build"))


def _parse_timeouts_config(data: dict[str, Any]) -> TimeoutsConfig:
    """Parse per-gate timeouts from dict."""
    return TimeoutsConfig(
        test=_positive_int(data.get("test", 300), "timeouts.test"),
        lint=_positive_int(data.get("lint", 120), "timeouts.lint"),
        build=_positive_int(data.get("build", 300), "timeouts.build"),
    )


def _parse_verbosity(value: Any) -> str:
    """Validate verbosity, applying the SPEC_PILOT_LOG_LEVEL override."""
    override = os.environ.get(LOG_LEVEL_ENV_VAR)
    if override:
        value = override
    verbosity = str(value).strip().lower()
    if verbosity not in VERBOSITY_LEVELS:
        raise ConfigError(
            f"verbosity must be one of {', '.join(VERBOSITY_LEVELS)}, got {value!r}"
        )
    return verbosity


def _parse_priorities(value: Any) -> list[str]:
    """Validate the priority filter list."""
    if value is None:
        return list(DEFAULT_PRIORITIES)
    if not isinstance(value, list):
        raise ConfigError(f"priorities must be a list, got {value!r}")
    priorities = [str(p).upper() for p in value]
    invalid = [p for p in priorities if p not in DEFAULT_PRIORITIES]
    if invalid:
        raise ConfigError(f"Unknown priorities: {', '.join(invalid)}")
    return priorities


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    """Fetch a nested mapping, treating null as empty."""
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return value


def parse_config(data: dict[str, Any], repo_root: str | Path = ".") -> PilotConfig:
    """
    Build a PilotConfig from an already-loaded mapping.

    Args:
        data: Raw configuration mapping (as loaded from YAML).
        repo_root: Project root the config belongs to.

    Returns:
        PilotConfig: Validated configuration.

    Raises:
        ConfigError: If any value is invalid.
    """
    data = _resolve_env_vars(data)

    return PilotConfig(
        repo_root=str(repo_root),
        specs_dir=data.get("specs_dir", "specs"),
        state_dir=data.get("state_dir", ".spec-pilot"),
        max_retries=_positive_int(data.get("max_retries", 3), "max_retries", allow_zero=True),
        verbosity=_parse_verbosity(data.get("verbosity", "normal")),
        priorities=_parse_priorities(data.get("priorities")),
        agent=_parse_agent_config(_section(data, "agent")),
        checks=_parse_checks_config(_section(data, "checks")),
        commands=_parse_commands_config(_section(data, "commands")),
        timeouts=_parse_timeouts_config(_section(data, "timeouts")),
    )


def load_config(
    config_path: Optional[str | Path] = None,
    repo_root: Optional[str | Path] = None,
) -> PilotConfig:
    """
    Load configuration from .spec-pilot.yaml.

    Args:
        config_path: Optional path to config file. If not provided,
                     looks for .spec-pilot.yaml in repo_root.
        repo_root: Project root. Defaults to the config file's directory.

    Returns:
        PilotConfig: Loaded and validated configuration.

    Raises:
        ConfigError: If config is missing, invalid or cannot be loaded.
    """
    if config_path is None:
        config_path = Path(repo_root or ".") / CONFIG_FILENAME

    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    return parse_config(raw_data, repo_root=repo_root or path.parent)


def load_config_or_default(repo_root: str | Path = ".") -> PilotConfig:
    """
    Load .spec-pilot.yaml from repo_root, or return defaults if it is absent.

    An existing but invalid file still raises ConfigError.
    """
    path = Path(repo_root) / CONFIG_FILENAME
    if not path.exists():
        return parse_config({}, repo_root=repo_root)
    return load_config(path, repo_root=repo_root)


DEFAULT_CONFIG_YAML = """\
# spec-pilot configuration
agent:
  binary: claude
  timeout_seconds: 300
  prompt_timeout_seconds: 600
  auto_approve_flag: --dangerously-skip-permissions

max_retries: 3
verbosity: normal            # quiet | normal | verbose | debug
priorities: [P1, P2, P3, P4]

checks:
  tests: true
  linting: true
  build: true

# null means auto-detect from project files
commands:
  test: null
  lint: null
  build: null

timeouts:
  test: 300
  lint: 120
  build: 300

state_dir: .spec-pilot
"""


def write_default_config(repo_root: str | Path = ".", overwrite: bool = False) -> Path:
    """
    Write a starter .spec-pilot.yaml into repo_root.

    Raises:
        ConfigError: If the file exists and overwrite is False, or the write fails.
    """
    path = Path(repo_root) / CONFIG_FILENAME
    if path.exists() and not overwrite:
        raise ConfigError(f"Configuration file already exists: {path}")
    try:
        safe_write(path, DEFAULT_CONFIG_YAML)
    except FileSystemError as e:
        raise ConfigError(str(e))
    return path
