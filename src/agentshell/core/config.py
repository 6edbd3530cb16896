"""Configuration system for agentshell.

Provides configuration loading, merging, and validation with precedence:
1. Environment variables (highest)
2. Project config (.agentshell/config.json)
3. User config (~/.agentshell/config.json)
4. Defaults (lowest)

Secret definitions live next to the config files in ``secrets.json`` at the
same two levels (global and project).
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from agentshell.core.exceptions import ConfigurationError

CONFIG_DIR_NAME = ".agentshell"
DEFAULT_SPILL_THRESHOLD = 50 * 1024


@dataclass
class ShellConfig:
    """Shell execution settings.

    Attributes:
        shell: Shell binary used by the subprocess runtime
        command_prefix: Text prepended to every command (must be valid shell syntax)
        session_env: Variables exported once when a persistent session starts
        default_timeout_s: Timeout applied when a caller does not pass one
        spill_threshold: In-memory output budget before spilling to disk
        snapshot_enabled: Preload aliases/functions from the user's shell
    """

    shell: str = "/bin/bash"
    command_prefix: str | None = None
    session_env: dict[str, str] = field(default_factory=dict)
    default_timeout_s: int = 300
    spill_threshold: int = DEFAULT_SPILL_THRESHOLD
    snapshot_enabled: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.shell:
            raise ConfigurationError("shell must not be empty", key="shell")
        if self.default_timeout_s < 1:
            raise ConfigurationError(
                f"default_timeout_s must be >= 1, got {self.default_timeout_s}",
                key="default_timeout_s",
            )
        if self.spill_threshold < 1:
            raise ConfigurationError(
                f"spill_threshold must be >= 1, got {self.spill_threshold}",
                key="spill_threshold",
            )
        if not isinstance(self.session_env, dict):
            raise ConfigurationError("session_env must be an object", key="session_env")
        self.session_env = {str(k): str(v) for k, v in self.session_env.items()}
        if self.command_prefix is not None and not self.command_prefix.strip():
            self.command_prefix = None

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShellConfig":
        """Create config from dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


def _read_json(path: Path, what: str) -> Any:
    try:
        with path.open() as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {what}: {e}", reason=str(path)) from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load {what}: {e}", reason=str(path)) from e


def user_config_dir() -> Path:
    """Directory holding global config and secrets."""
    return Path.home() / CONFIG_DIR_NAME


def project_config_dir(project_root: Path | None = None) -> Path:
    """Directory holding project config and secrets."""
    return (project_root or Path.cwd()) / CONFIG_DIR_NAME


def load_user_config() -> ShellConfig:
    """Load user configuration from ~/.agentshell/config.json.

    Returns:
        ShellConfig loaded from file, or default config if not found

    Raises:
        ConfigurationError: If the file is invalid JSON
    """
    config_path = user_config_dir() / "config.json"
    if not config_path.exists():
        return ShellConfig()

    data = _read_json(config_path, "user config")
    if not isinstance(data, dict):
        raise ConfigurationError("User config must be a JSON object", reason=str(config_path))
    return ShellConfig.from_dict(data)


def load_project_config(project_root: Path | None = None) -> ShellConfig | None:
    """Load project-specific configuration from .agentshell/config.json.

    Returns:
        ShellConfig if config file exists, None otherwise
    """
    config_path = project_config_dir(project_root) / "config.json"
    if not config_path.exists():
        return None

    data = _read_json(config_path, "project config")
    if not isinstance(data, dict):
        raise ConfigurationError("Project config must be a JSON object", reason=str(config_path))
    return ShellConfig.from_dict(data)


def load_env_overrides() -> dict[str, Any]:
    """Load configuration overrides from environment variables.

    Supported environment variables:
    - AGENTSHELL_SHELL: Shell binary
    - AGENTSHELL_COMMAND_PREFIX: Command prefix
    - AGENTSHELL_TIMEOUT: Default timeout in seconds
    - AGENTSHELL_SPILL_THRESHOLD: Output spill threshold
    - AGENTSHELL_SNAPSHOT: Enable shell snapshot (1/true/yes)
    """
    overrides: dict[str, Any] = {}

    if shell := os.getenv("AGENTSHELL_SHELL"):
        overrides["shell"] = shell

    if prefix := os.getenv("AGENTSHELL_COMMAND_PREFIX"):
        overrides["command_prefix"] = prefix

    if timeout_str := os.getenv("AGENTSHELL_TIMEOUT"):
        try:
            overrides["default_timeout_s"] = int(timeout_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid AGENTSHELL_TIMEOUT: {timeout_str}", key="default_timeout_s"
            ) from e

    if threshold_str := os.getenv("AGENTSHELL_SPILL_THRESHOLD"):
        try:
            overrides["spill_threshold"] = int(threshold_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid AGENTSHELL_SPILL_THRESHOLD: {threshold_str}", key="spill_threshold"
            ) from e

    if snapshot_str := os.getenv("AGENTSHELL_SNAPSHOT"):
        overrides["snapshot_enabled"] = snapshot_str.lower() in ("1", "true", "yes")

    return overrides


def merge_configs(
    base: ShellConfig,
    project: ShellConfig | None = None,
    env_overrides: dict[str, Any] | None = None,
) -> ShellConfig:
    """Merge configurations with precedence: env > project > base."""
    merged = base.to_dict()
    defaults = ShellConfig().to_dict()

    if project:
        for key, value in project.to_dict().items():
            if key == "session_env":
                merged.setdefault("session_env", {}).update(value)
            elif value != defaults.get(key):
                merged[key] = value

    if env_overrides:
        merged.update(env_overrides)

    return ShellConfig.from_dict(merged)


def load_config(project_root: Path | None = None) -> ShellConfig:
    """Load and merge all configuration sources.

    Raises:
        ConfigurationError: If any config source is invalid
    """
    return merge_configs(load_user_config(), load_project_config(project_root), load_env_overrides())


def load_secret_definitions(path: Path) -> list[dict[str, Any]]:
    """Read raw secret definitions from a secrets.json file.

    The file holds a JSON list of objects with ``content`` and optional
    ``type``, ``mode``, ``replacement`` and ``flags`` keys. A missing file
    yields an empty list.
    """
    if not path.exists():
        return []

    data = _read_json(path, "secrets file")
    if not isinstance(data, list):
        raise ConfigurationError("Secrets file must contain a JSON list", reason=str(path))

    for i, item in enumerate(data):
        if not isinstance(item, dict) or not isinstance(item.get("content"), str):
            raise ConfigurationError(
                f"Secret entry {i} must be an object with a string 'content'",
                reason=str(path),
            )
    return data


def load_secret_levels(project_root: Path | None = None) -> dict[str, list[dict[str, Any]]]:
    """Load global and project secret definitions.

    Returns:
        Mapping of ``"global"`` and ``"project"`` to raw entry dicts
    """
    return {
        "global": load_secret_definitions(user_config_dir() / "secrets.json"),
        "project": load_secret_definitions(project_config_dir(project_root) / "secrets.json"),
    }
