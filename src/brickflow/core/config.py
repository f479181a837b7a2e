"""Configuration resolver with 4-level priority.

Priority (highest to lowest):
1. CLI arguments
2. Environment variables (BRICKFLOW_*)
3. Config files (user > system)
4. Defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from brickflow.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})
DEFAULT_LOGGING_LEVEL = "normal"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class ConfigSource:
    """Represents where a config value came from."""

    value: Any
    source: str  # 'cli' | 'env' | 'user_config' | 'system_config' | 'default'


@dataclass(frozen=True)
class LoggingPolicy:
    """Resolved, immutable logging policy."""

    level_name: str  # quiet | normal | verbose | debug
    emit_info: bool
    emit_verbose: bool
    emit_debug: bool
    source: str


@dataclass(frozen=True)
class RuntimeSettings:
    """Interpreter defaults resolved from configuration."""

    validate_input: bool
    log_values: bool
    headless: bool
    bricks_dirs: tuple[Path, ...]


def _flatten_keys(data: dict[str, Any], prefix: str = "") -> set[str]:
    keys: set[str] = set()
    for key, value in data.items():
        key_path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            keys.update(_flatten_keys(value, key_path))
        else:
            keys.add(key_path)
    return keys


class ConfigResolver:
    """Resolve configuration with strict priority.

    Example:
        resolver = ConfigResolver(
            cli_args={'runtime': {'headless': True}},
            user_config_path=Path('~/.config/brickflow/config.yaml')
        )

        headless, source = resolver.resolve('runtime.headless')
        # headless = True, source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        """Initialize config resolver.

        Args:
            cli_args: Arguments from CLI (highest priority, nested dicts or dotted keys)
            user_config_path: Path to user config file
            system_config_path: Path to system config file
            defaults: Default values (lowest priority)
        """
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/brickflow/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/brickflow/config.yaml")
        self.defaults = defaults or self._default_config()

        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (supports dot notation: 'logging.level')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        value = self._from_cli(key)
        if value is not None:
            return value, "cli"

        value = self._from_env(key)
        if value is not None:
            return value, "env"

        value = self._get_nested(self._get_user_config(), key)
        if value is not None:
            return value, "user_config"

        value = self._get_nested(self._get_system_config(), key)
        if value is not None:
            return value, "system_config"

        value = self._get_nested(self.defaults, key)
        if value is not None:
            return value, "default"

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_bool(self, key: str, default: bool = False) -> bool:
        """Resolve a boolean key, normalizing string values from env/CLI.

        Raises:
            ConfigError: If the value cannot be read as a bool.
        """
        try:
            value, _src = self.resolve(key)
        except ConfigError:
            return default

        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return bool(value)

        norm = str(value).strip().lower()
        if norm in _TRUE_VALUES:
            return True
        if norm in _FALSE_VALUES:
            return False
        raise ConfigError(f"Config key '{key}' must be a bool, got {value!r}")

    def resolve_logging_level(self) -> str:
        """Resolve and validate logging.level.

        Allowed values (after normalization): quiet | normal | verbose | debug

        Raises:
            ConfigError: If the resolved value is invalid.
        """
        level, _src = self._resolve_logging_level_and_source()
        return level

    def resolve_logging_policy(self) -> LoggingPolicy:
        """Resolve the logging policy. Side-effect free."""
        level_name, source = self._resolve_logging_level_and_source()
        return LoggingPolicy(
            level_name=level_name,
            emit_info=level_name != "quiet",
            emit_verbose=level_name in {"verbose", "debug"},
            emit_debug=level_name == "debug",
            source=source,
        )

    def resolve_runtime_settings(self) -> RuntimeSettings:
        """Resolve the interpreter defaults (runtime.* and bricks_dirs)."""
        try:
            raw_dirs, _src = self.resolve("bricks_dirs")
        except ConfigError:
            raw_dirs = []

        if isinstance(raw_dirs, str):
            raw_dirs = [p for p in raw_dirs.split(os.pathsep) if p]
        if not isinstance(raw_dirs, list):
            raise ConfigError("Config key 'bricks_dirs' must be a list of paths")

        return RuntimeSettings(
            validate_input=self.resolve_bool("runtime.validate_input", default=True),
            log_values=self.resolve_bool("runtime.log_values"),
            headless=self.resolve_bool("runtime.headless"),
            bricks_dirs=tuple(Path(str(p)).expanduser() for p in raw_dirs),
        )

    def resolve_all(self) -> dict[str, ConfigSource]:
        """Resolve every key present in any source."""
        all_keys: set[str] = set()
        all_keys.update(_flatten_keys(self.cli_args))
        all_keys.update(_flatten_keys(self._get_user_config()))
        all_keys.update(_flatten_keys(self._get_system_config()))
        all_keys.update(_flatten_keys(self.defaults))

        result: dict[str, ConfigSource] = {}
        for key in sorted(all_keys):
            try:
                value, source = self.resolve(key)
            except ConfigError:
                continue
            result[key] = ConfigSource(value=value, source=source)
        return result

    def _resolve_logging_level_and_source(self) -> tuple[str, str]:
        key = "logging.level"
        try:
            value, source = self.resolve(key)
        except ConfigError:
            return DEFAULT_LOGGING_LEVEL, "default"

        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")

        norm = value.strip().lower()
        if norm not in ALLOWED_LOGGING_LEVELS:
            allowed = ", ".join(sorted(ALLOWED_LOGGING_LEVELS))
            raise ConfigError(f"Invalid '{key}': {value!r}. Allowed values: {allowed}")

        return norm, source

    def _from_cli(self, key: str) -> Any | None:
        """Get value from CLI args (dotted keys or nested dicts)."""
        if key in self.cli_args:
            return self.cli_args[key]
        return self._get_nested(self.cli_args, key)

    def _from_env(self, key: str) -> Any | None:
        """Get value from environment variables.

        Environment variable format: BRICKFLOW_KEY_NAME
        Example: BRICKFLOW_LOGGING_LEVEL, BRICKFLOW_RUNTIME_HEADLESS
        """
        env_key = f"BRICKFLOW_{key.upper().replace('.', '_')}"
        return os.environ.get(env_key)

    def _get_user_config(self) -> dict[str, Any]:
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        """Get nested value using dot notation.

        Example:
            data = {'logging': {'level': 'debug'}}
            _get_nested(data, 'logging.level') -> 'debug'
        """
        current: Any = data

        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None

        return current

    @staticmethod
    def _default_config() -> dict[str, Any]:
        """Default configuration."""
        return {
            "logging": {
                "level": DEFAULT_LOGGING_LEVEL,
                "color": True,
            },
            "runtime": {
                "validate_input": True,
                "log_values": False,
                "headless": False,
            },
            "diagnostics": {
                "enabled": False,
                "path": str(Path.home() / ".brickflow" / "diagnostics.jsonl"),
            },
            "bricks_dirs": [str(Path.home() / ".brickflow" / "bricks")],
        }
