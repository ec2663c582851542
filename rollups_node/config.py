"""
Configuration for the rollups node.

Node settings come from CARTESI_-prefixed environment variables, read
through a cache so every component of the process sees the same values.
An optional YAML file can seed the environment before anything reads it.
"""
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, TypeVar

import yaml


PREFIX = "CARTESI_"

LOG_LEVELS = ("debug", "info", "warning", "error")

T = TypeVar("T")


class ConfigError(ValueError):
    """Raised when a configuration value is missing or malformed."""
    pass


# Parsers

def to_str(value: str) -> str:
    return value


def to_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in ("1", "t", "true", "yes"):
        return True
    if normalized in ("0", "f", "false", "no"):
        return False
    raise ConfigError(f'invalid boolean "{value}"')


def to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f'invalid integer "{value}"')


def to_duration(value: str) -> float:
    """Parse a duration given in seconds."""
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigError(f'invalid duration "{value}"')
    if seconds < 0:
        raise ConfigError(f'negative duration "{value}"')
    return seconds


def to_log_level(value: str) -> str:
    level = value.strip().lower()
    if level not in LOG_LEVELS:
        raise ConfigError(f'invalid log level "{value}"')
    return level


class EnvCache:
    """
    Cache of CARTESI_ environment variable values.

    Values are cached on first read, and defaults are cached when used, so
    a value never changes once a component has seen it. Safe to share
    between threads.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None, prefix: str = PREFIX):
        self.environ = os.environ if environ is None else environ
        self.prefix = prefix
        self._lock = threading.Lock()
        self._values: Dict[str, str] = {}

    def read(self, name: str) -> Optional[str]:
        """Return the raw value of PREFIX+name, or None if unset."""
        with self._lock:
            if name in self._values:
                return self._values[name]
            value = self.environ.get(self.prefix + name)
            if value is not None:
                self._values[name] = value
            return value

    def get_optional(
        self,
        name: str,
        default: Optional[str] = None,
        parser: Callable[[str], T] = to_str
    ) -> Optional[T]:
        """
        Return the parsed value of a variable, its parsed default, or None.

        Raises:
            ConfigError: If the value (or default) does not parse
        """
        value = self.read(name)
        if value is None:
            if default is None:
                return None
            with self._lock:
                self._values[name] = default
            value = default

        try:
            return parser(value)
        except ConfigError as e:
            raise ConfigError(f"{self.prefix}{name}: {e}") from e

    def get(
        self,
        name: str,
        default: Optional[str] = None,
        parser: Callable[[str], T] = to_str
    ) -> T:
        """Same as get_optional(), but a missing variable is an error."""
        value = self.get_optional(name, default, parser)
        if value is None:
            raise ConfigError(f"missing required {self.prefix}{name} env var")
        return value

    def values(self) -> Dict[str, str]:
        """Snapshot of every cached value."""
        with self._lock:
            return dict(self._values)


class NodeConfig:
    """Configuration for the node process."""

    def __init__(self, cache: Optional[EnvCache] = None):
        """Load configuration from environment."""
        if cache is None:
            cache = EnvCache()

        # Logging
        self.log_level = cache.get("LOG_LEVEL", "info", to_log_level)
        self.log_timestamp = cache.get("LOG_TIMESTAMP", "false", to_bool)

        # Supervision
        self.shutdown_grace_period = cache.get("SHUTDOWN_GRACE_PERIOD", "5", to_duration)
        self.ready_timeout = cache.get("READY_TIMEOUT", "30", to_duration)

        # Status API
        self.status_api_enabled = cache.get("STATUS_API_ENABLED", "true", to_bool)
        self.http_address = cache.get("HTTP_ADDRESS", "0.0.0.0")
        self.http_port = cache.get("HTTP_PORT", "10000", to_int)


def get_config(environ: Optional[Mapping[str, str]] = None) -> NodeConfig:
    """Get node configuration."""
    return NodeConfig(EnvCache(environ))


def apply_config_file(path: Path, environ: Optional[MutableMapping[str, str]] = None) -> Dict[str, str]:
    """
    Export variables from a YAML config file into the environment.

    The file is a flat mapping of environment variable names to scalar
    values. Variables already set in the environment take precedence, so
    the file only provides defaults for the node and its services.

    Args:
        path: Path to YAML file
        environ: Environment to update (default: os.environ)

    Returns:
        Dict of variables that were exported

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the file is not a mapping of scalars
    """
    if environ is None:
        environ = os.environ

    with open(path, 'r') as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {path}: must be a YAML mapping")

    exported = {}
    for name, value in data.items():
        if isinstance(value, (dict, list)) or value is None:
            raise ConfigError(f"Invalid config file {path}: {name} must be a scalar")
        if name in environ:
            continue
        exported[str(name)] = _to_env_value(value)

    environ.update(exported)
    return exported


def _to_env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
