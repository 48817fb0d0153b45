"""
Configuration loader — reads npmplus.yml into a Settings model.

Reads YAML, applies environment overrides, validates against the
Pydantic schema, and returns a typed Settings object.  A missing file
is not an error: the defaults are a complete configuration.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from npmplus.core.models.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_FILE = "npmplus.yml"
CONFIG_ENV = "NPMPLUS_CONFIG"

# env var → (section, key, type)
_ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "NPMPLUS_TIMEOUT_MS": ("executor", "timeout_ms", int),
    "NPMPLUS_MAX_ATTEMPTS": ("executor", "max_attempts", int),
    "NPMPLUS_BACKOFF_SECONDS": ("executor", "backoff_seconds", float),
    "NPMPLUS_MAX_CONCURRENCY": ("gateway", "max_concurrency", int),
    "NPMPLUS_CACHE_MAX_KEYS": ("cache", "max_keys", int),
}


class ConfigError(Exception):
    """Raised when configuration is unreadable or invalid."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for npmplus.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to npmplus.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_settings(
    path: Path | None = None,
    env: dict[str, str] | None = None,
) -> Settings:
    """Load and validate gateway settings.

    Resolution: explicit ``path`` > ``$NPMPLUS_CONFIG`` > upward search.
    Environment overrides are applied on top of the file.

    Raises:
        ConfigError: If an explicitly named file is missing, or any file
            is not valid YAML / fails validation.
    """
    env = os.environ if env is None else env

    if path is None and env.get(CONFIG_ENV):
        path = Path(env[CONFIG_ENV])
        if not path.is_file():
            raise ConfigError(f"{CONFIG_ENV} points to a missing file: {path}")
    elif path is not None and not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    elif path is None:
        path = find_config_file()

    data: dict[str, Any] = {}
    if path is not None:
        data = _read_yaml(path)

    _apply_env_overrides(data, env)

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.debug(
        "Settings loaded from %s (timeout=%dms, attempts=%d, max_keys=%d)",
        path or "defaults",
        settings.executor.timeout_ms,
        settings.executor.max_attempts,
        settings.cache.max_keys,
    )
    return settings


def _read_yaml(path: Path) -> dict[str, Any]:
    logger.debug("Loading config from %s", path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The file may wrap everything under an "npmplus" key or be flat
    return dict(data.get("npmplus", data))


def _apply_env_overrides(data: dict[str, Any], env: dict[str, str]) -> None:
    for var, (section, key, cast) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            value = cast(raw)
        except ValueError as e:
            raise ConfigError(f"{var} must be {cast.__name__}, got {raw!r}") from e
        block = data.setdefault(section, {})
        if not isinstance(block, dict):
            raise ConfigError(f"Section '{section}' must be a mapping")
        block[key] = value
