"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import KubeMirrorConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per process
_config_cache: KubeMirrorConfig | None = None


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/kubemirror/config.json (or XDG equivalent)
    """
    return get_xdg_config_home() / "kubemirror" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Working directory to search from (defaults to current directory)

    Returns:
        Path to .kubemirror.json in the given directory
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".kubemirror.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`. Nested dicts
    are merged, not replaced.

    Example:
        >>> base = {"a": 1, "b": {"x": 10, "y": 20}}
        >>> override = {"b": {"y": 30, "z": 40}, "c": 3}
        >>> deep_merge(base, override)
        {'a': 1, 'b': {'x': 10, 'y': 30, 'z': 40}, 'c': 3}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        # Config system should be resilient to a broken file
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def _set_nested(config: dict[str, Any], section: str, key: str, value: Any) -> None:
    config.setdefault(section, {})[key] = value


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.

    Supported env vars:
        KUBEMIRROR_HOST - overrides control_plane.host
        KUBEMIRROR_TOKEN - overrides control_plane.token
        KUBEMIRROR_VERIFY_TLS - overrides control_plane.verify_tls
        KUBEMIRROR_DECODE_POLICY - overrides control_plane.decode_policy
        KUBEMIRROR_PORT - overrides relay.port
        KUBEMIRROR_QUEUE_CAPACITY - overrides relay.queue_capacity
        KUBEMIRROR_COALESCE_WINDOW - overrides mirror.coalesce_window

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = {k: (v.copy() if isinstance(v, dict) else v) for k, v in config_dict.items()}

    if host := os.environ.get("KUBEMIRROR_HOST"):
        _set_nested(result, "control_plane", "host", host)

    if token := os.environ.get("KUBEMIRROR_TOKEN"):
        _set_nested(result, "control_plane", "token", token)

    if verify_str := os.environ.get("KUBEMIRROR_VERIFY_TLS"):
        verify = verify_str.lower() not in ("false", "0", "")
        _set_nested(result, "control_plane", "verify_tls", verify)

    if policy := os.environ.get("KUBEMIRROR_DECODE_POLICY"):
        if policy.lower() in ("skip", "abort"):
            _set_nested(result, "control_plane", "decode_policy", policy.lower())
        else:
            logger.warning("Invalid KUBEMIRROR_DECODE_POLICY value '%s', ignoring", policy)

    if port_str := os.environ.get("KUBEMIRROR_PORT"):
        try:
            _set_nested(result, "relay", "port", int(port_str))
        except ValueError:
            logger.warning("Invalid KUBEMIRROR_PORT value '%s', ignoring", port_str)

    if capacity_str := os.environ.get("KUBEMIRROR_QUEUE_CAPACITY"):
        try:
            capacity = int(capacity_str)
            if capacity < 1:
                logger.warning(
                    "KUBEMIRROR_QUEUE_CAPACITY must be >= 1, got %d, ignoring", capacity
                )
            else:
                _set_nested(result, "relay", "queue_capacity", capacity)
        except ValueError:
            logger.warning(
                "Invalid KUBEMIRROR_QUEUE_CAPACITY value '%s', ignoring", capacity_str
            )

    if window_str := os.environ.get("KUBEMIRROR_COALESCE_WINDOW"):
        try:
            _set_nested(result, "mirror", "coalesce_window", float(window_str))
        except ValueError:
            logger.warning(
                "Invalid KUBEMIRROR_COALESCE_WINDOW value '%s', ignoring", window_str
            )

    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Only values that differ from the model defaults need to be listed here.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "relay": {"queue_capacity": 100, "stats_interval": 1.0},
        "mirror": {"coalesce_window": 0.04},
        "graph": {"page_size": 5},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> KubeMirrorConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (KUBEMIRROR_*)
        2. Project config (.kubemirror.json)
        3. User config (~/.config/kubemirror/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Directory to load .kubemirror.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated KubeMirrorConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = KubeMirrorConfig(**merged)
    _config_cache = config

    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
