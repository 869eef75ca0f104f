# src/depfetch/config.py
import os
from typing import Any, Dict, Optional, Tuple

import platformdirs
import yaml

from depfetch.constants import (
    APP_NAME,
    CACHE_FILE_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_MAX_GRAPH_NODES,
    DEFAULT_REGISTRY_URL,
    DOWNLOADS_DIR_NAME,
)
from depfetch.exceptions import ConfigFileError, ConfigValidationError
from depfetch.log_utils import logger


def get_downloads_dir() -> str:
    """
    Get the default downloads directory based on the platform.
    """
    home_dir = os.path.expanduser("~")
    for candidate in ("Downloads", "Download"):
        downloads_dir = os.path.join(home_dir, candidate)
        if os.path.exists(downloads_dir):
            return downloads_dir
    # Fallback to home directory
    return home_dir


# Default directories
CONFIG_DIR = platformdirs.user_config_dir(APP_NAME)
CONFIG_FILE = os.path.join(CONFIG_DIR, CONFIG_FILE_NAME)


def default_config() -> Dict[str, Any]:
    """
    Build the default configuration mapping.

    Paths are resolved at call time so that platformdirs overrides (e.g. XDG
    environment variables) are honoured.
    """
    return {
        "REGISTRY_URL": DEFAULT_REGISTRY_URL,
        "DOWNLOAD_DIR": os.path.join(get_downloads_dir(), DOWNLOADS_DIR_NAME),
        "MAX_GRAPH_NODES": DEFAULT_MAX_GRAPH_NODES,
        "PERSIST_CACHE": True,
        "CACHE_FILE": os.path.join(
            platformdirs.user_cache_dir(APP_NAME), CACHE_FILE_NAME
        ),
        "REQUEST_TIMEOUT": None,
        "LOG_LEVEL": None,
        "LOG_DIR": None,
    }


def config_exists(path: Optional[str] = None) -> Tuple[bool, str]:
    """
    Return whether a depfetch configuration file exists and its path.

    Parameters:
        path (str | None): Explicit configuration file path; defaults to CONFIG_FILE.

    Returns:
        (exists, path): Whether the file exists and the path that was checked.
    """
    config_path = path or CONFIG_FILE
    return os.path.exists(config_path), config_path


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalize a merged configuration mapping in place.

    Raises:
        ConfigValidationError: If a value has the wrong type or is out of range.

    Returns:
        The same mapping, with numeric values coerced.
    """
    registry = config.get("REGISTRY_URL")
    if not isinstance(registry, str) or not registry.strip():
        raise ConfigValidationError(
            "REGISTRY_URL must be a non-empty string",
            field="REGISTRY_URL",
            value=registry,
        )
    registry = registry.strip()
    if not registry.startswith(("http://", "https://")):
        raise ConfigValidationError(
            "REGISTRY_URL must be an http(s) URL",
            field="REGISTRY_URL",
            value=registry,
        )
    config["REGISTRY_URL"] = registry

    raw_max = config.get("MAX_GRAPH_NODES")
    try:
        max_nodes = int(raw_max)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(
            "MAX_GRAPH_NODES must be an integer",
            field="MAX_GRAPH_NODES",
            value=raw_max,
        ) from exc
    if max_nodes < 1:
        raise ConfigValidationError(
            "MAX_GRAPH_NODES must be >= 1",
            field="MAX_GRAPH_NODES",
            value=raw_max,
        )
    config["MAX_GRAPH_NODES"] = max_nodes

    raw_timeout = config.get("REQUEST_TIMEOUT")
    if raw_timeout is not None:
        try:
            timeout = float(raw_timeout)
        except (TypeError, ValueError) as exc:
            raise ConfigValidationError(
                "REQUEST_TIMEOUT must be a number of seconds",
                field="REQUEST_TIMEOUT",
                value=raw_timeout,
            ) from exc
        if timeout <= 0:
            raise ConfigValidationError(
                "REQUEST_TIMEOUT must be > 0",
                field="REQUEST_TIMEOUT",
                value=raw_timeout,
            )
        config["REQUEST_TIMEOUT"] = timeout

    for key in ("DOWNLOAD_DIR", "CACHE_FILE"):
        value = config.get(key)
        if not isinstance(value, str) or not value:
            raise ConfigValidationError(
                f"{key} must be a path", field=key, value=value
            )
        config[key] = os.path.expanduser(value)

    config["PERSIST_CACHE"] = bool(config.get("PERSIST_CACHE"))
    return config


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the depfetch configuration YAML merged over the defaults.

    A missing file is not an error: the defaults are returned.

    Parameters:
        path (str | None): Configuration file to read; defaults to CONFIG_FILE.

    Raises:
        ConfigFileError: If the file exists but cannot be read or parsed, or is not a mapping.
        ConfigValidationError: If a value is invalid.

    Returns:
        dict: The effective configuration.
    """
    config = default_config()
    exists, config_path = config_exists(path)
    if exists:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigFileError(
                f"Could not read configuration {config_path}", details=str(e)
            ) from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigFileError(
                f"Configuration {config_path} must contain a mapping",
                details=type(loaded).__name__,
            )

        unknown = sorted(set(loaded) - set(config))
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
        config.update({k: v for k, v in loaded.items() if k in config})
        logger.debug(f"Loaded configuration from {config_path}")

    return validate_config(config)


def save_config(config: Dict[str, Any], path: Optional[str] = None) -> str:
    """
    Write the configuration mapping to YAML, creating the directory if needed.

    Raises:
        ConfigFileError: If the file cannot be written.

    Returns:
        str: The path that was written.
    """
    config_path = path or CONFIG_FILE
    try:
        os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=True)
    except OSError as e:
        raise ConfigFileError(
            f"Could not write configuration {config_path}", details=str(e)
        ) from e
    logger.info(f"Configuration saved to {config_path}")
    return config_path
