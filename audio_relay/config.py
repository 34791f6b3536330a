# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import json
import logging
import os
from pathlib import Path
from typing import Any, ClassVar

import tomllib
import yaml


DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120 Safari/537.36"

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "port": 3000,
    },
    "cache": {
        "stream_ttl_s": 300.0,  # upstream links are signed and expire; stay well under their lifetime
        "search_ttl_s": 30.0,
    },
    "relay": {
        "user_agent": DEFAULT_USER_AGENT,
        "chunk_size": 65536,
        "default_content_type": "audio/mp4",
        "cache_control": "public, max-age=60",
        "connect_timeout_s": 10.0,
        "read_timeout_s": 300.0,
    },
    "session": {
        # remote | forwarded
        "key": "remote",
        "supersede_timeout_s": 2.0,
    },
    "search": {
        "url": "https://www.youtube.com/results",
        "max_results": 10,
    },
    "static": {
        "dir": "public",
    },
    "log": {
        "level": "info",
        "metrics": True,
    },
}


def load_config_file(path: str) -> dict[str, Any]:
    """Load configuration from a file (YAML, TOML, or JSON)."""
    logger = logging.getLogger("config")
    path_obj = Path(path)
    ext = path_obj.suffix.lower()

    if not path_obj.exists():
        logger.warning(f"Config file not found: {path}")
        return {}

    try:
        if ext in (".yaml", ".yml"):
            with path_obj.open(encoding="utf-8") as f:
                return yaml.safe_load(f) or {}

        elif ext == ".toml":
            with path_obj.open("rb") as f:
                return tomllib.load(f) or {}

        elif ext == ".json":
            with path_obj.open(encoding="utf-8") as f:
                return json.load(f) or {}

        else:
            logger.warning(f"Unknown config extension: {ext}")
            return {}

    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load {path}: {e}")
        return {}


def deep_update(dst: dict[str, Any], src: dict[str, Any]) -> dict[str, Any]:
    """Deep merge configuration dictionaries."""
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            deep_update(dst[k], v)
        else:
            dst[k] = v
    return dst


def env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect overrides from the process environment.

    Only the listening port is read from the environment (``PORT``).
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    port = environ.get("PORT")
    if port:
        try:
            overrides["server"] = {"port": int(port)}
        except ValueError:
            logging.getLogger("config").warning(f"Ignoring invalid PORT value: {port!r}")

    return overrides


def load_config(path: str | None = None, environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Load configuration with defaults, optional file override, then environment."""
    cfg = json.loads(json.dumps(DEFAULT_CONFIG))  # Deep copy

    if path:
        deep_update(cfg, load_config_file(path))

    deep_update(cfg, env_overrides(environ))
    return cfg


class Config:
    """Configuration singleton."""

    _instance: ClassVar["Config | None"] = None
    _config: ClassVar[dict[str, Any]] = json.loads(json.dumps(DEFAULT_CONFIG))

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def load(cls, path: str | None = None, environ: dict[str, str] | None = None) -> None:
        """Load configuration from file and environment."""
        cls._config = load_config(path, environ)

    @classmethod
    def get(cls, key: str | None = None) -> Any:
        """Get configuration value by key path (e.g., 'relay.chunk_size')."""
        if key is None:
            return cls._config

        keys = key.split(".")
        value = cls._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                raise KeyError(f"Configuration key not found: {key}")

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by key path."""
        keys = key.split(".")
        target = self._config

        for k in keys[:-1]:
            if k not in target:
                target[k] = {}
            target = target[k]

        target[keys[-1]] = value
