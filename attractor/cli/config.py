"""Settings for the ``attractor`` command.

Settings come from ``.attractor/config.toml`` in the working directory (or a
file passed with ``--config``) and may be overridden per variable, e.g.
``ATTRACTOR_LOG_LEVEL=DEBUG``.  Keys may sit at the top level or inside any
table; ``[general]`` and ``[discovery]`` are the conventional ones.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ValidationError, field_validator

from attractor.cli.errors import ConfigError

DEFAULT_CONFIG_DIR = ".attractor"
DEFAULT_CONFIG_FILE = "config.toml"

ENV_PREFIX = "ATTRACTOR_"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AttractorConfig(BaseModel):
    """Validated CLI settings.

    ``home_dir`` and ``repo_root`` relocate the global and repo workflow
    tiers.  Left unset, they are the user's home directory and the git
    top-level of the working directory.
    """

    log_level: str = "INFO"
    log_file: Optional[Path] = None
    home_dir: Optional[Path] = None
    repo_root: Optional[Path] = None

    model_config = {"extra": "ignore"}

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level == "WARN":
            level = "WARNING"
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}; got {value!r}")
        return level

    @field_validator("log_file", "home_dir", "repo_root")
    @classmethod
    def _expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None


def _flatten(data: dict[str, Any]) -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def _env_overrides() -> dict[str, str]:
    fields = AttractorConfig.model_fields
    overrides = {}
    for name, value in os.environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        field = name[len(ENV_PREFIX):].lower()
        if field in fields:
            overrides[field] = value
    return overrides


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc


def load_config(config_path: Path | None = None, project_dir: Path | None = None) -> AttractorConfig:
    """Build an :class:`AttractorConfig` from file and environment.

    Args:
        config_path: File to read.  It must exist.  Without it,
            ``<project_dir>/.attractor/config.toml`` is read when present.
        project_dir: Defaults to the current working directory.

    Raises:
        ConfigError: Missing explicit file, malformed TOML, or a bad value.
    """
    if config_path is not None:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
    else:
        path = (project_dir or Path.cwd()) / DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    values = _flatten(_read_toml(path)) if path.is_file() else {}
    values.update(_env_overrides())
    try:
        return AttractorConfig(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def default_config_toml() -> str:
    """Contents written by ``attractor init``."""
    levels = " | ".join(_LOG_LEVELS)
    return f"""\
# Attractor configuration

[general]
# {levels}
log_level = "INFO"
# log_file = ".attractor/attractor.log"

[discovery]
# Global workflows live in <home_dir>/.attractor/workflows
# home_dir = "~"
# Repo workflows live in <repo_root>/.attractor/workflows
# repo_root = "/path/to/repo"
"""
