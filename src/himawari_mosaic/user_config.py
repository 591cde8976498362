from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .config import DEFAULT_COMPLETED_DIR
from .errors import ConfigFileError

log = logging.getLogger(__name__)


class UserConfig(BaseModel):
    """Settings a user keeps in their YAML config file."""

    completed: Optional[Path] = None

    # older files also carry tile and tmp staging dirs; tiles now stay in memory
    model_config = ConfigDict(extra="ignore", frozen=True)


def load_user_config(path: Path) -> UserConfig:
    path = Path(path).expanduser()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigFileError(f"cannot read config file {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigFileError(f"config file {path} must hold a mapping, got {type(data).__name__}")
    try:
        config = UserConfig(**data)
    except (TypeError, ValidationError) as exc:
        raise ConfigFileError(f"invalid config file {path}: {exc}") from exc
    if config.completed is not None:
        config = config.model_copy(update={"completed": config.completed.expanduser()})
    return config


def write_default_config(path: Path) -> UserConfig:
    path = Path(path).expanduser()
    defaults = UserConfig(completed=DEFAULT_COMPLETED_DIR)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            yaml.safe_dump({"completed": str(defaults.completed)}, default_flow_style=False),
            encoding="utf-8",
        )
    except OSError as exc:
        raise ConfigFileError(f"cannot write config file {path}: {exc}") from exc
    log.info("Wrote default config to %s", path)
    return defaults


def ensure_user_config(path: Path) -> UserConfig:
    """Load the config file, writing one with the defaults first if it does not exist."""
    path = Path(path).expanduser()
    if not path.is_file():
        log.info("No config file at %s, creating one", path)
        return write_default_config(path)
    return load_user_config(path)
