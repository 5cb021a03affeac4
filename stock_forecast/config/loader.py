"""YAML configuration file handling."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from ..utils.errors import ConfigurationError
from ..utils.logger import setup_logger
from .schema import AppConfig
from .settings import get_settings

logger = setup_logger("config")


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load and validate the YAML config; defaults are used when the file is absent."""
    config_path = Path(path) if path is not None else get_settings().config_path
    if not config_path.exists():
        logger.info("Config file not found, using defaults", extra={"path": str(config_path)})
        return AppConfig()

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"could not parse {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration in {config_path}: {exc}") from exc


def save_config(config: AppConfig, path: str | Path) -> Path:
    """Write the config back using the camelCase file keys."""
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(mode="json", by_alias=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)
    return config_path
