"""Application settings loader with environment variable support."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Resolve project root (two levels up from this file)
PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _load_dotenv_files() -> None:
    """
    Load `.env` style files if they exist.

    Values already present in the environment win over file values, and
    missing files are ignored.
    """
    candidate_files = [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / ".env.local",
        Path.cwd() / ".env",
    ]

    for env_file in candidate_files:
        if env_file.exists():
            load_dotenv(env_file, override=False)


_load_dotenv_files()


@dataclass(frozen=True)
class Settings:
    """Container for deployment-level paths and switches."""

    data_dir: Path = PROJECT_ROOT / "data"
    models_dir: Path = PROJECT_ROOT / "data" / "models"
    logs_dir: Path = PROJECT_ROOT / "logs"
    config_path: Path = PROJECT_ROOT / "config.yaml"
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> "Settings":
        """Instantiate settings from environment variables."""
        data_dir = Path(os.getenv("FORECAST_DATA_DIR", PROJECT_ROOT / "data"))
        return cls(
            data_dir=data_dir,
            models_dir=Path(os.getenv("FORECAST_MODELS_DIR", data_dir / "models")),
            logs_dir=Path(os.getenv("FORECAST_LOGS_DIR", PROJECT_ROOT / "logs")),
            config_path=Path(os.getenv("FORECAST_CONFIG", PROJECT_ROOT / "config.yaml")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings.load()
