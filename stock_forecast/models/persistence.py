"""Filesystem store for trained model artifacts, one directory per symbol."""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import joblib
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config.settings import get_settings
from ..features.dataset_builder import WindowScaler
from ..utils.errors import ModelError
from ..utils.logger import setup_logger
from .forecaster import Forecaster

logger = setup_logger("model_store")

METADATA_VERSION = "1.0.0"
METADATA_FILE = "metadata.json"
SCALER_FILE = "scaler.joblib"
MODEL_DIR = "model"


class ModelMetadata(BaseModel):
    model_config = ConfigDict(ser_json_inf_nan="constants")

    version: str = METADATA_VERSION
    symbol: str
    trained_at: datetime
    data_points: int = Field(ge=0)
    validation_loss: float
    mean_absolute_error: float
    mape: float
    window_size: int = Field(ge=1)
    architecture: str
    feature_columns: List[str]
    hyperparameters: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class ModelArtifact:
    model: Any
    scaler: WindowScaler
    metadata: ModelMetadata


def sanitize_symbol(symbol: str) -> str:
    """Map a ticker such as ``^GSPC`` or ``BRK/B`` to a safe directory name."""
    name = re.sub(r"[^A-Za-z0-9._-]", "_", symbol.strip())
    if not name or set(name) <= {"."}:
        raise ModelError(f"invalid symbol '{symbol}'")
    return name


class ModelStore:
    """Saves and loads artifacts under ``<models_dir>/<symbol>/``; ``None`` uses the configured models dir."""

    def __init__(self, models_dir: str | Path | None, forecaster: Forecaster) -> None:
        self.forecaster = forecaster
        self.models_dir = Path(models_dir) if models_dir is not None else get_settings().models_dir

    def path_for(self, symbol: str) -> Path:
        return self.models_dir / sanitize_symbol(symbol)

    def save(self, artifact: ModelArtifact) -> Path:
        symbol = artifact.metadata.symbol
        directory = self.path_for(symbol)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            self.forecaster.save_model(artifact.model, directory / MODEL_DIR)
            joblib.dump(artifact.scaler, directory / SCALER_FILE)
            (directory / METADATA_FILE).write_text(artifact.metadata.model_dump_json(indent=2), encoding="utf-8")
        except Exception as exc:
            raise ModelError(f"failed to save model: {exc}", symbol) from exc
        logger.info("Saved model", extra={"symbol": symbol, "path": str(directory)})
        return directory

    def exists(self, symbol: str) -> bool:
        directory = self.path_for(symbol)
        return (
            (directory / METADATA_FILE).exists()
            and (directory / SCALER_FILE).exists()
            and (directory / MODEL_DIR).exists()
        )

    def metadata(self, symbol: str) -> Optional[ModelMetadata]:
        path = self.path_for(symbol) / METADATA_FILE
        if not path.exists():
            return None
        try:
            return ModelMetadata.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise ModelError(f"corrupt metadata at {path}: {exc}", symbol) from exc

    def load(self, symbol: str) -> Optional[ModelArtifact]:
        if not self.exists(symbol):
            return None
        directory = self.path_for(symbol)
        metadata = self.metadata(symbol)
        try:
            scaler = joblib.load(directory / SCALER_FILE)
            model = self.forecaster.load_model(directory / MODEL_DIR)
        except ModelError:
            raise
        except Exception as exc:
            raise ModelError(f"failed to load model: {exc}", symbol) from exc
        logger.info("Loaded model", extra={"symbol": symbol, "trained_at": metadata.trained_at.isoformat()})
        return ModelArtifact(model=model, scaler=scaler, metadata=metadata)

    def delete(self, symbol: str) -> bool:
        directory = self.path_for(symbol)
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        logger.info("Deleted model", extra={"symbol": symbol})
        return True

    def delete_all(self) -> int:
        if not self.models_dir.exists():
            return 0
        removed = 0
        for directory in self.models_dir.iterdir():
            if directory.is_dir():
                shutil.rmtree(directory)
                removed += 1
        logger.info("Deleted all models", extra={"count": removed})
        return removed

    @staticmethod
    def is_compatible(metadata: ModelMetadata, window_size: int, feature_columns: Sequence[str]) -> bool:
        """Whether a stored model can consume windows of this shape and column order."""
        same_major = metadata.version.split(".")[0] == METADATA_VERSION.split(".")[0]
        return (
            same_major
            and metadata.window_size == window_size
            and list(metadata.feature_columns) == list(feature_columns)
        )
