"""Loss-weighted ensemble of forecasters with different architectures."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, List, Sequence

import numpy as np

from ..features.dataset_builder import SequenceDataset, WindowSet
from ..utils.errors import ConfigurationError, ModelError
from ..utils.logger import setup_logger
from .forecaster import ARCHITECTURES, EpochCallback, Evaluation, Forecaster, HyperparameterConfig

logger = setup_logger("ensemble")

ENSEMBLE_FILE = "ensemble.json"
MIN_LOSS = 1e-6


@dataclass
class EnsembleModel:
    architectures: List[str]
    models: List[Any]
    weights: np.ndarray


def inverse_loss_weights(losses: Sequence[float]) -> np.ndarray:
    """Weights proportional to 1 / loss; members with a non-finite loss get none."""
    raw = np.array([1.0 / max(loss, MIN_LOSS) if math.isfinite(loss) else 0.0 for loss in losses])
    if raw.sum() == 0:
        return np.full(len(losses), 1.0 / len(losses))
    return raw / raw.sum()


class EnsembleForecaster:
    """Trains one member per architecture and averages their predictions."""

    def __init__(self, base: Forecaster, architectures: Sequence[str]) -> None:
        if not architectures:
            raise ConfigurationError("an ensemble needs at least one architecture")
        unknown = [name for name in architectures if name not in ARCHITECTURES]
        if unknown:
            raise ConfigurationError(f"unknown architectures {unknown}")
        self.base = base
        self.architectures = list(architectures)

    def fit(
        self,
        dataset: SequenceDataset,
        config: HyperparameterConfig,
        on_epoch: EpochCallback | None = None,
    ) -> EnsembleModel:
        models, losses = [], []
        for architecture in self.architectures:
            member_config = replace(config, architecture=architecture)
            model = self.base.fit(dataset, member_config, on_epoch)
            losses.append(self.base.evaluate(model, dataset.validation, member_config).loss)
            models.append(model)
        weights = inverse_loss_weights(losses)
        logger.info(
            "Trained ensemble",
            extra={"members": len(models), "weights": [round(w, 4) for w in weights.tolist()]},
        )
        return EnsembleModel(architectures=list(self.architectures), models=models, weights=weights)

    def evaluate(self, model: EnsembleModel, windows: WindowSet, config: HyperparameterConfig) -> Evaluation:
        evaluations = [
            self.base.evaluate(member, windows, replace(config, architecture=architecture))
            for architecture, member in zip(model.architectures, model.models)
        ]
        loss = float(sum(weight * evaluation.loss for weight, evaluation in zip(model.weights, evaluations) if weight > 0))
        is_valid = math.isfinite(loss) and all(
            evaluation.is_valid for weight, evaluation in zip(model.weights, evaluations) if weight > 0
        )
        return Evaluation(loss=loss, is_valid=is_valid)

    def predict(self, model: EnsembleModel, window: np.ndarray) -> float:
        predictions = np.array([self.base.predict(member, window) for member in model.models])
        return float(np.dot(model.weights, predictions))

    def save_model(self, model: EnsembleModel, directory: Path) -> None:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        for position, (architecture, member) in enumerate(zip(model.architectures, model.models)):
            self.base.save_model(member, directory / f"member_{position}_{architecture}")
        manifest = {"architectures": model.architectures, "weights": model.weights.tolist()}
        (directory / ENSEMBLE_FILE).write_text(json.dumps(manifest, indent=2), encoding="utf-8")

    def load_model(self, directory: Path) -> EnsembleModel:
        directory = Path(directory)
        manifest_path = directory / ENSEMBLE_FILE
        if not manifest_path.exists():
            raise ModelError(f"no ensemble manifest at {manifest_path}")
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        architectures = list(manifest["architectures"])
        models = [
            self.base.load_model(directory / f"member_{position}_{architecture}")
            for position, architecture in enumerate(architectures)
        ]
        return EnsembleModel(architectures=architectures, models=models, weights=np.asarray(manifest["weights"], dtype=float))
