"""Contract between the pipeline and a trainable one-step sequence forecaster."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, get_args

import numpy as np

from ..config.schema import Architecture, ModelConfig
from ..features.dataset_builder import SequenceDataset, WindowSet
from ..utils.errors import ConfigurationError

ARCHITECTURES = get_args(Architecture)

EpochCallback = Callable[[int, float], None]


@dataclass(frozen=True)
class HyperparameterConfig:
    """One point of the training search space."""

    architecture: str = "lstm"
    window_size: int = 30
    learning_rate: float = 1e-3
    batch_size: int = 128
    epochs: int = 50
    dropout: float = 0.2
    early_stopping_patience: int = 5
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.architecture not in ARCHITECTURES:
            raise ConfigurationError(f"unknown architecture '{self.architecture}'")
        if self.window_size < 2:
            raise ConfigurationError("window_size must be at least 2")
        if not self.learning_rate > 0:
            raise ConfigurationError("learning_rate must be positive")
        if self.batch_size < 1 or self.epochs < 1:
            raise ConfigurationError("batch_size and epochs must be at least 1")
        if not 0 <= self.dropout < 1:
            raise ConfigurationError("dropout must be in [0, 1)")

    @classmethod
    def from_model_config(cls, model: ModelConfig) -> "HyperparameterConfig":
        return cls(
            architecture=model.architecture,
            window_size=model.window_size,
            learning_rate=model.learning_rate,
            batch_size=model.batch_size,
            epochs=model.epochs,
            dropout=model.dropout,
            early_stopping_patience=model.early_stopping_patience,
            seed=model.seed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Evaluation:
    loss: float
    is_valid: bool


class Forecaster(Protocol):
    """
    A trainable model that predicts the next scaled target from one window.

    ``fit`` calls ``on_epoch(epoch, loss)`` synchronously once per epoch.
    ``evaluate`` reports the loss on scaled windows and whether the model
    clears the quality bar worth persisting. Multi-step forecasting belongs
    to the prediction engine, not the forecaster.
    """

    def fit(
        self,
        dataset: SequenceDataset,
        config: HyperparameterConfig,
        on_epoch: EpochCallback | None = None,
    ) -> Any:
        ...

    def evaluate(self, model: Any, windows: WindowSet, config: HyperparameterConfig) -> Evaluation:
        ...

    def predict(self, model: Any, window: np.ndarray) -> float:
        ...

    def save_model(self, model: Any, directory: Path) -> None:
        ...

    def load_model(self, directory: Path) -> Any:
        ...
