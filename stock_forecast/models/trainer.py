"""Training utilities shared by single-model training and the tuner."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Sequence

import pandas as pd

from ..config.schema import AppConfig
from ..features.dataset_builder import (
    SequenceDataset,
    SplitConfig,
    WindowSet,
    build_windows,
    chronological_split,
    feature_columns,
)
from ..utils.errors import InsufficientDataError, ModelError
from ..utils.logger import setup_logger
from .forecaster import EpochCallback, Evaluation, Forecaster, HyperparameterConfig
from .metrics import forecast_errors
from .persistence import ModelArtifact, ModelMetadata

logger = setup_logger("trainer")

# Rows needed beyond one window so both partitions hold samples.
MIN_EXTRA_ROWS = 5


@dataclass
class FitResult:
    model: Any
    dataset: SequenceDataset
    evaluation: Evaluation
    metrics: Dict[str, float]


@dataclass
class TrainingOutcome:
    artifact: ModelArtifact
    evaluation: Evaluation
    metrics: Dict[str, float]


def fit_and_score(
    forecaster: Forecaster,
    windows: WindowSet,
    hyperparameters: HyperparameterConfig,
    train_end: int,
    validation_end: int | None = None,
    on_epoch: EpochCallback | None = None,
) -> FitResult:
    """Scale, fit on ``[0, train_end)`` and score on ``[train_end, validation_end)``."""
    dataset = SequenceDataset.from_windows(windows, train_end, validation_end)
    model = forecaster.fit(dataset, hyperparameters, on_epoch)
    evaluation = forecaster.evaluate(model, dataset.validation, hyperparameters)
    metrics = forecast_errors(forecaster, model, dataset)
    return FitResult(model=model, dataset=dataset, evaluation=evaluation, metrics=metrics)


class ForecastTrainer:
    def __init__(self, forecaster: Forecaster, config: AppConfig) -> None:
        self.forecaster = forecaster
        self.config = config

    def train(
        self,
        symbol: str,
        frame: pd.DataFrame,
        calendar: Sequence | pd.DatetimeIndex | None = None,
        on_epoch: EpochCallback | None = None,
        hyperparameters: HyperparameterConfig | None = None,
    ) -> TrainingOutcome:
        """Train one model on a feature frame and package it with its metadata."""
        hyperparameters = hyperparameters or HyperparameterConfig.from_model_config(self.config.model)
        required = hyperparameters.window_size + MIN_EXTRA_ROWS
        if len(frame) < required:
            raise InsufficientDataError(
                f"need at least {required} feature rows to train",
                symbol,
                required=required,
                available=len(frame),
            )

        columns = feature_columns(self.config.market.feature_config)
        missing = [column for column in columns if column not in frame.columns]
        if missing:
            raise ModelError(f"feature frame is missing columns {missing}", symbol)

        windows = build_windows(frame, columns, hyperparameters.window_size, calendar)
        split = SplitConfig(validation=self.config.training.validation_split)
        train_end = chronological_split(len(windows), split)

        logger.info(
            "Training model",
            extra={"symbol": symbol, "architecture": hyperparameters.architecture, "windows": len(windows)},
        )
        result = fit_and_score(self.forecaster, windows, hyperparameters, train_end, on_epoch=on_epoch)

        metadata = ModelMetadata(
            symbol=symbol,
            trained_at=datetime.now(timezone.utc),
            data_points=len(frame),
            validation_loss=result.evaluation.loss,
            mean_absolute_error=result.metrics["return_mae"],
            mape=result.metrics["mape"],
            window_size=hyperparameters.window_size,
            architecture=hyperparameters.architecture,
            feature_columns=columns,
            hyperparameters=hyperparameters.to_dict(),
        )
        logger.info(
            "Training complete",
            extra={
                "symbol": symbol,
                "loss": round(result.evaluation.loss, 6),
                "mape": round(result.metrics["mape"], 6),
                "valid": result.evaluation.is_valid,
            },
        )
        return TrainingOutcome(
            artifact=ModelArtifact(model=result.model, scaler=result.dataset.scaler, metadata=metadata),
            evaluation=result.evaluation,
            metrics=result.metrics,
        )

    def needs_retraining(self, metadata: ModelMetadata | None, data_points: int) -> bool:
        """True without a stored model or once enough new rows have arrived."""
        if metadata is None:
            return True
        return data_points - metadata.data_points >= self.config.training.min_new_data_points
