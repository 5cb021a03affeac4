"""Forecasters, training, tuning, prediction and artifact storage.

The Keras forecaster lives in ``stock_forecast.models.sequence_model`` and is
imported from there so the rest of the package loads without TensorFlow.
"""

from .ensemble import EnsembleForecaster, EnsembleModel, inverse_loss_weights
from .forecaster import ARCHITECTURES, Evaluation, Forecaster, HyperparameterConfig
from .metrics import forecast_errors, regression_metrics
from .persistence import ModelArtifact, ModelMetadata, ModelStore, sanitize_symbol
from .prediction import (
    PredictedPoint,
    PredictionEngine,
    PredictionResult,
    SignalAction,
    TradingSignal,
    calculate_confidence,
    decide_action,
    generate_signal,
    uncertainty_growth,
)
from .trainer import FitResult, ForecastTrainer, TrainingOutcome, fit_and_score
from .tuner import HyperparameterTuner, TrialResult, build_grid

__all__ = [
    "ARCHITECTURES",
    "EnsembleForecaster",
    "EnsembleModel",
    "Evaluation",
    "FitResult",
    "ForecastTrainer",
    "Forecaster",
    "HyperparameterConfig",
    "HyperparameterTuner",
    "ModelArtifact",
    "ModelMetadata",
    "ModelStore",
    "PredictedPoint",
    "PredictionEngine",
    "PredictionResult",
    "SignalAction",
    "TradingSignal",
    "TrainingOutcome",
    "TrialResult",
    "build_grid",
    "calculate_confidence",
    "decide_action",
    "fit_and_score",
    "forecast_errors",
    "generate_signal",
    "inverse_loss_weights",
    "regression_metrics",
    "sanitize_symbol",
    "uncertainty_growth",
]
