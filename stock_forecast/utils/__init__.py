"""Shared utilities."""

from .errors import (
    ConfigurationError,
    ForecastError,
    InsufficientDataError,
    ModelError,
    PredictionError,
    TuningError,
)
from .logger import setup_logger

__all__ = [
    "setup_logger",
    "ForecastError",
    "ConfigurationError",
    "InsufficientDataError",
    "ModelError",
    "PredictionError",
    "TuningError",
]
