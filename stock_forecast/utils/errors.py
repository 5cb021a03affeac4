"""Typed errors raised by the forecasting pipeline."""

from __future__ import annotations


class ForecastError(Exception):
    """Base error; carries the instrument symbol when one is known."""

    label = "Forecast Error"

    def __init__(self, message: str, symbol: str | None = None) -> None:
        self.symbol = symbol
        suffix = f" ({symbol})" if symbol else ""
        super().__init__(f"{self.label}: {message}{suffix}")


class ConfigurationError(ForecastError):
    label = "Configuration Error"


class InsufficientDataError(ForecastError):
    """A series is shorter than the minimum a component needs."""

    label = "Insufficient Data"

    def __init__(self, message: str, symbol: str | None = None, required: int | None = None, available: int | None = None) -> None:
        self.required = required
        self.available = available
        super().__init__(message, symbol)


class ModelError(ForecastError):
    label = "Model Error"


class PredictionError(ForecastError):
    label = "Prediction Error"


class TuningError(ForecastError):
    label = "Tuning Error"
