"""Error metrics on return and price scale."""

from __future__ import annotations

from typing import Any, Dict

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

from ..features.dataset_builder import SequenceDataset, WindowSet
from ..utils.errors import InsufficientDataError
from .forecaster import Forecaster


def regression_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    mae = mean_absolute_error(y_true, y_pred)
    rmse = mean_squared_error(y_true, y_pred) ** 0.5
    mape = np.mean(np.abs((y_true - y_pred) / np.maximum(np.abs(y_true), 1e-8)))
    return {"mae": float(mae), "rmse": float(rmse), "mape": float(mape)}


def forecast_errors(
    forecaster: Forecaster,
    model: Any,
    dataset: SequenceDataset,
    windows: WindowSet | None = None,
) -> Dict[str, float]:
    """
    One-step errors over scaled windows (the validation partition by default).

    Predictions are mapped back to log returns and then to prices through each
    window's base price. ``mape``/``mae``/``rmse`` are on price scale;
    ``return_mae`` is the mean absolute error of the log returns.
    """
    windows = dataset.validation if windows is None else windows
    if len(windows) == 0:
        raise InsufficientDataError("no windows to score", required=1, available=0)

    scaled = np.array([forecaster.predict(model, windows.X[i]) for i in range(len(windows))])
    predicted_returns = dataset.scaler.inverse_transform_target(scaled)
    actual_returns = dataset.scaler.inverse_transform_target(windows.y)

    predicted_prices = windows.base_prices * np.exp(predicted_returns)
    actual_prices = windows.base_prices * np.exp(actual_returns)

    metrics = regression_metrics(actual_prices, predicted_prices)
    metrics["return_mae"] = float(mean_absolute_error(actual_returns, predicted_returns))
    return metrics
