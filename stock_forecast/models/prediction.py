"""Multi-day autoregressive forecasting and trading signal generation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config.schema import AppConfig, PredictionConfig
from ..features.dataset_builder import _calendar_positions
from ..utils.errors import InsufficientDataError, PredictionError
from ..utils.logger import setup_logger
from .forecaster import Forecaster
from .persistence import ModelArtifact, ModelMetadata

logger = setup_logger("prediction")

# Values market features relax toward once the forecast leaves observed data.
NEUTRAL_MARKET_VALUES = {
    "market_return": 0.0,
    "relative_return": 0.0,
    "vix": 20.0,
    "volatility_spread": 0.0,
    "market_regime": 0.5,
    "distance_from_ma": 0.0,
}
DECAY_DAYS = 10.0
SMA_WINDOWS = {"sma_20": 20, "sma_50": 50}


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class PredictedPoint:
    day: int
    date: date
    price: float
    lower: float
    upper: float


@dataclass(frozen=True)
class PredictionResult:
    symbol: str
    prediction_date: date
    current_price: float
    historical: pd.Series
    predicted: List[PredictedPoint]
    predicted_price: float
    price_change: float
    percent_change: float
    mean_absolute_error: float
    confidence: float

    @property
    def predicted_prices(self) -> List[float]:
        return [point.price for point in self.predicted]


@dataclass(frozen=True)
class TradingSignal:
    action: SignalAction
    confidence: float
    delta: float
    reason: str
    symbol: str
    timestamp: datetime


def uncertainty_growth(step: int, mode: str = "sqrt") -> float:
    """Band multiplier for forecast day ``step`` (1-based)."""
    if mode == "sqrt":
        return math.sqrt(step)
    if mode == "linear":
        return float(step)
    if mode == "constant":
        return 1.0
    raise ValueError(f"unknown uncertainty growth '{mode}'")


def _clip(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


def calculate_confidence(metadata: ModelMetadata | None) -> float:
    """
    Blend of validation loss, mean absolute error and training size in [0, 1].

    Lower loss or error never lowers the score; 0.5 when no model metadata exists.
    """
    if metadata is None:
        return 0.5
    loss_confidence = _clip(1.0 - metadata.validation_loss)
    error_confidence = _clip(1.0 - metadata.mean_absolute_error * 10.0)
    data_confidence = min(1.0, metadata.data_points / 1000.0)
    return loss_confidence * 0.5 + error_confidence * 0.3 + data_confidence * 0.2


def decide_action(
    percent_change: float,
    confidence: float,
    buy_threshold: float,
    sell_threshold: float,
    min_confidence: float,
) -> Tuple[SignalAction, str]:
    if confidence < min_confidence:
        return SignalAction.HOLD, f"Low confidence: {confidence * 100:.0f}%"
    if percent_change >= buy_threshold:
        return SignalAction.BUY, f"Expected +{percent_change * 100:.2f}% gain"
    if percent_change <= sell_threshold:
        return SignalAction.SELL, f"Expected {percent_change * 100:.2f}% loss"
    return SignalAction.HOLD, "Neutral signal - within thresholds"


def generate_signal(
    prediction: PredictionResult,
    config: PredictionConfig,
    timestamp: datetime | None = None,
) -> TradingSignal:
    """Turn the move to the final predicted price into BUY, SELL or HOLD."""
    action, reason = decide_action(
        prediction.percent_change,
        prediction.confidence,
        config.buy_threshold,
        config.sell_threshold,
        config.min_confidence,
    )
    return TradingSignal(
        action=action,
        confidence=prediction.confidence,
        delta=prediction.percent_change,
        reason=reason,
        symbol=prediction.symbol,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


def _contiguous_tail(positions: np.ndarray) -> int:
    breaks = np.flatnonzero(np.diff(positions) != 1)
    return len(positions) if breaks.size == 0 else len(positions) - 1 - int(breaks[-1])


class PredictionEngine:
    def __init__(self, forecaster: Forecaster) -> None:
        self.forecaster = forecaster

    def predict(
        self,
        artifact: ModelArtifact,
        frame: pd.DataFrame,
        config: AppConfig,
        symbol: Optional[str] = None,
        calendar: Sequence | pd.DatetimeIndex | None = None,
    ) -> PredictionResult:
        """
        Forecast ``config.prediction.days`` business days past the end of ``frame``.

        ``frame`` is a date-indexed feature frame holding at least the
        artifact's feature columns and one full window of rows. With a
        ``calendar`` of trading days, the last window must not span a date
        missing from ``frame``.
        """
        metadata = artifact.metadata
        symbol = symbol or metadata.symbol
        columns = list(metadata.feature_columns)
        window_size = metadata.window_size

        missing = [column for column in columns if column not in frame.columns]
        if missing:
            raise PredictionError(f"feature frame is missing columns {missing}", symbol)
        if "close" not in columns:
            raise PredictionError("model feature columns must include close", symbol)
        if len(frame) < window_size:
            raise InsufficientDataError(
                f"need at least {window_size} rows to predict",
                symbol,
                required=window_size,
                available=len(frame),
            )
        window_positions = _calendar_positions(frame.index[-window_size:], calendar)
        if not (np.diff(window_positions) == 1).all():
            raise InsufficientDataError(
                f"last {window_size} rows are not contiguous trading days",
                symbol,
                required=window_size,
                available=_contiguous_tail(window_positions),
            )

        settings = config.prediction
        positions = {name: i for i, name in enumerate(columns)}
        rows = frame[columns].iloc[-window_size:].to_numpy(dtype=float)
        anchor = rows[-1].copy()
        history = frame["close"].iloc[-(max(SMA_WINDOWS.values()) - 1) :].astype(float).tolist()
        current_price = float(frame["close"].iloc[-1])
        mae = metadata.mean_absolute_error
        last_date = pd.Timestamp(frame.index[-1])
        dates = pd.bdate_range(start=last_date + pd.offsets.BDay(1), periods=settings.days)

        predicted: List[PredictedPoint] = []
        for step in range(settings.days):
            log_return = self._next_log_return(artifact, rows, symbol, step + 1)
            previous_close = rows[-1, positions["close"]]
            price = float(previous_close * math.exp(log_return))
            band = current_price * mae * uncertainty_growth(step + 1, settings.uncertainty_growth)
            predicted.append(
                PredictedPoint(
                    day=step + 1,
                    date=dates[step].date(),
                    price=price,
                    lower=max(0.0, price - band),
                    upper=price + band,
                )
            )
            next_row = self._next_row(rows, anchor, positions, price, step, history)
            history.append(price)
            rows = np.vstack([rows[1:], next_row])

        predicted_price = predicted[-1].price
        price_change = predicted_price - current_price
        percent_change = price_change / current_price if current_price else 0.0
        result = PredictionResult(
            symbol=symbol,
            prediction_date=last_date.date(),
            current_price=current_price,
            historical=frame["close"].iloc[-settings.context_days :].copy(),
            predicted=predicted,
            predicted_price=predicted_price,
            price_change=price_change,
            percent_change=percent_change,
            mean_absolute_error=mae,
            confidence=calculate_confidence(metadata),
        )
        logger.info(
            "Generated prediction",
            extra={
                "symbol": symbol,
                "days": settings.days,
                "current_price": round(current_price, 4),
                "predicted_price": round(predicted_price, 4),
                "confidence": round(result.confidence, 4),
            },
        )
        return result

    def _next_log_return(self, artifact: ModelArtifact, rows: np.ndarray, symbol: str, day: int) -> float:
        scaled = artifact.scaler.transform_features(rows)
        try:
            output = self.forecaster.predict(artifact.model, scaled)
        except Exception as exc:
            raise PredictionError(f"forecaster failed on day {day}: {exc}", symbol) from exc
        log_return = float(artifact.scaler.inverse_transform_target(output)[0])
        if not math.isfinite(log_return):
            raise PredictionError(f"forecaster returned a non-finite value on day {day}", symbol)
        return log_return

    @staticmethod
    def _next_row(
        rows: np.ndarray,
        anchor: np.ndarray,
        positions: Dict[str, int],
        price: float,
        step: int,
        history: Sequence[float],
    ) -> np.ndarray:
        """
        Feature row for a predicted close.

        Price-derived columns follow the new close, with moving averages taken
        over ``history`` (closes before ``price``, observed then predicted).
        Other technicals carry forward and market columns decay from the last
        observed row.
        """
        row = rows[-1].copy()
        close_at = positions["close"]
        previous_close = rows[-1, close_at]
        row[close_at] = price
        if "returns" in positions:
            row[positions["returns"]] = (price - previous_close) / previous_close if previous_close else 0.0

        for name, period in SMA_WINDOWS.items():
            if name in positions:
                closes = np.append(np.asarray(history[max(0, len(history) - period + 1) :], dtype=float), price)
                row[positions[name]] = float(np.mean(closes))

        decay = math.exp(-step / DECAY_DAYS)
        for name, neutral in NEUTRAL_MARKET_VALUES.items():
            if name in positions:
                row[positions[name]] = anchor[positions[name]] * decay + neutral * (1.0 - decay)
        return row
