"""Technical indicator engineering."""

from __future__ import annotations

from typing import Callable, Dict, Hashable, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from ta.trend import SMAIndicator

NumericSeries = Union[pd.Series, Sequence[float], np.ndarray]
IndicatorFn = Callable[[pd.Series, int], pd.Series]

RSI_PERIOD = 14
VOLUME_PERIOD = 20
SMA_PERIODS = (20, 50)


def _as_series(values: NumericSeries) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(values, dtype=float))


def calculate_returns(prices: NumericSeries) -> pd.Series:
    """Simple daily returns; the first entry and any move off a zero price are 0."""
    series = _as_series(prices)
    values = series.to_numpy()
    returns = np.zeros(len(values))
    if len(values) > 1:
        previous, current = values[:-1], values[1:]
        with np.errstate(divide="ignore", invalid="ignore"):
            returns[1:] = np.where(previous == 0, 0.0, (current - previous) / previous)
    return pd.Series(returns, index=series.index, name="returns")


def calculate_sma(values: NumericSeries, period: int) -> pd.Series:
    """
    Trailing simple moving average.

    Indices before ``period - 1`` carry the raw value instead of a partial mean.
    """
    if period < 1:
        raise ValueError("period must be at least 1")
    series = _as_series(values)
    sma = SMAIndicator(close=series, window=period, fillna=False).sma_indicator()
    sma.iloc[: period - 1] = series.iloc[: period - 1].to_numpy()
    return sma.rename(f"sma_{period}")


def calculate_rsi(prices: NumericSeries, period: int = RSI_PERIOD) -> pd.Series:
    """Relative strength index with a neutral warm-up and Wilder smoothing."""
    if period < 1:
        raise ValueError("period must be at least 1")
    series = _as_series(prices)
    values = series.to_numpy()
    rsi = np.full(len(values), 50.0)
    avg_gain = 0.0
    avg_loss = 0.0

    for i in range(1, len(values)):
        change = values[i] - values[i - 1]
        gain = max(change, 0.0)
        loss = max(-change, 0.0)
        if i <= period:
            avg_gain += gain / period
            avg_loss += loss / period
            continue
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        rsi[i] = 100.0 if avg_loss == 0 else 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

    return pd.Series(rsi, index=series.index, name="rsi")


def calculate_volume_ma(volumes: NumericSeries, period: int = VOLUME_PERIOD) -> pd.Series:
    return calculate_sma(volumes, period).rename("volume_ma")


def calculate_volume_ratio(volumes: NumericSeries, period: int = VOLUME_PERIOD) -> pd.Series:
    """Current volume over its moving average, 1 where the average is zero."""
    series = _as_series(volumes)
    average = calculate_volume_ma(series, period).to_numpy()
    current = series.to_numpy()
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(average == 0, 1.0, current / average)
    return pd.Series(ratio, index=series.index, name="volume_ratio")


def calculate_obv(prices: NumericSeries, volumes: NumericSeries) -> pd.Series:
    """On-balance volume seeded at zero."""
    price_series = _as_series(prices)
    volume = _as_series(volumes).to_numpy()
    if len(volume) != len(price_series):
        raise ValueError("prices and volumes must have the same length")
    direction = np.zeros(len(volume))
    direction[1:] = np.sign(np.diff(price_series.to_numpy()))
    return pd.Series(np.cumsum(direction * volume), index=price_series.index, name="obv")


class IndicatorCache:
    """
    Explicit memo for indicator results.

    Entries are keyed by the caller's series key together with the series
    length and last index label, so an extended series never hits a stale entry.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, int, Hashable, str, int], pd.Series] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get_or_compute(
        self,
        key: str,
        series: pd.Series,
        name: str,
        period: int,
        compute: IndicatorFn,
    ) -> pd.Series:
        last_label = series.index[-1] if len(series) else None
        cache_key = (key, len(series), last_label, name, period)
        if cache_key not in self._entries:
            self._entries[cache_key] = compute(series, period)
        return self._entries[cache_key]

    def clear(self) -> None:
        self._entries.clear()


def add_indicators(
    df: pd.DataFrame,
    cache: IndicatorCache | None = None,
    key: str | None = None,
) -> pd.DataFrame:
    """
    Add the technical indicator columns used as model inputs to a price frame.
    """
    result = df.copy()
    if result.empty:
        for column in ("returns", "rsi", "volume_ratio", "obv", *(f"sma_{p}" for p in SMA_PERIODS)):
            result[column] = pd.Series(dtype=float)
        return result

    def indicator(series: pd.Series, name: str, period: int, compute: IndicatorFn) -> pd.Series:
        if cache is None or key is None:
            return compute(series, period)
        return cache.get_or_compute(f"{key}:{series.name}", series, name, period, compute)

    close = result["close"]
    volume = result["volume"]
    result["returns"] = calculate_returns(close)
    for period in SMA_PERIODS:
        result[f"sma_{period}"] = indicator(close, "sma", period, calculate_sma)
    result["rsi"] = indicator(close, "rsi", RSI_PERIOD, calculate_rsi)
    result["volume_ratio"] = indicator(volume, "volume_ratio", VOLUME_PERIOD, calculate_volume_ratio)
    result["obv"] = calculate_obv(close, volume)
    return result
