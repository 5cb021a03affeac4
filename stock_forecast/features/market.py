"""Market context features: beta, correlation, regime and volatility measures."""

from __future__ import annotations

import math
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from ..data.series import PriceSeries, as_price_frame
from ..utils.errors import InsufficientDataError
from ..utils.logger import setup_logger
from .technical import IndicatorCache, add_indicators, calculate_returns
from .vector import Defaulted, FeatureValue, FeatureVector, MarketRegime, Measured

logger = setup_logger("market_features")

BETA_WINDOW = 30
CORRELATION_WINDOW = 20
REGIME_SHORT_WINDOW = 50
REGIME_LONG_WINDOW = 200
_VARIANCE_EPSILON = 1e-14

_RollingStats = Tuple[FeatureValue[float], FeatureValue[float], FeatureValue[float]]


def classify_regime(price: float, ma_short: float, ma_long: float) -> MarketRegime:
    """BULL above a rising long average, BEAR below a falling one, NEUTRAL otherwise."""
    if price > ma_long and ma_short > ma_long:
        return MarketRegime.BULL
    if price < ma_long and ma_short < ma_long:
        return MarketRegime.BEAR
    return MarketRegime.NEUTRAL


def rolling_beta(stock_returns: np.ndarray, market_returns: np.ndarray) -> FeatureValue[float]:
    if len(market_returns) < BETA_WINDOW:
        return Defaulted(1.0, f"fewer than {BETA_WINDOW} aligned observations")
    x = stock_returns[-BETA_WINDOW:]
    y = market_returns[-BETA_WINDOW:]
    variance = float(np.var(y))
    if variance < _VARIANCE_EPSILON:
        return Defaulted(1.0, "zero benchmark variance")
    covariance = float(np.mean((x - x.mean()) * (y - y.mean())))
    return Measured(covariance / variance)


def rolling_correlation(stock_returns: np.ndarray, market_returns: np.ndarray) -> FeatureValue[float]:
    if len(market_returns) < CORRELATION_WINDOW:
        return Defaulted(0.0, f"fewer than {CORRELATION_WINDOW} aligned observations")
    x = stock_returns[-CORRELATION_WINDOW:]
    y = market_returns[-CORRELATION_WINDOW:]
    var_x = float(np.var(x))
    var_y = float(np.var(y))
    if var_x < _VARIANCE_EPSILON or var_y < _VARIANCE_EPSILON:
        return Defaulted(0.0, "zero variance")
    covariance = float(np.mean((x - x.mean()) * (y - y.mean())))
    correlation = covariance / math.sqrt(var_x * var_y)
    return Measured(max(-1.0, min(1.0, correlation)))


def rolling_volatility_spread(stock_returns: np.ndarray, market_returns: np.ndarray) -> FeatureValue[float]:
    if len(market_returns) < CORRELATION_WINDOW:
        return Defaulted(0.0, f"fewer than {CORRELATION_WINDOW} aligned observations")
    stock_vol = float(np.std(stock_returns[-CORRELATION_WINDOW:]))
    market_vol = float(np.std(market_returns[-CORRELATION_WINDOW:]))
    return Measured(stock_vol - market_vol)


class MarketFeatureEngineer:
    """Combines a stock series with benchmark and volatility index series."""

    def __init__(self, cache: IndicatorCache | None = None) -> None:
        self.cache = cache

    def calculate_features(
        self,
        symbol: str,
        stock_data: PriceSeries,
        market_data: PriceSeries,
        volatility_data: PriceSeries,
    ) -> List[FeatureVector]:
        """
        Build one FeatureVector per stock date after the first.

        Dates without a benchmark return or a volatility index quote are
        skipped, as is any entry with a non-finite value.
        """
        stock = as_price_frame(stock_data)
        market = as_price_frame(market_data)
        volatility = as_price_frame(volatility_data)

        aligned = self._align(symbol, stock, market, volatility)
        rolling = self._rolling_statistics(aligned)

        features: List[FeatureVector] = []
        unaligned = missing_vix = non_finite = 0
        for row in aligned.itertuples():
            if math.isnan(row.market_return):
                unaligned += 1
                continue
            if math.isnan(row.vix):
                missing_vix += 1
                continue
            beta, correlation, spread = rolling[row.Index]
            regime, distance = self._regime(row.market_close, row.ma_short, row.ma_long)
            vector = FeatureVector(
                date=row.Index.date(),
                symbol=symbol,
                close=row.close,
                returns=row.returns,
                rsi=row.rsi,
                sma_20=row.sma_20,
                sma_50=row.sma_50,
                volume_ratio=row.volume_ratio,
                obv=row.obv,
                market_return=row.market_return,
                relative_return=row.returns - row.market_return,
                vix=row.vix,
                beta=beta,
                index_correlation=correlation,
                volatility_spread=spread,
                distance_from_ma=distance,
                market_regime=regime,
            )
            if not vector.is_finite():
                non_finite += 1
                continue
            features.append(vector)

        logger.info(
            "Calculated market features",
            extra={
                "symbol": symbol,
                "features": len(features),
                "unaligned": unaligned,
                "missing_vix": missing_vix,
                "non_finite": non_finite,
            },
        )
        if not features:
            raise InsufficientDataError(
                "no dates with aligned benchmark and volatility data",
                symbol,
                required=2,
                available=len(stock),
            )
        return features

    def _align(
        self,
        symbol: str,
        stock: pd.DataFrame,
        market: pd.DataFrame,
        volatility: pd.DataFrame,
    ) -> pd.DataFrame:
        technical = add_indicators(stock, cache=self.cache, key=symbol)

        market_close = market["close"]
        market_returns = calculate_returns(market_close)
        market_returns.iloc[:1] = np.nan
        ma_short = market_close.rolling(REGIME_SHORT_WINDOW, min_periods=REGIME_SHORT_WINDOW).mean()
        ma_long = market_close.rolling(REGIME_LONG_WINDOW, min_periods=REGIME_LONG_WINDOW).mean()

        aligned = technical[["close", "returns", "rsi", "sma_20", "sma_50", "volume_ratio", "obv"]].copy()
        aligned["market_return"] = market_returns.reindex(stock.index)
        aligned["market_close"] = market_close.reindex(stock.index)
        aligned["ma_short"] = ma_short.reindex(stock.index)
        aligned["ma_long"] = ma_long.reindex(stock.index)
        aligned["vix"] = volatility["close"].reindex(stock.index)
        # Index 0 has no prior-day stock return.
        return aligned.iloc[1:]

    def _rolling_statistics(self, aligned: pd.DataFrame) -> Dict[pd.Timestamp, _RollingStats]:
        pairs = aligned.dropna(subset=["market_return"])
        stock_returns = pairs["returns"].to_numpy(dtype=float)
        market_returns = pairs["market_return"].to_numpy(dtype=float)

        stats: Dict[pd.Timestamp, _RollingStats] = {}
        for position, day in enumerate(pairs.index):
            x = stock_returns[: position + 1]
            y = market_returns[: position + 1]
            stats[day] = (
                rolling_beta(x, y),
                rolling_correlation(x, y),
                rolling_volatility_spread(x, y),
            )
        return stats

    @staticmethod
    def _regime(price: float, ma_short: float, ma_long: float) -> Tuple[FeatureValue[MarketRegime], FeatureValue[float]]:
        if math.isnan(ma_long) or math.isnan(ma_short):
            reason = f"fewer than {REGIME_LONG_WINDOW} benchmark observations"
            return Defaulted(MarketRegime.NEUTRAL, reason), Defaulted(0.0, reason)
        regime = Measured(classify_regime(price, ma_short, ma_long))
        if ma_long == 0:
            return regime, Defaulted(0.0, "zero moving average")
        return regime, Measured((price - ma_long) / ma_long)
