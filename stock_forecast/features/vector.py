"""Per-date feature vectors and the measured/defaulted value type."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class MarketRegime(str, Enum):
    BULL = "BULL"
    BEAR = "BEAR"
    NEUTRAL = "NEUTRAL"

    @property
    def encoded(self) -> float:
        return {MarketRegime.BULL: 1.0, MarketRegime.BEAR: 0.0, MarketRegime.NEUTRAL: 0.5}[self]


@dataclass(frozen=True)
class Measured(Generic[T]):
    value: T

    @property
    def is_default(self) -> bool:
        return False


@dataclass(frozen=True)
class Defaulted(Generic[T]):
    """A neutral stand-in used when the lookback needed for a measurement is missing."""

    value: T
    reason: str

    @property
    def is_default(self) -> bool:
        return True


FeatureValue = Union[Measured[T], Defaulted[T]]


@dataclass(frozen=True)
class FeatureVector:
    date: date
    symbol: str
    close: float
    returns: float
    rsi: float
    sma_20: float
    sma_50: float
    volume_ratio: float
    obv: float
    market_return: float
    relative_return: float
    vix: float
    beta: FeatureValue[float]
    index_correlation: FeatureValue[float]
    volatility_spread: FeatureValue[float]
    distance_from_ma: FeatureValue[float]
    market_regime: FeatureValue[MarketRegime]

    def numeric_values(self) -> dict:
        """Flat numeric view with the regime encoded as 1 / 0.5 / 0."""
        return {
            "close": self.close,
            "returns": self.returns,
            "sma_20": self.sma_20,
            "sma_50": self.sma_50,
            "rsi": self.rsi,
            "volume_ratio": self.volume_ratio,
            "obv": self.obv,
            "market_return": self.market_return,
            "relative_return": self.relative_return,
            "beta": self.beta.value,
            "index_correlation": self.index_correlation.value,
            "vix": self.vix,
            "volatility_spread": self.volatility_spread.value,
            "market_regime": self.market_regime.value.encoded,
            "distance_from_ma": self.distance_from_ma.value,
        }

    def is_finite(self) -> bool:
        return all(math.isfinite(value) for value in self.numeric_values().values())
