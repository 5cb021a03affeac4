"""Feature engineering: indicators, market context and supervised windows."""

from .dataset_builder import (
    SequenceDataset,
    SplitConfig,
    Window,
    WindowScaler,
    WindowSet,
    build_feature_frame,
    build_windows,
    chronological_split,
    feature_columns,
    walk_forward_splits,
)
from .market import MarketFeatureEngineer, classify_regime
from .technical import (
    IndicatorCache,
    add_indicators,
    calculate_obv,
    calculate_returns,
    calculate_rsi,
    calculate_sma,
    calculate_volume_ma,
    calculate_volume_ratio,
)
from .vector import Defaulted, FeatureValue, FeatureVector, MarketRegime, Measured

__all__ = [
    "Defaulted",
    "FeatureValue",
    "FeatureVector",
    "IndicatorCache",
    "MarketFeatureEngineer",
    "MarketRegime",
    "Measured",
    "SequenceDataset",
    "SplitConfig",
    "Window",
    "WindowScaler",
    "WindowSet",
    "add_indicators",
    "build_feature_frame",
    "build_windows",
    "calculate_obv",
    "calculate_returns",
    "calculate_rsi",
    "calculate_sma",
    "calculate_volume_ma",
    "calculate_volume_ratio",
    "chronological_split",
    "classify_regime",
    "feature_columns",
    "walk_forward_splits",
]
