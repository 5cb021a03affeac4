"""Utilities for assembling supervised learning datasets."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import MinMaxScaler

from ..config.schema import FeatureConfig
from ..utils.errors import InsufficientDataError
from ..utils.logger import setup_logger
from .vector import FeatureVector

logger = setup_logger("dataset_builder")

TECHNICAL_COLUMNS = ["close", "returns", "sma_20", "sma_50", "rsi", "volume_ratio", "obv"]

# Market columns in model input order, with the toggle that enables each one.
MARKET_COLUMNS = [
    ("market_return", "include_market_return"),
    ("relative_return", "include_relative_return"),
    ("beta", "include_beta"),
    ("index_correlation", "include_correlation"),
    ("vix", "include_vix"),
    ("volatility_spread", "include_volatility_spread"),
    ("market_regime", "include_regime"),
    ("distance_from_ma", "include_distance_from_ma"),
]


def feature_columns(feature_config: FeatureConfig | None = None) -> List[str]:
    """Ordered model input columns for a feature configuration."""
    feature_config = feature_config or FeatureConfig()
    columns = list(TECHNICAL_COLUMNS)
    if feature_config.enabled:
        columns.extend(name for name, toggle in MARKET_COLUMNS if getattr(feature_config, toggle))
    return columns


def build_feature_frame(
    features: Iterable[FeatureVector],
    feature_config: FeatureConfig | None = None,
) -> pd.DataFrame:
    """Flatten feature vectors into a date-indexed frame of the enabled columns."""
    columns = feature_columns(feature_config)
    rows = [{"date": vector.date, **vector.numeric_values()} for vector in features]
    if not rows:
        return pd.DataFrame(columns=columns, index=pd.DatetimeIndex([], name="date"), dtype=float)
    df = pd.DataFrame(rows).set_index("date")
    df.index = pd.DatetimeIndex(df.index, name="date")
    return df.sort_index()[columns]


@dataclass
class SplitConfig:
    validation: float = 0.1

    def as_index(self, total: int) -> int:
        """Index of the first validation sample."""
        return total - max(1, int(round(total * self.validation)))


@dataclass(frozen=True)
class Window:
    features: np.ndarray
    target: float
    base_price: float
    end_date: pd.Timestamp
    target_date: pd.Timestamp


@dataclass
class WindowSet:
    """Stacked lookback windows and their next-step log-return targets."""

    X: np.ndarray
    y: np.ndarray
    base_prices: np.ndarray
    end_dates: pd.DatetimeIndex
    target_dates: pd.DatetimeIndex
    feature_names: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.y)

    @property
    def window_size(self) -> int:
        return self.X.shape[1]

    def slice(self, start: int, stop: int) -> "WindowSet":
        return replace(
            self,
            X=self.X[start:stop],
            y=self.y[start:stop],
            base_prices=self.base_prices[start:stop],
            end_dates=self.end_dates[start:stop],
            target_dates=self.target_dates[start:stop],
        )

    def window(self, position: int) -> Window:
        return Window(
            features=self.X[position],
            target=float(self.y[position]),
            base_price=float(self.base_prices[position]),
            end_date=self.end_dates[position],
            target_date=self.target_dates[position],
        )


def build_windows(
    df: pd.DataFrame,
    columns: Sequence[str],
    window_size: int,
    calendar: Sequence | pd.DatetimeIndex | None = None,
) -> WindowSet:
    """
    Transform a feature frame into rolling window sequences.

    Each window holds ``window_size`` consecutive rows and targets the log
    return from its last close to the next row's close. ``calendar`` lists
    the instrument's trading dates; rows that are not adjacent in it form a
    gap, and no window or target spans a gap.
    """
    if window_size < 1:
        raise ValueError("window_size must be at least 1")

    positions = _calendar_positions(df.index, calendar)
    adjacent = np.diff(positions) == 1
    matrix = df[list(columns)].to_numpy(dtype=float)
    closes = df["close"].to_numpy(dtype=float)

    sequences, targets, bases, end_idx = [], [], [], []
    gaps = 0
    for end in range(window_size - 1, len(df) - 1):
        start = end - window_size + 1
        if not adjacent[start : end + 1].all():
            gaps += 1
            continue
        sequences.append(matrix[start : end + 1])
        targets.append(_log_return(closes[end], closes[end + 1]))
        bases.append(closes[end])
        end_idx.append(end)

    end_positions = np.asarray(end_idx, dtype=int)
    X = np.asarray(sequences, dtype=np.float64).reshape(len(sequences), window_size, len(columns))
    windows = WindowSet(
        X=X,
        y=np.asarray(targets, dtype=np.float64),
        base_prices=np.asarray(bases, dtype=np.float64),
        end_dates=pd.DatetimeIndex(df.index[end_positions]),
        target_dates=pd.DatetimeIndex(df.index[end_positions + 1]),
        feature_names=tuple(columns),
    )
    logger.info(
        "Generated supervised sequences",
        extra={"sequence_length": window_size, "samples": len(windows), "gap_windows": gaps},
    )
    return windows


def chronological_split(total: int, config: SplitConfig) -> int:
    """Return the train/validation boundary; earliest samples train, latest validate."""
    train_end = config.as_index(total)
    if train_end < 1 or train_end >= total:
        raise InsufficientDataError(
            "not enough windows for a train/validation split", required=2, available=total
        )
    return train_end


def walk_forward_splits(total: int, splits: int, config: SplitConfig) -> List[Tuple[int, int]]:
    """
    Expanding-window folds as (train_end, validation_end) pairs.

    A single split is the plain chronological split.
    """
    if splits <= 1:
        return [(chronological_split(total, config), total)]
    step = total // (splits + 1)
    folds = []
    for fold in range(1, splits + 1):
        train_end = step * fold
        validation_end = total if fold == splits else step * (fold + 1)
        if train_end >= 1 and validation_end > train_end:
            folds.append((train_end, validation_end))
    if not folds:
        raise InsufficientDataError(
            "not enough windows for walk-forward validation", required=splits + 1, available=total
        )
    return folds


class WindowScaler:
    """Per-feature min/max scaling fit on training windows only."""

    def __init__(self) -> None:
        self.feature_scaler = MinMaxScaler()
        self.target_scaler = MinMaxScaler()
        self.fitted = False

    def fit(self, windows: WindowSet) -> "WindowScaler":
        if len(windows) == 0:
            raise InsufficientDataError("cannot fit a scaler on an empty training set", required=1, available=0)
        self.feature_scaler.fit(windows.X.reshape(-1, windows.X.shape[-1]))
        self.target_scaler.fit(windows.y.reshape(-1, 1))
        self.fitted = True
        return self

    def transform_features(self, X: np.ndarray) -> np.ndarray:
        """Scale a single (window, features) array or a stack of them."""
        X = np.asarray(X, dtype=np.float64)
        if X.size == 0:
            return X
        return self.feature_scaler.transform(X.reshape(-1, X.shape[-1])).reshape(X.shape)

    def transform_target(self, y: np.ndarray) -> np.ndarray:
        y = np.asarray(y, dtype=np.float64)
        if y.size == 0:
            return y
        return self.target_scaler.transform(y.reshape(-1, 1)).ravel()

    def inverse_transform_target(self, y: np.ndarray | float) -> np.ndarray:
        y = np.atleast_1d(np.asarray(y, dtype=np.float64))
        if y.size == 0:
            return y
        return self.target_scaler.inverse_transform(y.reshape(-1, 1)).ravel()

    def transform(self, windows: WindowSet) -> WindowSet:
        return replace(windows, X=self.transform_features(windows.X), y=self.transform_target(windows.y))


@dataclass
class SequenceDataset:
    """Scaled train/validation windows plus the scaler fit on the training part."""

    train: WindowSet
    validation: WindowSet
    scaler: WindowScaler
    feature_names: Tuple[str, ...]

    @property
    def window_size(self) -> int:
        return self.train.window_size

    @classmethod
    def from_windows(
        cls,
        windows: WindowSet,
        train_end: int,
        validation_end: int | None = None,
    ) -> "SequenceDataset":
        validation_end = len(windows) if validation_end is None else validation_end
        if train_end < 1 or validation_end <= train_end:
            raise InsufficientDataError(
                "training and validation partitions must both be non-empty",
                required=2,
                available=len(windows),
            )
        raw_train = windows.slice(0, train_end)
        raw_validation = windows.slice(train_end, validation_end)
        scaler = WindowScaler().fit(raw_train)
        logger.info(
            "Split sequences",
            extra={"train": len(raw_train), "validation": len(raw_validation)},
        )
        return cls(
            train=scaler.transform(raw_train),
            validation=scaler.transform(raw_validation),
            scaler=scaler,
            feature_names=windows.feature_names,
        )


def _log_return(previous: float, current: float) -> float:
    if previous <= 0 or current <= 0:
        return 0.0
    return float(np.log(current / previous))


def _calendar_positions(index: pd.Index, calendar: Sequence | pd.DatetimeIndex | None) -> np.ndarray:
    if calendar is None:
        return np.arange(len(index))
    trading_days = pd.DatetimeIndex(calendar).normalize()
    positions = trading_days.get_indexer(pd.DatetimeIndex(index).normalize())
    if (positions < 0).any():
        raise ValueError("feature dates must all appear in the trading calendar")
    return positions
