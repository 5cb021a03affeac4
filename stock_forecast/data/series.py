"""Daily quote records and their normalized pandas representation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Iterable, Sequence, Union

import numpy as np
import pandas as pd

from ..utils.logger import setup_logger

logger = setup_logger("price_series")

PRICE_COLUMNS = ["open", "high", "low", "close", "adj_close", "volume"]


@dataclass(frozen=True)
class PricePoint:
    date: date
    open: float
    high: float
    low: float
    close: float
    adj_close: float
    volume: float


PriceSeries = Union[pd.DataFrame, Sequence[PricePoint]]


def price_frame(points: Iterable[PricePoint]) -> pd.DataFrame:
    """Convert price records to a date-indexed dataframe."""
    rows = [asdict(point) for point in points]
    if not rows:
        return pd.DataFrame(columns=PRICE_COLUMNS, index=pd.DatetimeIndex([], name="date"), dtype=float)
    df = pd.DataFrame(rows).set_index("date")
    return clean_price_frame(df)


def as_price_frame(series: PriceSeries) -> pd.DataFrame:
    """Accept either a dataframe or a sequence of PricePoint and normalize it."""
    if isinstance(series, pd.DataFrame):
        return clean_price_frame(series)
    return price_frame(series)


def clean_price_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Sort by date, drop duplicate dates and rows with unusable values.

    Missing open/high/low/adj_close columns are filled from close; a missing
    volume column is treated as zero volume.
    """
    df = df.rename(columns={"adjClose": "adj_close"})
    if "date" in df.columns:
        df = df.set_index("date")
    if "close" not in df.columns:
        raise ValueError("Price frame must contain a 'close' column")

    df = _ensure_date_index(df).sort_index()
    df = df[~df.index.duplicated(keep="last")]

    result = pd.DataFrame(index=df.index)
    for column in PRICE_COLUMNS:
        if column in df.columns:
            result[column] = pd.to_numeric(df[column], errors="coerce").astype(float)
        elif column == "volume":
            result[column] = 0.0
        else:
            result[column] = pd.to_numeric(df["close"], errors="coerce").astype(float)

    values = result.to_numpy()
    usable = np.isfinite(values).all(axis=1) & (values >= 0).all(axis=1)
    dropped = int((~usable).sum())
    if dropped:
        logger.warning("Dropped unusable price rows", extra={"rows": dropped})
    return result[usable]


def _ensure_date_index(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    index = df.index if isinstance(df.index, pd.DatetimeIndex) else pd.to_datetime(df.index)
    if index.tz is not None:
        index = index.tz_convert("UTC").tz_localize(None)
    df.index = index.normalize().rename("date")
    return df
