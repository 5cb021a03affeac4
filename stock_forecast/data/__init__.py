"""Price series records and normalization."""

from .series import PRICE_COLUMNS, PricePoint, as_price_frame, clean_price_frame, price_frame

__all__ = [
    "PRICE_COLUMNS",
    "PricePoint",
    "as_price_frame",
    "clean_price_frame",
    "price_frame",
]
