from pathlib import Path

import joblib
import numpy as np
import pandas as pd
import pytest

from stock_forecast.features.dataset_builder import WindowSet
from stock_forecast.models.forecaster import Evaluation


def make_prices(n, start="2020-01-01", start_price=100.0, drift=0.001, noise=0.0, seed=0, volume=1_000_000.0):
    """Business-day OHLCV frame with geometric drift and optional noise."""
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(start=start, periods=n, name="date")
    steps = drift + noise * rng.standard_normal(n)
    if n:
        steps[0] = 0.0
    close = start_price * np.exp(np.cumsum(steps))
    return pd.DataFrame(
        {
            "open": close,
            "high": close * 1.01,
            "low": close * 0.99,
            "close": close,
            "adj_close": close,
            "volume": np.full(n, volume) + rng.integers(0, 1000, n),
        },
        index=dates,
    )


@pytest.fixture
def stock_prices():
    return make_prices(320, start="2021-01-01", drift=0.001, noise=0.01, seed=1)


@pytest.fixture
def market_prices():
    # Starts earlier than the stock so long moving averages are available.
    return make_prices(800, start="2019-06-03", start_price=3000.0, drift=0.0005, noise=0.008, seed=2)


@pytest.fixture
def vix_prices():
    frame = make_prices(800, start="2019-06-03", start_price=18.0, drift=0.0, noise=0.02, seed=3)
    return frame


class FakeForecaster:
    """Forecaster test double: predicts the mean scaled training target."""

    def __init__(self, loss=0.1, fail_when=None, prediction=None):
        self.loss = loss
        self.fail_when = fail_when
        self.prediction = prediction
        self.fit_calls = []
        self.epochs_seen = []

    def fit(self, dataset, config, on_epoch=None):
        if self.fail_when is not None and self.fail_when(config):
            raise RuntimeError(f"fit failed for {config.architecture}")
        self.fit_calls.append((config, len(dataset.train), len(dataset.validation)))
        for epoch in range(1, config.epochs + 1):
            if on_epoch is not None:
                on_epoch(epoch, 1.0 / epoch)
            self.epochs_seen.append(epoch)
        return {"mean": float(np.mean(dataset.train.y)), "architecture": config.architecture}

    def evaluate(self, model, windows: WindowSet, config):
        loss = self.loss(config) if callable(self.loss) else self.loss
        return Evaluation(loss=loss, is_valid=np.isfinite(loss) and loss < 1.0)

    def predict(self, model, window):
        if self.prediction is not None:
            return self.prediction(model, window) if callable(self.prediction) else self.prediction
        return model["mean"]

    def save_model(self, model, directory):
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        joblib.dump(model, directory / "fake.joblib")

    def load_model(self, directory):
        return joblib.load(Path(directory) / "fake.joblib")


@pytest.fixture
def fake_forecaster():
    return FakeForecaster()
