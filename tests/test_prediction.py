import math
from datetime import date, datetime, timezone

import numpy as np
import pandas as pd
import pytest

from stock_forecast.config.schema import AppConfig, PredictionConfig
from stock_forecast.features.dataset_builder import (
    SequenceDataset,
    build_feature_frame,
    build_windows,
    feature_columns,
)
from stock_forecast.features.market import MarketFeatureEngineer
from stock_forecast.models.forecaster import HyperparameterConfig
from stock_forecast.models.persistence import ModelArtifact, ModelMetadata
from stock_forecast.models.prediction import (
    PredictedPoint,
    PredictionEngine,
    PredictionResult,
    SignalAction,
    calculate_confidence,
    decide_action,
    generate_signal,
    uncertainty_growth,
)
from stock_forecast.utils.errors import InsufficientDataError, PredictionError

from conftest import FakeForecaster

WINDOW = 10


@pytest.fixture
def frame(stock_prices, market_prices, vix_prices):
    features = MarketFeatureEngineer().calculate_features("ACME", stock_prices, market_prices, vix_prices)
    return build_feature_frame(features)


def _metadata(**overrides):
    values = dict(
        symbol="ACME",
        trained_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        data_points=500,
        validation_loss=0.1,
        mean_absolute_error=0.01,
        mape=0.02,
        window_size=WINDOW,
        architecture="lstm",
        feature_columns=feature_columns(),
    )
    values.update(overrides)
    return ModelMetadata(**values)


def _artifact(frame, forecaster, log_return=0.0, **metadata):
    windows = build_windows(frame, feature_columns(), WINDOW)
    dataset = SequenceDataset.from_windows(windows, len(windows) - 20)
    model = forecaster.fit(dataset, HyperparameterConfig(window_size=WINDOW, epochs=1))
    scaled = float(dataset.scaler.transform_target([log_return])[0])
    if forecaster.prediction is None:
        forecaster.prediction = scaled
    return ModelArtifact(model=model, scaler=dataset.scaler, metadata=_metadata(**metadata))


def _config(days=5, **prediction):
    return AppConfig(prediction=PredictionConfig(days=days, **prediction))


def test_flat_forecast_has_sqrt_growing_bands(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster, log_return=0.0, mean_absolute_error=0.02)
    result = PredictionEngine(forecaster).predict(artifact, frame, _config(days=6))

    current = frame["close"].iloc[-1]
    assert result.current_price == pytest.approx(current)
    assert [p.day for p in result.predicted] == [1, 2, 3, 4, 5, 6]
    for point in result.predicted:
        assert point.price == pytest.approx(current, rel=1e-9)
        assert point.upper - point.price == pytest.approx(current * 0.02 * math.sqrt(point.day))
    widths = [p.upper - p.lower for p in result.predicted]
    assert widths == sorted(widths)
    assert result.percent_change == pytest.approx(0.0, abs=1e-9)


def test_constant_return_compounds(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster, log_return=0.01)
    result = PredictionEngine(forecaster).predict(artifact, frame, _config(days=4))

    current = frame["close"].iloc[-1]
    for point in result.predicted:
        assert point.price == pytest.approx(current * math.exp(0.01 * point.day), rel=1e-9)
    assert result.predicted_price == result.predicted[-1].price
    assert result.price_change == pytest.approx(result.predicted_price - current)
    assert result.percent_change == pytest.approx(math.exp(0.04) - 1, rel=1e-9)


def test_prediction_dates_are_following_business_days(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster)
    result = PredictionEngine(forecaster).predict(artifact, frame, _config(days=10))

    dates = [p.date for p in result.predicted]
    assert dates[0] > frame.index[-1].date()
    assert all(d.weekday() < 5 for d in dates)
    assert dates == sorted(set(dates))
    assert result.prediction_date == frame.index[-1].date()


def test_lower_bound_is_clipped_at_zero(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster, mean_absolute_error=2.0)
    result = PredictionEngine(forecaster).predict(artifact, frame, _config(days=3))
    assert all(p.lower == 0.0 for p in result.predicted)


def test_linear_and_constant_growth(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster)
    engine = PredictionEngine(forecaster)

    linear = engine.predict(artifact, frame, _config(days=3, uncertainty_growth="linear"))
    constant = engine.predict(artifact, frame, _config(days=3, uncertainty_growth="constant"))
    current = frame["close"].iloc[-1]
    assert linear.predicted[2].upper - linear.predicted[2].price == pytest.approx(current * 0.01 * 3)
    assert constant.predicted[2].upper - constant.predicted[2].price == pytest.approx(current * 0.01)


def test_uncertainty_growth_rejects_unknown_mode():
    assert uncertainty_growth(4) == 2.0
    with pytest.raises(ValueError):
        uncertainty_growth(1, "cubic")


def test_historical_context_slice(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster)
    result = PredictionEngine(forecaster).predict(artifact, frame, _config(context_days=7))
    assert len(result.historical) == 7
    assert result.historical.index[-1] == frame.index[-1]


def test_too_few_rows(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster)
    with pytest.raises(InsufficientDataError):
        PredictionEngine(forecaster).predict(artifact, frame.iloc[: WINDOW - 1], _config())


def test_missing_feature_columns(frame):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster)
    with pytest.raises(PredictionError):
        PredictionEngine(forecaster).predict(artifact, frame.drop(columns=["vix"]), _config())


def test_forecaster_failure_becomes_prediction_error(frame):
    def explode(model, window):
        raise RuntimeError("backend unavailable")

    forecaster = FakeForecaster(prediction=explode)
    artifact = _artifact(frame, forecaster)
    with pytest.raises(PredictionError) as info:
        PredictionEngine(forecaster).predict(artifact, frame, _config())
    assert isinstance(info.value.__cause__, RuntimeError)


def test_next_row_refreshes_price_columns_and_decays_market():
    columns = ["close", "returns", "sma_20", "rsi", "vix", "beta", "market_regime"]
    positions = {name: i for i, name in enumerate(columns)}
    rows = np.array([[100.0 + i, 0.01, 100.0, 55.0, 30.0, 1.3, 1.0] for i in range(5)])
    anchor = rows[-1].copy()
    history = list(rows[:, 0])

    first = PredictionEngine._next_row(rows, anchor, positions, 110.0, step=0, history=history)
    assert first[positions["close"]] == 110.0
    assert first[positions["returns"]] == pytest.approx(110.0 / 104.0 - 1)
    assert first[positions["sma_20"]] == pytest.approx(np.mean([100.0, 101.0, 102.0, 103.0, 104.0, 110.0]))
    assert first[positions["rsi"]] == 55.0
    assert first[positions["vix"]] == pytest.approx(30.0)
    assert first[positions["beta"]] == 1.3

    later = PredictionEngine._next_row(rows, anchor, positions, 110.0, step=10, history=history)
    decay = math.exp(-1.0)
    assert later[positions["vix"]] == pytest.approx(30.0 * decay + 20.0 * (1 - decay))
    assert later[positions["market_regime"]] == pytest.approx(1.0 * decay + 0.5 * (1 - decay))
    assert later[positions["beta"]] == 1.3


def test_next_row_averages_beyond_the_window(frame):
    columns = feature_columns()
    positions = {name: i for i, name in enumerate(columns)}
    rows = frame[columns].iloc[-WINDOW - 1 : -1].to_numpy(dtype=float)
    history = list(frame["close"].iloc[:-1])
    last_close = float(frame["close"].iloc[-1])

    row = PredictionEngine._next_row(rows, rows[-1], positions, last_close, step=0, history=history)
    assert WINDOW < 50
    assert row[positions["sma_50"]] == pytest.approx(frame["close"].iloc[-50:].mean())
    assert row[positions["sma_50"]] == pytest.approx(frame["sma_50"].iloc[-1])
    assert row[positions["sma_20"]] == pytest.approx(frame["sma_20"].iloc[-1])


def test_predicted_rows_extend_the_close_history(frame):
    artifact = _artifact(frame, FakeForecaster(), log_return=0.0)
    flat = float(artifact.scaler.transform_target([0.0])[0])
    windows = []

    def record(model, window):
        windows.append(artifact.scaler.feature_scaler.inverse_transform(window))
        return flat

    PredictionEngine(FakeForecaster(prediction=record)).predict(artifact, frame, _config(days=3))

    sma_at = feature_columns().index("sma_50")
    closes = list(frame["close"].iloc[-49:])
    last_close = float(frame["close"].iloc[-1])
    expected = []
    for _ in range(2):
        closes.append(last_close)
        expected.append(np.mean(closes[-50:]))
    # Day 2 and 3 inputs end with rows built from the flat predicted closes.
    np.testing.assert_allclose([w[-1, sma_at] for w in windows[1:]], expected, rtol=1e-7)


def test_window_spanning_a_missing_date_is_rejected(frame, stock_prices, market_prices, vix_prices):
    forecaster = FakeForecaster()
    artifact = _artifact(frame, forecaster)
    gappy_vix = vix_prices.drop(index=stock_prices.index[-4])
    gappy = build_feature_frame(
        MarketFeatureEngineer().calculate_features("ACME", stock_prices, market_prices, gappy_vix)
    )
    assert len(gappy) == len(frame) - 1

    engine = PredictionEngine(forecaster)
    with pytest.raises(InsufficientDataError) as info:
        engine.predict(artifact, gappy, _config(), calendar=stock_prices.index)
    assert info.value.available == 3
    result = engine.predict(artifact, frame, _config(), calendar=stock_prices.index)
    assert result.prediction_date == stock_prices.index[-1].date()


def test_confidence_defaults_and_weights():
    assert calculate_confidence(None) == 0.5
    perfect = _metadata(validation_loss=0.0, mean_absolute_error=0.0, data_points=2000)
    assert calculate_confidence(perfect) == pytest.approx(1.0)
    worst = _metadata(validation_loss=5.0, mean_absolute_error=1.0, data_points=0)
    assert calculate_confidence(worst) == pytest.approx(0.0)
    mid = _metadata(validation_loss=0.2, mean_absolute_error=0.01, data_points=500)
    assert calculate_confidence(mid) == pytest.approx(0.5 * 0.8 + 0.3 * 0.9 + 0.2 * 0.5)


def test_confidence_is_monotone_in_loss_and_error():
    losses = [calculate_confidence(_metadata(validation_loss=loss)) for loss in (0.0, 0.1, 0.5, 0.9, 2.0)]
    assert losses == sorted(losses, reverse=True)
    errors = [calculate_confidence(_metadata(mean_absolute_error=mae)) for mae in (0.0, 0.01, 0.05, 0.2)]
    assert errors == sorted(errors, reverse=True)


def test_decide_action():
    assert decide_action(0.08, 0.9, 0.05, -0.05, 0.6)[0] is SignalAction.BUY
    assert decide_action(0.01, 0.9, 0.05, -0.05, 0.6)[0] is SignalAction.HOLD
    assert decide_action(-0.08, 0.9, 0.05, -0.05, 0.6)[0] is SignalAction.SELL
    assert decide_action(0.05, 0.6, 0.05, -0.05, 0.6)[0] is SignalAction.BUY
    assert decide_action(-0.05, 0.6, 0.05, -0.05, 0.6)[0] is SignalAction.SELL

    action, reason = decide_action(0.08, 0.5, 0.05, -0.05, 0.6)
    assert action is SignalAction.HOLD
    assert reason == "Low confidence: 50%"
    assert decide_action(0.08, 0.9, 0.05, -0.05, 0.6)[1] == "Expected +8.00% gain"
    assert decide_action(-0.08, 0.9, 0.05, -0.05, 0.6)[1] == "Expected -8.00% loss"
    assert decide_action(0.0, 0.9, 0.05, -0.05, 0.6)[1] == "Neutral signal - within thresholds"


def test_signal_uses_final_predicted_price():
    points = [
        PredictedPoint(day=1, date=date(2024, 1, 2), price=110.0, lower=100.0, upper=120.0),
        PredictedPoint(day=2, date=date(2024, 1, 3), price=90.0, lower=80.0, upper=100.0),
    ]
    prediction = PredictionResult(
        symbol="ACME",
        prediction_date=date(2024, 1, 1),
        current_price=100.0,
        historical=pd.Series([99.0, 100.0]),
        predicted=points,
        predicted_price=90.0,
        price_change=-10.0,
        percent_change=-0.1,
        mean_absolute_error=0.01,
        confidence=0.8,
    )
    stamp = datetime(2024, 1, 1, 21, tzinfo=timezone.utc)
    signal = generate_signal(prediction, PredictionConfig(), timestamp=stamp)

    assert signal.action is SignalAction.SELL
    assert signal.delta == -0.1
    assert signal.symbol == "ACME"
    assert signal.timestamp == stamp
    assert prediction.predicted_prices == [110.0, 90.0]
