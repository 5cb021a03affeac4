from datetime import datetime, timezone

import pytest

from stock_forecast.config.schema import AppConfig, FeatureConfig, MarketConfig, ModelConfig
from stock_forecast.features.dataset_builder import build_feature_frame, feature_columns
from stock_forecast.features.market import MarketFeatureEngineer
from stock_forecast.models.forecaster import HyperparameterConfig
from stock_forecast.models.metrics import regression_metrics
from stock_forecast.models.persistence import ModelMetadata
from stock_forecast.models.trainer import ForecastTrainer
from stock_forecast.utils.errors import ConfigurationError, InsufficientDataError, ModelError

from conftest import FakeForecaster


@pytest.fixture
def frame(stock_prices, market_prices, vix_prices):
    features = MarketFeatureEngineer().calculate_features("ACME", stock_prices, market_prices, vix_prices)
    return build_feature_frame(features)


def _config(**model):
    return AppConfig(model=ModelConfig(**{"window_size": 10, "epochs": 3, **model}))


def test_train_packages_artifact(frame, stock_prices):
    forecaster = FakeForecaster(loss=0.07)
    epochs = []
    outcome = ForecastTrainer(forecaster, _config()).train(
        "ACME", frame, calendar=stock_prices.index, on_epoch=lambda epoch, loss: epochs.append((epoch, loss))
    )

    metadata = outcome.artifact.metadata
    assert metadata.symbol == "ACME"
    assert metadata.window_size == 10
    assert metadata.feature_columns == feature_columns()
    assert metadata.validation_loss == 0.07
    assert metadata.data_points == len(frame)
    assert metadata.mean_absolute_error == outcome.metrics["return_mae"]
    assert metadata.hyperparameters["epochs"] == 3
    assert outcome.evaluation.is_valid
    assert [epoch for epoch, _ in epochs] == [1, 2, 3]
    assert outcome.artifact.scaler.fitted


def test_train_uses_only_enabled_columns(frame):
    config = AppConfig(
        model=ModelConfig(window_size=10, epochs=1),
        market=MarketConfig(feature_config=FeatureConfig(enabled=False)),
    )
    outcome = ForecastTrainer(FakeForecaster(), config).train("ACME", frame)
    assert outcome.artifact.metadata.feature_columns == feature_columns(FeatureConfig(enabled=False))


def test_train_needs_window_plus_five_rows(frame):
    trainer = ForecastTrainer(FakeForecaster(), _config())
    with pytest.raises(InsufficientDataError) as info:
        trainer.train("ACME", frame.iloc[:14])
    assert info.value.required == 15


def test_train_rejects_frames_missing_columns(frame):
    with pytest.raises(ModelError):
        ForecastTrainer(FakeForecaster(), _config()).train("ACME", frame.drop(columns=["rsi"]))


def test_explicit_hyperparameters_override_model_section(frame):
    forecaster = FakeForecaster()
    hyperparameters = HyperparameterConfig(architecture="gru", window_size=12, epochs=1)
    outcome = ForecastTrainer(forecaster, _config()).train("ACME", frame, hyperparameters=hyperparameters)
    assert outcome.artifact.metadata.architecture == "gru"
    assert outcome.artifact.metadata.window_size == 12


def test_hyperparameters_are_validated():
    with pytest.raises(ConfigurationError):
        HyperparameterConfig(architecture="transformer")
    with pytest.raises(ConfigurationError):
        HyperparameterConfig(window_size=1)
    with pytest.raises(ConfigurationError):
        HyperparameterConfig(learning_rate=0.0)


def test_needs_retraining():
    trainer = ForecastTrainer(FakeForecaster(), AppConfig())
    metadata = ModelMetadata(
        symbol="ACME",
        trained_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        data_points=300,
        validation_loss=0.1,
        mean_absolute_error=0.01,
        mape=0.02,
        window_size=30,
        architecture="lstm",
        feature_columns=feature_columns(),
    )
    assert trainer.needs_retraining(None, 10)
    assert not trainer.needs_retraining(metadata, 349)
    assert trainer.needs_retraining(metadata, 350)


def test_regression_metrics():
    metrics = regression_metrics([100.0, 200.0], [110.0, 180.0])
    assert metrics["mae"] == pytest.approx(15.0)
    assert metrics["rmse"] == pytest.approx((250.0) ** 0.5)
    assert metrics["mape"] == pytest.approx(0.1)
