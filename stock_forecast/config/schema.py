"""Validated configuration schema.

Keys follow the camelCase names used in ``config.yaml``; attribute access is
snake_case. Unknown keys are rejected at load time.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Architecture = Literal["lstm", "gru", "attention-lstm"]
UncertaintyGrowth = Literal["sqrt", "linear", "constant"]


class _Section(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class FeatureConfig(_Section):
    """Toggles for the market context columns fed to the forecaster."""

    enabled: bool = True
    include_beta: bool = True
    include_correlation: bool = True
    include_distance_from_ma: bool = Field(default=True, alias="includeDistanceFromMA")
    include_market_return: bool = True
    include_regime: bool = True
    include_relative_return: bool = True
    include_vix: bool = True
    include_volatility_spread: bool = True


class MarketConfig(_Section):
    feature_config: FeatureConfig = Field(default_factory=FeatureConfig)
    primary_index: str = Field(default="^GSPC", min_length=1)
    volatility_index: str = Field(default="^VIX", min_length=1)


class ModelConfig(_Section):
    architecture: Architecture = "lstm"
    window_size: int = Field(default=30, ge=2, le=250)
    epochs: int = Field(default=50, ge=1, le=500)
    learning_rate: float = Field(default=0.001, gt=0, le=0.1)
    batch_size: int = Field(default=128, ge=1, le=512)
    dropout: float = Field(default=0.2, ge=0, lt=1)
    early_stopping_patience: int = Field(default=5, ge=0)
    seed: Optional[int] = None


class PredictionConfig(_Section):
    days: int = Field(default=30, ge=1, le=365)
    buy_threshold: float = Field(default=0.05, ge=0, le=1)
    sell_threshold: float = Field(default=-0.05, ge=-1, le=0)
    min_confidence: float = Field(default=0.6, ge=0, le=1)
    context_days: int = Field(default=15, ge=1, le=1000)
    uncertainty_growth: UncertaintyGrowth = "sqrt"


class TrainingConfig(_Section):
    validation_split: float = Field(default=0.1, gt=0, lt=1)
    min_new_data_points: int = Field(default=50, ge=1)


class TuningConfig(_Section):
    architecture: List[Architecture] = Field(default_factory=lambda: ["lstm", "gru"], min_length=1)
    window_size: List[int] = Field(default_factory=lambda: [20, 30], min_length=1)
    learning_rate: List[float] = Field(default_factory=lambda: [0.001, 0.0005], min_length=1)
    batch_size: List[int] = Field(default_factory=lambda: [64, 128], min_length=1)
    epochs: List[int] = Field(default_factory=lambda: [30], min_length=1)
    validation_splits: int = Field(default=1, ge=1, le=10)
    min_data_points: int = Field(default=200, ge=1)

    @model_validator(mode="after")
    def _check_grid_values(self) -> "TuningConfig":
        if any(size < 2 for size in self.window_size):
            raise ValueError("tuning.windowSize values must be at least 2")
        if any(rate <= 0 for rate in self.learning_rate):
            raise ValueError("tuning.learningRate values must be positive")
        if any(size < 1 for size in self.batch_size) or any(epochs < 1 for epochs in self.epochs):
            raise ValueError("tuning.batchSize and tuning.epochs values must be at least 1")
        return self


class AppConfig(_Section):
    """Root configuration object."""

    market: MarketConfig = Field(default_factory=MarketConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    prediction: PredictionConfig = Field(default_factory=PredictionConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    tuning: TuningConfig = Field(default_factory=TuningConfig)
