"""Configuration: environment settings and the validated application config."""

from .loader import load_config, save_config
from .schema import (
    AppConfig,
    FeatureConfig,
    MarketConfig,
    ModelConfig,
    PredictionConfig,
    TrainingConfig,
    TuningConfig,
)
from .settings import Settings, get_settings

__all__ = [
    "AppConfig",
    "FeatureConfig",
    "MarketConfig",
    "ModelConfig",
    "PredictionConfig",
    "TrainingConfig",
    "TuningConfig",
    "Settings",
    "get_settings",
    "load_config",
    "save_config",
]
