"""Grid search over forecaster hyperparameters with time-ordered validation."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from itertools import product
from typing import Callable, List, Literal, Optional, Sequence

import numpy as np
import pandas as pd

from ..config.schema import AppConfig, ModelConfig, TuningConfig
from ..data.series import PriceSeries, as_price_frame
from ..features.dataset_builder import (
    SplitConfig,
    build_feature_frame,
    build_windows,
    feature_columns,
    walk_forward_splits,
)
from ..features.vector import FeatureVector
from ..utils.errors import InsufficientDataError, TuningError
from ..utils.logger import setup_logger
from .forecaster import Forecaster, HyperparameterConfig
from .trainer import fit_and_score

logger = setup_logger("tuner")

ProgressCallback = Callable[[int, int, float], None]


@dataclass(frozen=True)
class TrialResult:
    trial_id: int
    config: HyperparameterConfig
    mape: float
    validation_loss: float
    duration: float
    status: Literal["completed", "failed"]
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"


def build_grid(tuning: TuningConfig, model: ModelConfig | None = None) -> List[HyperparameterConfig]:
    """
    Cartesian product of the tuning lists.

    Order is architecture, batch size, epochs, learning rate, window size;
    settings not searched over come from the model section.
    """
    base = HyperparameterConfig.from_model_config(model or ModelConfig())
    return [
        replace(
            base,
            architecture=architecture,
            batch_size=batch_size,
            epochs=epochs,
            learning_rate=learning_rate,
            window_size=window_size,
        )
        for architecture, batch_size, epochs, learning_rate, window_size in product(
            tuning.architecture,
            tuning.batch_size,
            tuning.epochs,
            tuning.learning_rate,
            tuning.window_size,
        )
    ]


def _is_better(candidate: TrialResult, best: TrialResult | None) -> bool:
    if best is None:
        return True
    return (candidate.mape, candidate.validation_loss) < (best.mape, best.validation_loss)


class HyperparameterTuner:
    def __init__(self, forecaster: Forecaster, config: AppConfig) -> None:
        self.forecaster = forecaster
        self.config = config
        self.results: List[TrialResult] = []

    def tune(
        self,
        symbol: str,
        series: PriceSeries,
        features: Sequence[FeatureVector] | pd.DataFrame,
        on_progress: ProgressCallback | None = None,
    ) -> TrialResult:
        """
        Run every grid configuration and return the best completed trial.

        ``on_progress(completed, total, best_mape)`` runs after each trial and
        reports the best MAPE so far, or infinity while no trial succeeded.
        """
        tuning = self.config.tuning
        prices = as_price_frame(series)
        if len(prices) < tuning.min_data_points:
            raise InsufficientDataError(
                f"need at least {tuning.min_data_points} price points to tune",
                symbol,
                required=tuning.min_data_points,
                available=len(prices),
            )

        feature_config = self.config.market.feature_config
        frame = features if isinstance(features, pd.DataFrame) else build_feature_frame(features, feature_config)
        columns = feature_columns(feature_config)
        grid = build_grid(tuning, self.config.model)
        total = len(grid)

        logger.info("Starting hyperparameter search", extra={"symbol": symbol, "trials": total})
        self.results = []
        best: TrialResult | None = None
        for trial_id, hyperparameters in enumerate(grid, start=1):
            result = self._run_trial(symbol, trial_id, hyperparameters, frame, columns, prices.index)
            self.results.append(result)
            if result.succeeded and _is_better(result, best):
                best = result
            if on_progress is not None:
                on_progress(trial_id, total, best.mape if best is not None else math.inf)

        if best is None:
            raise TuningError(f"all {total} trials failed", symbol)
        logger.info(
            "Best trial selected",
            extra={"symbol": symbol, "trial_id": best.trial_id, "mape": round(best.mape, 6), **best.config.to_dict()},
        )
        return best

    def _run_trial(
        self,
        symbol: str,
        trial_id: int,
        hyperparameters: HyperparameterConfig,
        frame: pd.DataFrame,
        columns: List[str],
        calendar: pd.DatetimeIndex,
    ) -> TrialResult:
        started = time.perf_counter()
        try:
            windows = build_windows(frame, columns, hyperparameters.window_size, calendar)
            split = SplitConfig(validation=self.config.training.validation_split)
            folds = walk_forward_splits(len(windows), self.config.tuning.validation_splits, split)
            losses, mapes = [], []
            for train_end, validation_end in folds:
                fit = fit_and_score(self.forecaster, windows, hyperparameters, train_end, validation_end)
                if math.isfinite(fit.evaluation.loss) and math.isfinite(fit.metrics["mape"]):
                    losses.append(fit.evaluation.loss)
                    mapes.append(fit.metrics["mape"])
            if not losses:
                raise TuningError("no fold produced finite metrics", symbol)
        except Exception as exc:
            duration = time.perf_counter() - started
            logger.warning(
                "Trial failed",
                extra={"symbol": symbol, "trial_id": trial_id, "error": str(exc), **hyperparameters.to_dict()},
            )
            return TrialResult(
                trial_id=trial_id,
                config=hyperparameters,
                mape=math.inf,
                validation_loss=math.inf,
                duration=duration,
                status="failed",
                error=str(exc),
            )

        result = TrialResult(
            trial_id=trial_id,
            config=hyperparameters,
            mape=float(np.mean(mapes)),
            validation_loss=float(np.mean(losses)),
            duration=time.perf_counter() - started,
            status="completed",
        )
        logger.info(
            "Trial complete",
            extra={
                "symbol": symbol,
                "trial_id": trial_id,
                "mape": round(result.mape, 6),
                "loss": round(result.validation_loss, 6),
                "folds": len(losses),
            },
        )
        return result
