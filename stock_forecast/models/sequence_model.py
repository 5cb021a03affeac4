"""Recurrent Keras forecasters: stacked LSTM, stacked GRU and LSTM with self attention."""

from __future__ import annotations

import math
import random
from pathlib import Path
from typing import List, Tuple

import numpy as np
import tensorflow as tf
from tensorflow.keras import Model, callbacks, layers, optimizers

from ..features.dataset_builder import SequenceDataset, WindowSet
from ..utils.errors import ModelError
from ..utils.logger import setup_logger
from .forecaster import EpochCallback, Evaluation, HyperparameterConfig

logger = setup_logger("sequence_model")

MODEL_FILE = "model.keras"


def set_random_seeds(seed: int | None) -> None:
    if seed is None:
        return
    random.seed(seed)
    np.random.seed(seed)
    tf.random.set_seed(seed)


class KerasSequenceForecaster:
    """Builds, trains and runs single-output regression networks over windows."""

    def __init__(
        self,
        units: int = 64,
        num_heads: int = 4,
        max_valid_loss: float = 1.0,
        reduce_lr_patience: int = 3,
    ) -> None:
        self.units = units
        self.num_heads = num_heads
        self.max_valid_loss = max_valid_loss
        self.reduce_lr_patience = reduce_lr_patience

    def build_model(self, input_shape: Tuple[int, int], config: HyperparameterConfig) -> Model:
        sequence_length, num_features = input_shape
        inputs = layers.Input(shape=(sequence_length, num_features))

        if config.architecture == "attention-lstm":
            x = layers.LSTM(self.units, return_sequences=True)(inputs)
            x = layers.Dropout(config.dropout)(x)
            attn_output = layers.MultiHeadAttention(
                num_heads=self.num_heads,
                key_dim=max(1, self.units // self.num_heads),
                dropout=config.dropout,
            )(x, x)
            x = layers.Add()([x, attn_output])
            x = layers.LayerNormalization()(x)
            x = layers.GlobalAveragePooling1D()(x)
        else:
            recurrent = layers.GRU if config.architecture == "gru" else layers.LSTM
            x = recurrent(self.units, return_sequences=True)(inputs)
            x = layers.Dropout(config.dropout)(x)
            x = recurrent(self.units // 2)(x)
            x = layers.Dropout(config.dropout)(x)

        x = layers.Dense(32, activation="relu")(x)
        outputs = layers.Dense(1, name="next_return")(x)

        model = Model(inputs=inputs, outputs=outputs, name=config.architecture.replace("-", "_"))
        optimizer = optimizers.Adam(learning_rate=config.learning_rate, clipvalue=1.0)
        model.compile(optimizer=optimizer, loss="mse", metrics=["mae"])
        return model

    def _callbacks(
        self,
        config: HyperparameterConfig,
        monitor: str,
        on_epoch: EpochCallback | None,
    ) -> List[callbacks.Callback]:
        hooks: List[callbacks.Callback] = [
            callbacks.ReduceLROnPlateau(
                monitor=monitor,
                factor=0.5,
                patience=self.reduce_lr_patience,
                min_lr=1e-6,
            )
        ]
        if config.early_stopping_patience > 0:
            hooks.append(
                callbacks.EarlyStopping(
                    monitor=monitor,
                    patience=config.early_stopping_patience,
                    restore_best_weights=True,
                )
            )
        if on_epoch is not None:
            hooks.append(
                callbacks.LambdaCallback(
                    on_epoch_end=lambda epoch, logs: on_epoch(epoch + 1, float((logs or {}).get("loss", math.nan)))
                )
            )
        return hooks

    def fit(
        self,
        dataset: SequenceDataset,
        config: HyperparameterConfig,
        on_epoch: EpochCallback | None = None,
    ) -> Model:
        set_random_seeds(config.seed)
        train = dataset.train
        validation = dataset.validation
        model = self.build_model((train.X.shape[1], train.X.shape[2]), config)

        has_validation = len(validation) > 0
        history = model.fit(
            train.X.astype(np.float32),
            train.y.astype(np.float32),
            validation_data=(validation.X.astype(np.float32), validation.y.astype(np.float32)) if has_validation else None,
            epochs=config.epochs,
            batch_size=config.batch_size,
            shuffle=False,
            verbose=0,
            callbacks=self._callbacks(config, "val_loss" if has_validation else "loss", on_epoch),
        )
        logger.info(
            "Trained sequence model",
            extra={
                "architecture": config.architecture,
                "epochs_run": len(history.history.get("loss", [])),
                "train_samples": len(train),
            },
        )
        return model

    def evaluate(self, model: Model, windows: WindowSet, config: HyperparameterConfig) -> Evaluation:
        if len(windows) == 0:
            return Evaluation(loss=math.inf, is_valid=False)
        result = model.evaluate(
            windows.X.astype(np.float32),
            windows.y.astype(np.float32),
            batch_size=config.batch_size,
            verbose=0,
            return_dict=True,
        )
        loss = float(result["loss"])
        return Evaluation(loss=loss, is_valid=math.isfinite(loss) and loss < self.max_valid_loss)

    def predict(self, model: Model, window: np.ndarray) -> float:
        batch = np.asarray(window, dtype=np.float32)[np.newaxis, ...]
        output = model(batch, training=False)
        return float(np.asarray(output).reshape(-1)[0])

    def save_model(self, model: Model, directory: Path) -> None:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        model.save(directory / MODEL_FILE)

    def load_model(self, directory: Path) -> Model:
        path = Path(directory) / MODEL_FILE
        if not path.exists():
            raise ModelError(f"no saved network at {path}")
        return tf.keras.models.load_model(path)
