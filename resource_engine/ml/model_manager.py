"""
Resource Engine - Model Manager
===============================

Builds, trains, serves and persists the regression models.

Components:
1. ModelRegistry - explicit per-id state (not_trained / training / ready /
   degraded), current metadata, lineage and normalization parameters
2. ModelManager - training and inference on top of the registry
3. OutcomePredictor - adapter the genetic algorithm queries for predicted
   outcomes of a task/resource pair

Training is a blocking, explicit step and is serialized per model id. An
empty dataset never raises: it produces degraded metadata with accuracy 0.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np
import torch
import torch.nn as nn
from sklearn.metrics import (
    accuracy_score,
    mean_absolute_error,
    mean_absolute_percentage_error,
    mean_squared_error,
)
from torch.utils.data import DataLoader, TensorDataset

from resource_engine.config import EngineConfig
from resource_engine.domain.types import Resource, Task
from resource_engine.errors import ModelNotReadyError

from .features import (
    FEATURE_NAMES,
    LABEL_NAMES,
    NormalizationParams,
    TrainingDataset,
    apply_normalization,
    build_feature_vector,
    features_for_allocation,
    invert_normalization,
)
from .networks import DurationPredictionNet, ResourceAllocationNet, success_bin

logger = logging.getLogger(__name__)

SUCCESS_RATE_INDEX = LABEL_NAMES.index("success_rate")

ALLOCATION_MODEL_ID = "resource_allocation"
DURATION_MODEL_ID = "duration_prediction"


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class ModelType(str, Enum):
    ALLOCATION = "allocation"
    DURATION = "duration"


class ModelStatus(str, Enum):
    NOT_TRAINED = "not_trained"
    TRAINING = "training"
    READY = "ready"
    DEGRADED = "degraded"


# ═══════════════════════════════════════════════════════════════════════════════
# METADATA
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ModelMetadata:
    """Description of one training run of a model id."""
    model_id: str
    name: str
    model_type: ModelType
    version: int
    status: ModelStatus
    accuracy: float
    trained_at: datetime
    dataset_id: str
    training_samples: int
    features: List[str] = field(default_factory=lambda: list(FEATURE_NAMES))
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    performance_metrics: Dict[str, float] = field(default_factory=dict)
    training_history: List[float] = field(default_factory=list)
    superseded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "name": self.name,
            "model_type": self.model_type.value,
            "version": self.version,
            "status": self.status.value,
            "accuracy": round(self.accuracy, 4),
            "trained_at": self.trained_at.isoformat(),
            "dataset_id": self.dataset_id,
            "training_samples": self.training_samples,
            "features": list(self.features),
            "hyperparameters": dict(self.hyperparameters),
            "performance_metrics": {k: round(v, 6) for k, v in self.performance_metrics.items()},
            "training_history": [round(v, 6) for v in self.training_history],
            "superseded": self.superseded,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelMetadata":
        return cls(
            model_id=data["model_id"],
            name=data.get("name", data["model_id"]),
            model_type=ModelType(data["model_type"]),
            version=int(data.get("version", 1)),
            status=ModelStatus(data.get("status", ModelStatus.READY.value)),
            accuracy=float(data.get("accuracy", 0.0)),
            trained_at=datetime.fromisoformat(data["trained_at"]),
            dataset_id=data.get("dataset_id", ""),
            training_samples=int(data.get("training_samples", 0)),
            features=list(data.get("features") or FEATURE_NAMES),
            hyperparameters=dict(data.get("hyperparameters") or {}),
            performance_metrics=dict(data.get("performance_metrics") or {}),
            training_history=list(data.get("training_history") or []),
            superseded=bool(data.get("superseded", False)),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class RegistryEntry:
    model_id: str
    model_type: ModelType
    model: Optional[nn.Module] = None
    status: ModelStatus = ModelStatus.NOT_TRAINED
    metadata: Optional[ModelMetadata] = None
    lineage: List[ModelMetadata] = field(default_factory=list)
    normalization: Optional[NormalizationParams] = None
    label_normalization: Optional[NormalizationParams] = None
    feature_defaults: Dict[str, float] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class ModelRegistry:
    """Models keyed by id. Unknown ids report `not_trained`."""

    def __init__(self):
        self._entries: Dict[str, RegistryEntry] = {}
        self._guard = threading.Lock()

    def entry(self, model_id: str, model_type: Optional[ModelType] = None) -> RegistryEntry:
        """Get or create the entry for a model id."""
        with self._guard:
            existing = self._entries.get(model_id)
            if existing is None:
                existing = RegistryEntry(model_id=model_id, model_type=model_type or ModelType.DURATION)
                self._entries[model_id] = existing
            elif model_type is not None:
                existing.model_type = model_type
            return existing

    def get(self, model_id: str) -> Optional[RegistryEntry]:
        return self._entries.get(model_id)

    def status(self, model_id: str) -> ModelStatus:
        entry = self._entries.get(model_id)
        return entry.status if entry else ModelStatus.NOT_TRAINED

    def is_ready(self, model_id: str) -> bool:
        return self.status(model_id) == ModelStatus.READY

    def metadata(self, model_id: str) -> Optional[ModelMetadata]:
        entry = self._entries.get(model_id)
        return entry.metadata if entry else None

    def require(self, model_id: str) -> ModelMetadata:
        """Metadata of a registered model; raises ModelNotReadyError if unknown."""
        entry = self._entries.get(model_id)
        if entry is None or entry.metadata is None:
            raise ModelNotReadyError(f"Model {model_id} is not registered")
        return entry.metadata

    def lineage(self, model_id: str) -> List[ModelMetadata]:
        entry = self._entries.get(model_id)
        return list(entry.lineage) if entry else []

    def next_version(self, model_id: str) -> int:
        entry = self._entries.get(model_id)
        return len(entry.lineage) + 1 if entry else 1

    def record(
        self,
        entry: RegistryEntry,
        model: nn.Module,
        metadata: ModelMetadata,
        dataset: TrainingDataset,
    ) -> None:
        """Install a freshly trained model; earlier metadata is marked superseded."""
        for previous in entry.lineage:
            previous.superseded = True
        entry.lineage.append(metadata)
        entry.metadata = metadata
        entry.status = metadata.status
        entry.model = model if metadata.status == ModelStatus.READY else None
        entry.normalization = dataset.normalization_params
        entry.label_normalization = dataset.label_normalization
        entry.feature_defaults = dict(dataset.feature_defaults)

    def model_ids(self) -> List[str]:
        return sorted(self._entries)

    def summary(self) -> Dict[str, Any]:
        return {
            model_id: {
                "status": entry.status.value,
                "version": entry.metadata.version if entry.metadata else 0,
                "accuracy": round(entry.metadata.accuracy, 4) if entry.metadata else 0.0,
            }
            for model_id, entry in sorted(self._entries.items())
        }


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL MANAGER
# ═══════════════════════════════════════════════════════════════════════════════

class ModelManager:
    """Training and inference for the allocation and duration models."""

    def __init__(self, config: Optional[EngineConfig] = None, registry: Optional[ModelRegistry] = None):
        self.config = config or EngineConfig()
        self.registry = registry or ModelRegistry()

    # ───────────────────────────────────────────────────────────────────────────
    # Builders
    # ───────────────────────────────────────────────────────────────────────────

    def build_resource_allocation_model(self) -> ResourceAllocationNet:
        return ResourceAllocationNet()

    def build_duration_prediction_model(self) -> DurationPredictionNet:
        return DurationPredictionNet()

    def build_model(self, model_type: Union[ModelType, str]) -> nn.Module:
        if ModelType(model_type) == ModelType.ALLOCATION:
            return self.build_resource_allocation_model()
        return self.build_duration_prediction_model()

    # ───────────────────────────────────────────────────────────────────────────
    # Training
    # ───────────────────────────────────────────────────────────────────────────

    def train_model(self, model_id: str, model: nn.Module, dataset: TrainingDataset) -> ModelMetadata:
        """
        Train `model` on `dataset` and register it under `model_id`.

        Returns the new metadata. Accuracy is measured on the held-out split
        (or the training split when nothing is held out) and scaled down for
        datasets smaller than `min_samples_for_full_confidence`.
        """
        model_type = ModelType.ALLOCATION if isinstance(model, ResourceAllocationNet) else ModelType.DURATION
        entry = self.registry.entry(model_id, model_type)

        with entry.lock:
            previous_status = entry.status
            entry.status = ModelStatus.TRAINING
            try:
                metadata = self._train_locked(model_id, model_type, model, dataset)
            except Exception:
                entry.status = previous_status
                logger.exception(f"Training failed for model {model_id}")
                raise
            self.registry.record(entry, model, metadata, dataset)

        logger.info(
            f"Model {model_id} v{metadata.version} trained: status={metadata.status.value}, "
            f"accuracy={metadata.accuracy:.3f}, samples={metadata.training_samples}"
        )
        return metadata

    def _train_locked(
        self,
        model_id: str,
        model_type: ModelType,
        model: nn.Module,
        dataset: TrainingDataset,
    ) -> ModelMetadata:
        dataset.ensure_normalization()
        epochs = (
            self.config.allocation_model_epochs
            if model_type == ModelType.ALLOCATION
            else self.config.duration_model_epochs
        )
        hyperparameters = {
            "epochs": epochs,
            "batch_size": self.config.batch_size,
            "learning_rate": self.config.learning_rate,
            "split_ratio": list(dataset.split_ratio),
        }
        metadata = ModelMetadata(
            model_id=model_id,
            name=model_id.replace("_", " ").title(),
            model_type=model_type,
            version=self.registry.next_version(model_id),
            status=ModelStatus.DEGRADED,
            accuracy=0.0,
            trained_at=datetime.now(timezone.utc),
            dataset_id=dataset.dataset_id,
            training_samples=0,
            hyperparameters=hyperparameters,
        )

        if dataset.is_empty:
            logger.warning(f"No training data for model {model_id}; marking as degraded")
            return metadata

        if self.config.seed is not None:
            torch.manual_seed(self.config.seed)

        X = apply_normalization(dataset.feature_matrix(), dataset.normalization_params)
        Y_raw = dataset.label_matrix()
        train_idx, val_idx, test_idx = dataset.split_indices(self.config.seed)
        eval_idx = np.concatenate([val_idx, test_idx])
        if eval_idx.size == 0:
            eval_idx = train_idx

        if model_type == ModelType.ALLOCATION:
            rates = _success_rates(Y_raw)
            targets = success_bin(torch.from_numpy(rates[train_idx]))
            history = self._fit(model, X[train_idx], targets, nn.CrossEntropyLoss(), epochs)
            accuracy, performance = self._evaluate_allocation(model, X[eval_idx], rates[eval_idx])
        else:
            Y = apply_normalization(Y_raw, dataset.label_normalization)
            history = self._fit(model, X[train_idx], torch.from_numpy(Y[train_idx]), nn.MSELoss(), epochs)
            accuracy, performance = self._evaluate_duration(
                model, X[eval_idx], Y_raw[eval_idx], dataset.label_normalization
            )

        n = len(dataset)
        confidence = min(1.0, n / max(1, self.config.min_samples_for_full_confidence))

        metadata.status = ModelStatus.READY
        metadata.accuracy = float(np.clip(accuracy * confidence, 0.0, 1.0))
        metadata.training_samples = int(train_idx.size)
        metadata.performance_metrics = performance
        metadata.training_history = history
        return metadata

    def _fit(
        self,
        model: nn.Module,
        X: np.ndarray,
        targets: torch.Tensor,
        criterion: nn.Module,
        epochs: int,
    ) -> List[float]:
        loader = DataLoader(
            TensorDataset(torch.from_numpy(X), targets),
            batch_size=self.config.batch_size,
            shuffle=True,
        )
        optimizer = torch.optim.Adam(model.parameters(), lr=self.config.learning_rate)

        history: List[float] = []
        model.train()
        for epoch in range(epochs):
            epoch_loss = 0.0
            for x, y in loader:
                optimizer.zero_grad()
                loss = criterion(model(x), y)
                loss.backward()
                optimizer.step()
                epoch_loss += loss.item()

            history.append(epoch_loss / len(loader))
            if (epoch + 1) % 10 == 0:
                logger.debug(f"Epoch {epoch + 1}/{epochs} - Loss: {history[-1]:.4f}")

        model.eval()
        return history

    def _evaluate_allocation(self, model: ResourceAllocationNet, X: np.ndarray, rates: np.ndarray):
        with torch.no_grad():
            logits = model(torch.from_numpy(X))
            predicted_bins = logits.argmax(dim=-1).numpy()
            expected = model.expected_success(logits).numpy()

        true_bins = success_bin(torch.from_numpy(rates)).numpy()
        accuracy = accuracy_score(true_bins, predicted_bins)
        return accuracy, _regression_metrics(rates, expected)

    def _evaluate_duration(
        self,
        model: DurationPredictionNet,
        X: np.ndarray,
        Y_true: np.ndarray,
        label_params: NormalizationParams,
    ):
        with torch.no_grad():
            predicted = model(torch.from_numpy(X)).numpy()
        Y_pred = invert_normalization(predicted, label_params)

        mask = np.abs(Y_true) > 1e-6
        if mask.any():
            mape = mean_absolute_percentage_error(Y_true[mask], Y_pred[mask])
        else:
            mape = 1.0
        accuracy = float(np.clip(1.0 - mape, 0.0, 1.0))
        return accuracy, _regression_metrics(Y_true, Y_pred)

    # ───────────────────────────────────────────────────────────────────────────
    # Inference
    # ───────────────────────────────────────────────────────────────────────────

    def predict(self, model_id: str, features: Mapping[str, Any]) -> np.ndarray:
        """
        Run a ready model on one feature record.

        Allocation models return the probability of each success bin;
        duration models return the 6 labels in natural units.
        """
        entry = self.registry.get(model_id)
        if entry is None or entry.status != ModelStatus.READY or entry.model is None:
            raise ModelNotReadyError(f"Model {model_id} is not ready")

        vector = build_feature_vector(features, entry.feature_defaults)
        x = apply_normalization(vector[np.newaxis, :], entry.normalization)

        model = entry.model
        model.eval()
        with torch.no_grad():
            output = model(torch.from_numpy(x))

        if entry.model_type == ModelType.ALLOCATION:
            return torch.softmax(output, dim=-1).numpy()[0]
        return invert_normalization(output.numpy(), entry.label_normalization)[0]

    def outcome_predictor(self, model_id: str = DURATION_MODEL_ID) -> "OutcomePredictor":
        return OutcomePredictor(self, model_id, self.config.min_model_accuracy)

    # ───────────────────────────────────────────────────────────────────────────
    # Persistence
    # ───────────────────────────────────────────────────────────────────────────

    def save_model(self, model_id: str, directory: Union[str, Path]) -> Path:
        """Write `<id>.pt` (state dict) and `<id>.json` (metadata)."""
        entry = self.registry.get(model_id)
        if entry is None or entry.model is None or entry.metadata is None:
            raise ModelNotReadyError(f"Model {model_id} has nothing to save")

        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        weights_path = directory / f"{model_id}.pt"
        torch.save({"model_state_dict": entry.model.state_dict()}, weights_path)

        payload = {
            "metadata": entry.metadata.to_dict(),
            "normalization": entry.normalization.to_dict() if entry.normalization else None,
            "label_normalization": entry.label_normalization.to_dict() if entry.label_normalization else None,
            "feature_defaults": entry.feature_defaults,
        }
        (directory / f"{model_id}.json").write_text(json.dumps(payload, indent=2))

        logger.info(f"Model {model_id} saved to {weights_path}")
        return weights_path

    def load_model(self, model_id: str, directory: Union[str, Path]) -> ModelMetadata:
        """Restore a model written by `save_model` into the registry."""
        directory = Path(directory)
        payload = json.loads((directory / f"{model_id}.json").read_text())
        metadata = ModelMetadata.from_dict(payload["metadata"])

        model = self.build_model(metadata.model_type)
        checkpoint = torch.load(directory / f"{model_id}.pt", map_location="cpu")
        model.load_state_dict(checkpoint["model_state_dict"])
        model.eval()

        entry = self.registry.entry(model_id, metadata.model_type)
        with entry.lock:
            for previous in entry.lineage:
                previous.superseded = True
            entry.lineage.append(metadata)
            entry.metadata = metadata
            entry.model = model
            entry.status = metadata.status
            entry.normalization = (
                NormalizationParams.from_dict(payload["normalization"]) if payload.get("normalization") else None
            )
            entry.label_normalization = (
                NormalizationParams.from_dict(payload["label_normalization"])
                if payload.get("label_normalization")
                else None
            )
            entry.feature_defaults = dict(payload.get("feature_defaults") or {})

        logger.info(f"Model {model_id} v{metadata.version} loaded from {directory}")
        return metadata


# ═══════════════════════════════════════════════════════════════════════════════
# OUTCOME PREDICTOR
# ═══════════════════════════════════════════════════════════════════════════════

class OutcomePredictor:
    """Predicted outcomes of assigning a resource to a task."""

    def __init__(self, manager: ModelManager, model_id: str = DURATION_MODEL_ID, min_accuracy: float = 0.5):
        self.manager = manager
        self.model_id = model_id
        self.min_accuracy = min_accuracy

    @property
    def is_reliable(self) -> bool:
        metadata = self.manager.registry.metadata(self.model_id)
        return (
            self.manager.registry.is_ready(self.model_id)
            and metadata is not None
            and metadata.accuracy >= self.min_accuracy
        )

    def predict_outcomes(self, task: Task, resource: Resource) -> Dict[str, float]:
        values = self.manager.predict(self.model_id, features_for_allocation(task, resource))
        return {name: float(v) for name, v in zip(LABEL_NAMES, values)}


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def _success_rates(labels: np.ndarray) -> np.ndarray:
    """Success-rate column as a fraction (percentages are rescaled)."""
    rates = labels[:, SUCCESS_RATE_INDEX].astype(np.float32)
    rates = np.where(rates > 1.0, rates / 100.0, rates)
    return np.clip(rates, 0.0, 1.0).astype(np.float32)


def _regression_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    mse = float(mean_squared_error(y_true, y_pred))
    return {
        "mse": mse,
        "rmse": float(np.sqrt(mse)),
        "mae": float(mean_absolute_error(y_true, y_pred)),
    }


