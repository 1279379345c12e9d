"""
Resource Engine - Feature/Label Builder
=======================================

Turns historical task records into fixed-order numeric vectors for the
regression models.

Features (17, in order):
    task_complexity, task_duration, required_skills_count, budget_amount,
    worker_experience_years, worker_proficiency_level, equipment_age,
    equipment_condition, season_spring, season_summer, season_fall,
    season_winter, weather_severity, site_accessibility,
    previous_projects_count, average_delay_days, average_cost_overrun

Labels (6, in order):
    actual_duration, actual_cost, quality_score, success_rate, delay_days,
    cost_overrun_percentage

Missing values are filled with the dataset median of the field; the constant
tables below are used only when no record in the dataset carries the field.
Normalization parameters are computed once per dataset and then reused
verbatim at inference time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from resource_engine.domain.types import Resource, ResourceCategory, Task, TrainingDataPoint

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# FEATURE SCHEMA
# ═══════════════════════════════════════════════════════════════════════════════

SEASONS = ("spring", "summer", "fall", "winter")

FEATURE_NAMES: Tuple[str, ...] = (
    "task_complexity",
    "task_duration",
    "required_skills_count",
    "budget_amount",
    "worker_experience_years",
    "worker_proficiency_level",
    "equipment_age",
    "equipment_condition",
    "season_spring",
    "season_summer",
    "season_fall",
    "season_winter",
    "weather_severity",
    "site_accessibility",
    "previous_projects_count",
    "average_delay_days",
    "average_cost_overrun",
)

LABEL_NAMES: Tuple[str, ...] = (
    "actual_duration",
    "actual_cost",
    "quality_score",
    "success_rate",
    "delay_days",
    "cost_overrun_percentage",
)

NUM_FEATURES = len(FEATURE_NAMES)
NUM_LABELS = len(LABEL_NAMES)

# Fallbacks used only when no record in a dataset carries the field
DEFAULT_FEATURE_VALUES: Dict[str, float] = {
    "task_complexity": 5.0,
    "task_duration": 10.0,
    "required_skills_count": 2.0,
    "budget_amount": 10000.0,
    "worker_experience_years": 5.0,
    "worker_proficiency_level": 3.0,
    "equipment_age": 3.0,
    "equipment_condition": 3.0,
    "season_spring": 0.0,
    "season_summer": 0.0,
    "season_fall": 0.0,
    "season_winter": 0.0,
    "weather_severity": 0.3,
    "site_accessibility": 0.7,
    "previous_projects_count": 5.0,
    "average_delay_days": 2.0,
    "average_cost_overrun": 5.0,
}

DEFAULT_LABEL_VALUES: Dict[str, float] = {
    "actual_duration": 10.0,
    "actual_cost": 10000.0,
    "quality_score": 75.0,
    "success_rate": 0.8,
    "delay_days": 1.0,
    "cost_overrun_percentage": 5.0,
}

WEATHER_SEVERITY: Dict[str, float] = {
    "clear": 0.0,
    "sunny": 0.0,
    "cloudy": 0.2,
    "windy": 0.4,
    "rain": 0.5,
    "rainy": 0.5,
    "snow": 0.8,
    "storm": 0.9,
    "extreme": 1.0,
}


def season_for(moment: datetime) -> str:
    """Northern-hemisphere meteorological season of a date."""
    month = moment.month
    if month in (3, 4, 5):
        return "spring"
    if month in (6, 7, 8):
        return "summer"
    if month in (9, 10, 11):
        return "fall"
    return "winter"


# ═══════════════════════════════════════════════════════════════════════════════
# RECORD FLATTENING
# ═══════════════════════════════════════════════════════════════════════════════

def flatten_features(features: Mapping[str, Any]) -> Dict[str, float]:
    """
    Map a raw feature record onto the numeric feature names.

    Only the fields the record actually carries (directly or through the
    season/weather/skills encodings) are returned.
    """
    flat: Dict[str, float] = {}

    for name in FEATURE_NAMES:
        value = features.get(name)
        if value is not None and not name.startswith("season_"):
            flat[name] = float(value)

    if "required_skills_count" not in flat and features.get("required_skills") is not None:
        flat["required_skills_count"] = float(len(features["required_skills"]))

    # Season one-hot
    season = features.get("season")
    if isinstance(season, str) and season.lower() in SEASONS:
        for s in SEASONS:
            flat[f"season_{s}"] = 1.0 if s == season.lower() else 0.0
    elif any(features.get(f"season_{s}") is not None for s in SEASONS):
        for s in SEASONS:
            flat[f"season_{s}"] = float(features.get(f"season_{s}") or 0.0)

    if "weather_severity" not in flat:
        weather = features.get("weather") or features.get("weather_conditions")
        if isinstance(weather, str):
            flat["weather_severity"] = WEATHER_SEVERITY.get(weather.lower(), 0.5)

    return flat


def flatten_labels(labels: Mapping[str, Any]) -> Dict[str, float]:
    return {name: float(labels[name]) for name in LABEL_NAMES if labels.get(name) is not None}


def compute_defaults(
    records: Iterable[Mapping[str, float]],
    names: Sequence[str],
    fallback: Mapping[str, float],
) -> Dict[str, float]:
    """Median of each field over the records that carry it."""
    frame = pd.DataFrame(list(records), columns=list(names))
    medians = frame.median(axis=0, skipna=True, numeric_only=True)

    defaults: Dict[str, float] = {}
    for name in names:
        value = medians.get(name) if name in medians.index else None
        defaults[name] = float(value) if value is not None and not pd.isna(value) else float(fallback[name])
    return defaults


# ═══════════════════════════════════════════════════════════════════════════════
# VECTOR BUILDERS
# ═══════════════════════════════════════════════════════════════════════════════

def build_feature_vector(
    features: Mapping[str, Any],
    defaults: Optional[Mapping[str, float]] = None,
) -> np.ndarray:
    """Fixed-order feature vector; missing fields take the supplied defaults."""
    defaults = defaults or DEFAULT_FEATURE_VALUES
    flat = flatten_features(features)
    return np.array(
        [flat.get(name, defaults.get(name, DEFAULT_FEATURE_VALUES[name])) for name in FEATURE_NAMES],
        dtype=np.float32,
    )


def build_label_vector(
    labels: Mapping[str, Any],
    defaults: Optional[Mapping[str, float]] = None,
) -> np.ndarray:
    defaults = defaults or DEFAULT_LABEL_VALUES
    flat = flatten_labels(labels)
    return np.array(
        [flat.get(name, defaults.get(name, DEFAULT_LABEL_VALUES[name])) for name in LABEL_NAMES],
        dtype=np.float32,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# NORMALIZATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class NormalizationParams:
    """Per-column statistics of a matrix."""
    mean: List[float]
    std: List[float]
    min: List[float]
    max: List[float]

    def to_dict(self) -> Dict[str, List[float]]:
        return {"mean": self.mean, "std": self.std, "min": self.min, "max": self.max}

    @classmethod
    def from_dict(cls, data: Mapping[str, Sequence[float]]) -> "NormalizationParams":
        return cls(
            mean=[float(v) for v in data["mean"]],
            std=[float(v) for v in data["std"]],
            min=[float(v) for v in data["min"]],
            max=[float(v) for v in data["max"]],
        )


def compute_normalization_params(matrix: np.ndarray) -> NormalizationParams:
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        width = matrix.shape[1] if matrix.ndim == 2 else 0
        zeros = [0.0] * width
        return NormalizationParams(mean=zeros, std=[1.0] * width, min=zeros, max=zeros)
    return NormalizationParams(
        mean=matrix.mean(axis=0).tolist(),
        std=matrix.std(axis=0).tolist(),
        min=matrix.min(axis=0).tolist(),
        max=matrix.max(axis=0).tolist(),
    )


def _safe_std(params: NormalizationParams) -> np.ndarray:
    std = np.asarray(params.std, dtype=np.float64)
    return np.where(std == 0, 1.0, std)


def apply_normalization(matrix: np.ndarray, params: NormalizationParams) -> np.ndarray:
    """Z-score a matrix (or single vector); a zero std is treated as 1."""
    matrix = np.asarray(matrix, dtype=np.float64)
    normalized = (matrix - np.asarray(params.mean)) / _safe_std(params)
    return normalized.astype(np.float32)


def invert_normalization(matrix: np.ndarray, params: NormalizationParams) -> np.ndarray:
    matrix = np.asarray(matrix, dtype=np.float64)
    return matrix * _safe_std(params) + np.asarray(params.mean)


# ═══════════════════════════════════════════════════════════════════════════════
# DATASET
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class TrainingDataset:
    """Historical records plus the statistics derived from them."""
    dataset_id: str
    name: str
    data_points: List[TrainingDataPoint] = field(default_factory=list)
    description: str = ""
    split_ratio: Tuple[float, float, float] = (0.7, 0.15, 0.15)

    normalization_params: Optional[NormalizationParams] = None
    label_normalization: Optional[NormalizationParams] = None
    feature_defaults: Dict[str, float] = field(default_factory=dict)
    label_defaults: Dict[str, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.data_points)

    @property
    def is_empty(self) -> bool:
        return not self.data_points

    def ensure_normalization(self) -> NormalizationParams:
        """Compute defaults and normalization once; later calls are no-ops."""
        if self.normalization_params is not None:
            return self.normalization_params

        self.feature_defaults = compute_defaults(
            (flatten_features(p.features) for p in self.data_points),
            FEATURE_NAMES,
            DEFAULT_FEATURE_VALUES,
        )
        self.label_defaults = compute_defaults(
            (flatten_labels(p.labels) for p in self.data_points),
            LABEL_NAMES,
            DEFAULT_LABEL_VALUES,
        )
        self.normalization_params = compute_normalization_params(self.feature_matrix())
        self.label_normalization = compute_normalization_params(self.label_matrix())

        logger.debug(f"Normalization computed for dataset {self.dataset_id} ({len(self)} points)")
        return self.normalization_params

    def feature_matrix(self) -> np.ndarray:
        if not self.data_points:
            return np.zeros((0, NUM_FEATURES), dtype=np.float32)
        return np.stack([build_feature_vector(p.features, self.feature_defaults) for p in self.data_points])

    def label_matrix(self) -> np.ndarray:
        if not self.data_points:
            return np.zeros((0, NUM_LABELS), dtype=np.float32)
        return np.stack([build_label_vector(p.labels, self.label_defaults) for p in self.data_points])

    def split_indices(self, seed: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Shuffle and split into train/validation/test index arrays (train >= 1)."""
        n = len(self.data_points)
        order = np.random.default_rng(seed).permutation(n)
        if n == 0:
            return order, order, order

        train_ratio, val_ratio, _ = self.split_ratio
        n_train = min(n, max(1, int(round(n * train_ratio))))
        n_val = min(n - n_train, int(round(n * val_ratio)))
        return order[:n_train], order[n_train:n_train + n_val], order[n_train + n_val:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dataset_id": self.dataset_id,
            "name": self.name,
            "description": self.description,
            "size": len(self),
            "split_ratio": list(self.split_ratio),
            "normalization_params": self.normalization_params.to_dict() if self.normalization_params else None,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# INFERENCE FEATURES
# ═══════════════════════════════════════════════════════════════════════════════

def features_for_allocation(task: Task, resource: Resource) -> Dict[str, Any]:
    """
    Inference-time feature record for assigning `resource` to `task`.

    Fields the resource does not describe are left out so the model's stored
    defaults fill them.
    """
    meta = resource.metadata
    record: Dict[str, Any] = {
        "task_complexity": task.complexity,
        "task_duration": task.duration_days,
        "required_skills_count": len(task.required_skills),
        "budget_amount": task.baseline_cost,
        "season": season_for(task.planned_start),
        "previous_projects_count": resource.completed_allocations,
    }

    if resource.category == ResourceCategory.WORKER:
        if meta.get("experience_years") is not None:
            record["worker_experience_years"] = meta["experience_years"]
        if meta.get("proficiency") is not None:
            record["worker_proficiency_level"] = meta["proficiency"]
    elif resource.category == ResourceCategory.EQUIPMENT:
        if meta.get("equipment_age") is not None:
            record["equipment_age"] = meta["equipment_age"]
        if meta.get("condition") is not None:
            record["equipment_condition"] = meta["condition"]

    for key in ("weather", "weather_severity", "site_accessibility", "average_delay_days", "average_cost_overrun"):
        if meta.get(key) is not None:
            record[key] = meta[key]

    return record
