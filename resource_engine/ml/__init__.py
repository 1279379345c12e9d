"""
ML Module - Outcome Models
==========================

Components:
- Feature/Label Builder: fixed-order vectors, dataset defaults, normalization
- Networks: success-bin classifier and LSTM outcome regressor (PyTorch)
- Model Manager: training, inference, registry and persistence
"""

from .features import (
    FEATURE_NAMES,
    LABEL_NAMES,
    NormalizationParams,
    TrainingDataset,
    apply_normalization,
    build_feature_vector,
    build_label_vector,
    compute_normalization_params,
    features_for_allocation,
)
from .model_manager import (
    ALLOCATION_MODEL_ID,
    DURATION_MODEL_ID,
    ModelManager,
    ModelMetadata,
    ModelRegistry,
    ModelStatus,
    ModelType,
    OutcomePredictor,
)
from .networks import DurationPredictionNet, ResourceAllocationNet

__all__ = [
    "FEATURE_NAMES",
    "LABEL_NAMES",
    "NormalizationParams",
    "TrainingDataset",
    "apply_normalization",
    "build_feature_vector",
    "build_label_vector",
    "compute_normalization_params",
    "features_for_allocation",
    "ALLOCATION_MODEL_ID",
    "DURATION_MODEL_ID",
    "ModelManager",
    "ModelMetadata",
    "ModelRegistry",
    "ModelStatus",
    "ModelType",
    "OutcomePredictor",
    "DurationPredictionNet",
    "ResourceAllocationNet",
]
