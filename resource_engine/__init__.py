"""
Resource Engine - AI-driven Resource Optimization
==================================================

Assigns workers, equipment and materials to project tasks under budget and
deadline constraints, combining PyTorch outcome models with a genetic
algorithm search.

Components:
- domain: dataclass model, enums and HTTP schemas
- ml: feature builder, networks, model manager and registry
- optimization: fitness, genetic algorithm and result analysis
- persistence: data store interface, in-memory and SQLAlchemy stores
- service: optimization orchestrator
- api: FastAPI router
"""

from .config import EngineConfig, configure_logging
from .errors import (
    DataStoreError,
    EmptyProblemError,
    InvalidConfigurationError,
    InvalidRequestError,
    ModelNotReadyError,
    ResourceEngineError,
)
from .service import ResourceOptimizationService

__version__ = "1.0.0"

__all__ = [
    "EngineConfig",
    "configure_logging",
    "ResourceOptimizationService",
    "ResourceEngineError",
    "InvalidConfigurationError",
    "InvalidRequestError",
    "EmptyProblemError",
    "ModelNotReadyError",
    "DataStoreError",
]
