"""
Resource Engine - Exceptions
============================

Error taxonomy shared by the optimizer, the model manager and the stores.
The orchestrator turns these into failed results; only the HTTP layer and
direct library callers ever see them raised.
"""

from __future__ import annotations

from typing import List, Optional


class ResourceEngineError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidConfigurationError(ResourceEngineError, ValueError):
    """Raised when a GA or engine configuration is out of range."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class InvalidRequestError(ResourceEngineError, ValueError):
    """Raised when an optimization request is malformed."""
    pass


class EmptyProblemError(ResourceEngineError):
    """Raised when no genome can be built (no tasks or no available resources)."""

    def __init__(self, message: str, task_count: int = 0, resource_count: int = 0):
        super().__init__(message)
        self.task_count = task_count
        self.resource_count = resource_count


class ModelNotReadyError(ResourceEngineError, LookupError):
    """Raised when predicting with a model that is not trained."""
    pass


class DataStoreError(ResourceEngineError):
    """Raised by store implementations when the backing store fails."""
    pass
