"""
Resource Engine - Data Store Interface
======================================

Boundary between the engine and the persistence layer. All reads happen
before the GA starts; the only write is the final result.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from resource_engine.domain.types import (
    OptimizationResult,
    Resource,
    Task,
    TimeHorizon,
    TrainingDataPoint,
)

logger = logging.getLogger(__name__)


class ResourceDataStore(ABC):
    """Abstract data store used by the orchestrator."""

    @abstractmethod
    def fetch_tasks_and_resources(
        self,
        project_ids: Sequence[str],
        time_horizon: Optional[TimeHorizon] = None,
    ) -> Tuple[List[Task], List[Resource]]:
        """
        Tasks of the given projects that overlap the horizon, plus every
        resource that could be assigned to them.
        """
        pass

    @abstractmethod
    def load_training_data(self, dataset_id: Optional[str] = None) -> List[TrainingDataPoint]:
        """Historical records of one dataset, or of all datasets when None."""
        pass

    @abstractmethod
    def save_optimization_result(self, result: OptimizationResult) -> str:
        """Persist a result and return its id."""
        pass


def overlaps_horizon(task: Task, time_horizon: Optional[TimeHorizon]) -> bool:
    if time_horizon is None:
        return True
    return task.planned_start <= time_horizon.end_date and task.planned_end >= time_horizon.start_date


class InMemoryDataStore(ResourceDataStore):
    """Dict-backed store for tests, scripts and the dev server."""

    def __init__(
        self,
        tasks: Optional[Iterable[Task]] = None,
        resources: Optional[Iterable[Resource]] = None,
        training_data: Optional[Dict[str, List[TrainingDataPoint]]] = None,
    ):
        self._tasks: List[Task] = list(tasks or [])
        self._resources: List[Resource] = list(resources or [])
        self._training: Dict[str, List[TrainingDataPoint]] = {
            k: list(v) for k, v in (training_data or {}).items()
        }
        self._results: Dict[str, OptimizationResult] = {}
        self._lock = threading.Lock()

    def add_tasks(self, tasks: Iterable[Task]) -> None:
        with self._lock:
            self._tasks.extend(tasks)

    def add_resources(self, resources: Iterable[Resource]) -> None:
        with self._lock:
            self._resources.extend(resources)

    def add_training_data(self, dataset_id: str, points: Iterable[TrainingDataPoint]) -> None:
        with self._lock:
            self._training.setdefault(dataset_id, []).extend(points)

    def fetch_tasks_and_resources(self, project_ids, time_horizon=None):
        wanted = set(project_ids)
        tasks = [t for t in self._tasks if t.project_id in wanted and overlaps_horizon(t, time_horizon)]
        return tasks, list(self._resources)

    def load_training_data(self, dataset_id=None):
        if dataset_id is None:
            return [p for points in self._training.values() for p in points]
        return list(self._training.get(dataset_id, []))

    def save_optimization_result(self, result):
        with self._lock:
            self._results[result.result_id] = result
        logger.info(f"Result {result.result_id} stored ({result.status.value})")
        return result.result_id

    def get_result(self, result_id: str) -> Optional[OptimizationResult]:
        return self._results.get(result_id)

    @property
    def results(self) -> List[OptimizationResult]:
        return list(self._results.values())
