"""
Resource Engine - Optimization Service
======================================

Orchestrates one optimization run:

    validate -> fetch -> warm models -> GA -> analysis -> persist

`optimize_resources` always returns an OptimizationResult. Input problems,
empty problems, store failures, timeouts and unexpected errors inside the run
become `failed` results with the error preserved. A model that fails to train
only degrades fitness to direct cost. Constraint breaches are warnings on a
successful result.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import replace
from typing import Any, Dict, List, Optional

from resource_engine.config import EngineConfig
from resource_engine.domain.types import (
    OptimizationRequest,
    OptimizationResult,
    ResultStatus,
    map_optimization_goal,
)
from resource_engine.errors import EmptyProblemError, InvalidConfigurationError
from resource_engine.ml.features import TrainingDataset
from resource_engine.ml.model_manager import (
    ALLOCATION_MODEL_ID,
    DURATION_MODEL_ID,
    ModelManager,
    ModelMetadata,
    ModelRegistry,
    ModelType,
)
from resource_engine.optimization.analysis import (
    calculate_metrics,
    create_scheduling_plan,
    detect_warnings,
    generate_alternatives,
    generate_recommendations,
)
from resource_engine.optimization.genetic import GeneticAlgorithmOptimizer, GeneticAlgorithmResult
from resource_engine.persistence.store import ResourceDataStore

logger = logging.getLogger(__name__)

# Request preferences that may override GA parameters
GA_PREFERENCE_KEYS = (
    "population_size",
    "max_generations",
    "mutation_rate",
    "crossover_rate",
    "elitism_rate",
    "selection_method",
    "tournament_size",
    "convergence_threshold",
    "seed",
)


def _error_info(error: BaseException) -> Dict[str, str]:
    return {"type": type(error).__name__, "message": str(error)}


class ResourceOptimizationService:
    """
    Main service for resource optimization.

    Provides:
    - optimize_resources: full optimization run for a request
    - initialize_models: train both models from the store's history
    - train_model_from_store: retrain one model on demand
    """

    def __init__(
        self,
        store: ResourceDataStore,
        config: Optional[EngineConfig] = None,
        registry: Optional[ModelRegistry] = None,
        model_manager: Optional[ModelManager] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.models = model_manager or ModelManager(self.config, registry)
        self._models_warmed = False
        self._warm_lock = threading.Lock()

    @property
    def registry(self) -> ModelRegistry:
        return self.models.registry

    @property
    def models_warmed(self) -> bool:
        return self._models_warmed

    # ═══════════════════════════════════════════════════════════════════════════
    # MODELS
    # ═══════════════════════════════════════════════════════════════════════════

    def initialize_models(self, dataset_id: Optional[str] = None) -> Dict[str, ModelMetadata]:
        """Train the allocation and duration models on one shared dataset."""
        points = self.store.load_training_data(dataset_id)
        dataset = TrainingDataset(
            dataset_id=dataset_id or "all",
            name=f"Training data ({dataset_id or 'all datasets'})",
            data_points=points,
        )

        results = {
            ALLOCATION_MODEL_ID: self.models.train_model(
                ALLOCATION_MODEL_ID, self.models.build_resource_allocation_model(), dataset
            ),
            DURATION_MODEL_ID: self.models.train_model(
                DURATION_MODEL_ID, self.models.build_duration_prediction_model(), dataset
            ),
        }
        self._models_warmed = True
        return results

    def train_model_from_store(
        self,
        model_id: str,
        dataset_id: Optional[str] = None,
        model_type: str = ModelType.DURATION.value,
    ) -> ModelMetadata:
        points = self.store.load_training_data(dataset_id)
        dataset = TrainingDataset(
            dataset_id=dataset_id or "all",
            name=f"Training data ({dataset_id or 'all datasets'})",
            data_points=points,
        )
        return self.models.train_model(model_id, self.models.build_model(model_type), dataset)

    def _warm_models(self) -> None:
        with self._warm_lock:
            if self._models_warmed:
                return
            try:
                self.initialize_models()
            except Exception as e:
                logger.warning(f"Model warm-up failed, continuing with direct-cost fitness: {e}")

    # ═══════════════════════════════════════════════════════════════════════════
    # OPTIMIZATION
    # ═══════════════════════════════════════════════════════════════════════════

    def validate_request(self, request: OptimizationRequest) -> List[str]:
        problems = []
        if not request.project_ids:
            problems.append("Request has no project ids")
        if request.time_horizon is None:
            problems.append("Request has no time horizon")
        elif not request.time_horizon.is_well_formed:
            problems.append("Time horizon ends before it starts")
        return problems

    def optimize_resources(self, request: OptimizationRequest) -> OptimizationResult:
        """Run a full optimization for `request`. Never raises for input or store problems."""
        started = time.perf_counter()
        logger.info(f"Optimization {request.request_id} started for projects {list(request.project_ids)}")

        problems = self.validate_request(request)
        if problems:
            return self._failed(request, started, "; ".join(problems))

        try:
            tasks, resources = self.store.fetch_tasks_and_resources(request.project_ids, request.time_horizon)
        except Exception as e:
            logger.exception(f"Fetching data for {request.request_id} failed")
            return self._failed(request, started, "Failed to fetch tasks and resources", error=e)

        available = [r for r in resources if r.is_available]
        if not tasks:
            return self._failed(request, started, "No tasks found for the requested projects and time horizon")
        if not available:
            return self._failed(request, started, "No available resources to allocate")

        self._warm_models()

        try:
            ga_config = self.config.ga_config(
                fitness_function=map_optimization_goal(request.optimization_goal),
                **{k: v for k, v in request.preferences.items() if k in GA_PREFERENCE_KEYS},
            )
        except InvalidConfigurationError as e:
            return self._failed(request, started, f"Invalid optimization preferences: {e.problems}", error=e)
        except (TypeError, ValueError) as e:
            return self._failed(request, started, f"Invalid optimization preferences: {e}", error=e)

        try:
            optimizer = GeneticAlgorithmOptimizer(
                ga_config,
                predictor=self.models.outcome_predictor(),
                low_confidence_threshold=self.config.low_confidence_history_threshold,
            )
            ga_result = self._run_ga(optimizer, tasks, resources, request)
        except FutureTimeoutError as e:
            return self._failed(
                request, started, f"Optimization exceeded {self.config.timeout_seconds}s timeout", error=e
            )
        except EmptyProblemError as e:
            return self._failed(request, started, str(e))
        except Exception as e:
            logger.exception(f"Genetic algorithm for {request.request_id} failed")
            return self._failed(request, started, "Optimization failed", error=e)

        try:
            result = self._build_result(request, ga_result, tasks, resources, started)
        except Exception as e:
            logger.exception(f"Analysing result for {request.request_id} failed")
            return self._failed(request, started, "Result analysis failed", error=e)

        try:
            self.store.save_optimization_result(result)
        except Exception as e:
            logger.exception(f"Persisting result {result.result_id} failed")
            return replace(
                result,
                status=ResultStatus.FAILED,
                reason="Failed to persist optimization result",
                error=_error_info(e),
            )

        logger.info(
            f"Optimization {request.request_id} finished: status={result.status.value}, "
            f"fitness={result.confidence_score:.4f}, warnings={len(result.warnings)}"
        )
        return result

    def _run_ga(self, optimizer, tasks, resources, request) -> GeneticAlgorithmResult:
        timeout = self.config.timeout_seconds
        if not timeout:
            return optimizer.optimize(tasks, resources, request.constraints)

        # The GA thread is not cancelled; it finishes in the background.
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(optimizer.optimize, tasks, resources, request.constraints)
            return future.result(timeout=timeout)
        finally:
            executor.shutdown(wait=False)

    def _build_result(self, request, ga_result, tasks, resources, started) -> OptimizationResult:
        genome = ga_result.best_individual
        constraints = request.constraints

        covered = {t.project_id for t in tasks}
        missing = [p for p in request.project_ids if p not in covered]
        status = ResultStatus.PARTIAL if missing else ResultStatus.SUCCESS

        plan_project = request.project_ids[0] if len(request.project_ids) == 1 else None

        return OptimizationResult(
            request_id=request.request_id,
            status=status,
            confidence_score=ga_result.best_fitness,
            genome=genome,
            recommendations=tuple(generate_recommendations(genome, tasks, resources)),
            scheduling_plan=create_scheduling_plan(genome, tasks, plan_project),
            metrics=calculate_metrics(genome, tasks, resources, constraints),
            warnings=tuple(detect_warnings(genome, constraints, resources)),
            alternatives=generate_alternatives(
                ga_result.fitness_history,
                tasks,
                resources,
                self.config.hours_per_day,
                self.config.min_allocation_percentage,
            ),
            generations_run=ga_result.generations_run,
            convergence_generation=ga_result.convergence_generation,
            fitness_history=ga_result.fitness_history,
            reason=f"No tasks found for projects: {', '.join(missing)}" if missing else None,
            computation_time_ms=(time.perf_counter() - started) * 1000,
        )

    def _failed(
        self,
        request: OptimizationRequest,
        started: float,
        reason: str,
        error: Optional[BaseException] = None,
    ) -> OptimizationResult:
        logger.warning(f"Optimization {request.request_id} failed: {reason}")
        return OptimizationResult(
            request_id=request.request_id,
            status=ResultStatus.FAILED,
            reason=reason,
            error=_error_info(error) if error is not None else None,
            computation_time_ms=(time.perf_counter() - started) * 1000,
        )

    def status(self) -> Dict[str, Any]:
        return {
            "models_warmed": self._models_warmed,
            "models": self.registry.summary(),
            "config": {
                "population_size": self.config.population_size,
                "max_generations": self.config.max_generations,
                "timeout_seconds": self.config.timeout_seconds,
            },
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_service_instance: Optional[ResourceOptimizationService] = None


def get_resource_optimization_service() -> ResourceOptimizationService:
    """Get singleton service instance backed by the configured database."""
    global _service_instance
    if _service_instance is None:
        from resource_engine.config import get_config
        from resource_engine.persistence.sql_store import SqlAlchemyDataStore

        config = get_config()
        _service_instance = ResourceOptimizationService(SqlAlchemyDataStore(config.database_url), config)
    return _service_instance


def set_resource_optimization_service(service: Optional[ResourceOptimizationService]) -> None:
    global _service_instance
    _service_instance = service


def reset_resource_optimization_service() -> None:
    """Reset singleton."""
    global _service_instance
    _service_instance = None
