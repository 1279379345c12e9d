"""
Tests for the optimization service (end to end over the in-memory store).
"""
from datetime import datetime, timedelta, timezone

import pytest

from resource_engine.config import EngineConfig
from resource_engine.domain.types import (
    Constraints,
    OptimizationRequest,
    ResourceStatus,
    ResultStatus,
    TimeHorizon,
    WarningCategory,
    WarningSeverity,
)
from resource_engine.errors import DataStoreError
from resource_engine.ml.model_manager import ALLOCATION_MODEL_ID, DURATION_MODEL_ID, ModelManager, ModelStatus
from resource_engine.persistence.store import InMemoryDataStore
from resource_engine.service import (
    ResourceOptimizationService,
    get_resource_optimization_service,
    reset_resource_optimization_service,
    set_resource_optimization_service,
)

from .factories import START, make_resource, make_training_points


class FailingFetchStore(InMemoryDataStore):
    def fetch_tasks_and_resources(self, project_ids, time_horizon=None):
        raise DataStoreError("database unreachable")


class FailingSaveStore(InMemoryDataStore):
    def save_optimization_result(self, result):
        raise DataStoreError("disk full")


class BrokenPredictor:
    is_reliable = True

    def predict_outcomes(self, task, resource):
        raise RuntimeError("predictor exploded")


class BrokenPredictorManager(ModelManager):
    def outcome_predictor(self, model_id=DURATION_MODEL_ID):
        return BrokenPredictor()


@pytest.fixture
def service(memory_store, fast_config):
    return ResourceOptimizationService(memory_store, fast_config)


class TestOptimizeResources:
    """Tests for the happy path."""

    def test_single_task_single_worker(self, service, memory_store, make_request):
        result = service.optimize_resources(make_request(budget=20000))

        assert result.status == ResultStatus.SUCCESS
        assert len(result.genome) == 1
        assert result.genome[0].resource_id == "R1"
        assert result.genome[0].estimated_cost == pytest.approx(4000)
        assert result.critical_warnings == []
        assert 0.0 <= result.confidence_score <= 1.0
        assert len(result.alternatives) == 2
        assert len(result.recommendations) == 1
        assert result.scheduling_plan.project_id == "P1"
        assert memory_store.get_result(result.result_id) is result

    def test_budget_breach_is_a_warning_not_a_failure(self, service, make_request):
        result = service.optimize_resources(make_request(budget=1000))

        assert result.status == ResultStatus.SUCCESS
        assert [w.severity for w in result.critical_warnings] == [WarningSeverity.CRITICAL]

    def test_unknown_goal_still_runs(self, service, make_request):
        result = service.optimize_resources(make_request(optimization_goal="make_it_pretty"))
        assert result.status == ResultStatus.SUCCESS

    def test_preferences_override_ga(self, service, make_request):
        result = service.optimize_resources(make_request(preferences={"max_generations": 3, "ignored": True}))
        assert result.generations_run <= 3

    def test_partial_when_a_project_has_no_tasks(self, service, make_request):
        result = service.optimize_resources(make_request(project_ids=("P1", "P404")))

        assert result.status == ResultStatus.PARTIAL
        assert "P404" in result.reason
        assert result.scheduling_plan.project_id == "all"

    def test_multiple_resources(self, sample_tasks, sample_resources, fast_config, make_request):
        store = InMemoryDataStore(sample_tasks, sample_resources)
        result = ResourceOptimizationService(store, fast_config).optimize_resources(make_request())

        assert result.status == ResultStatus.SUCCESS
        assert [a.task_id for a in result.genome] == ["T1", "T2", "T3", "T4"]
        assert all(a.resource_id != "W3" for a in result.genome)
        assert result.metrics.cost_savings >= 0


class TestFailures:
    """Every input or store problem yields a failed result."""

    def test_no_tasks(self, service, make_request):
        result = service.optimize_resources(make_request(project_ids=("P404",)))

        assert result.status == ResultStatus.FAILED
        assert "No tasks" in result.reason
        assert result.genome == ()

    def test_empty_project_ids(self, service, make_request):
        result = service.optimize_resources(make_request(project_ids=()))
        assert result.status == ResultStatus.FAILED

    def test_inverted_horizon(self, service):
        request = OptimizationRequest(
            project_ids=("P1",),
            time_horizon=TimeHorizon(START, START - timedelta(days=1)),
        )
        result = service.optimize_resources(request)
        assert result.status == ResultStatus.FAILED
        assert "horizon" in result.reason

    def test_no_available_resources(self, single_task, fast_config, make_request):
        store = InMemoryDataStore([single_task], [make_resource(status=ResourceStatus.MAINTENANCE)])
        result = ResourceOptimizationService(store, fast_config).optimize_resources(make_request())

        assert result.status == ResultStatus.FAILED
        assert "resources" in result.reason

    def test_fetch_error(self, single_task, single_worker, fast_config, make_request):
        store = FailingFetchStore([single_task], [single_worker])
        result = ResourceOptimizationService(store, fast_config).optimize_resources(make_request())

        assert result.status == ResultStatus.FAILED
        assert result.error == {"type": "DataStoreError", "message": "database unreachable"}

    def test_save_error(self, single_task, single_worker, fast_config, make_request):
        store = FailingSaveStore([single_task], [single_worker])
        result = ResourceOptimizationService(store, fast_config).optimize_resources(make_request())

        assert result.status == ResultStatus.FAILED
        assert result.error["type"] == "DataStoreError"
        assert len(result.genome) == 1

    def test_invalid_preferences(self, service, make_request):
        result = service.optimize_resources(make_request(preferences={"population_size": 1}))

        assert result.status == ResultStatus.FAILED
        assert result.error["type"] == "InvalidConfigurationError"

    @pytest.mark.parametrize("preferences", [
        {"mutation_rate": "fast"},
        {"mutation_rate": None},
        {"population_size": [20]},
        {"convergence_threshold": {"value": 1}},
    ])
    def test_wrong_typed_preferences(self, service, make_request, preferences):
        result = service.optimize_resources(make_request(preferences=preferences))

        assert result.status == ResultStatus.FAILED
        assert result.error["type"] == "InvalidConfigurationError"
        assert "Invalid optimization preferences" in result.reason

    def test_numeric_string_preferences_are_accepted(self, service, make_request):
        result = service.optimize_resources(make_request(preferences={"mutation_rate": "0.5", "max_generations": "3"}))

        assert result.status == ResultStatus.SUCCESS
        assert result.generations_run <= 3

    def test_predictor_error_becomes_failed_result(self, memory_store, fast_config, make_request):
        service = ResourceOptimizationService(
            memory_store, fast_config, model_manager=BrokenPredictorManager(fast_config)
        )
        result = service.optimize_resources(make_request())

        assert result.status == ResultStatus.FAILED
        assert result.error == {"type": "RuntimeError", "message": "predictor exploded"}
        assert memory_store.results == []

    def test_timeout(self, sample_tasks, sample_resources, make_request):
        config = EngineConfig(
            population_size=60,
            max_generations=300,
            convergence_threshold=0.0,
            timeout_seconds=0.001,
            seed=1,
        )
        store = InMemoryDataStore(sample_tasks, sample_resources)
        result = ResourceOptimizationService(store, config).optimize_resources(make_request())

        assert result.status == ResultStatus.FAILED
        assert "timeout" in result.reason
        assert store.results == []


class TestDeadlines:
    """Deadlines in any timezone compare against stored task dates."""

    def request(self, horizon, deadline):
        return OptimizationRequest(
            project_ids=("P1",),
            time_horizon=horizon,
            constraints=Constraints(deadline_date=deadline),
        )

    def test_aware_deadline_missed_is_a_warning(self, service, horizon):
        deadline = datetime(2025, 3, 5, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        result = service.optimize_resources(self.request(horizon, deadline))

        assert result.status == ResultStatus.SUCCESS
        assert WarningCategory.SCHEDULE_DELAY in [w.category for w in result.warnings]
        assert result.error is None

    def test_aware_deadline_met(self, service, horizon):
        deadline = datetime(2030, 1, 1, 0, 0, tzinfo=timezone.utc)
        result = service.optimize_resources(self.request(horizon, deadline))

        assert result.status == ResultStatus.SUCCESS
        assert WarningCategory.SCHEDULE_DELAY not in [w.category for w in result.warnings]

    def test_naive_deadline_and_offset_horizon(self, service):
        plus_five = timezone(timedelta(hours=5))
        local_start = START.astimezone(plus_five)
        horizon = TimeHorizon(local_start - timedelta(days=1), local_start + timedelta(days=60))
        result = service.optimize_resources(self.request(horizon, datetime(2025, 3, 5, 0, 0)))

        assert result.status == ResultStatus.SUCCESS
        assert len(result.genome) == 1


class TestModels:
    """Tests for model warm-up and training through the service."""

    def test_warm_up_with_empty_history_degrades(self, service, make_request):
        service.optimize_resources(make_request())

        assert service.models_warmed
        assert service.registry.status(DURATION_MODEL_ID) == ModelStatus.DEGRADED

    def test_initialize_models(self, single_task, single_worker, fast_config):
        store = InMemoryDataStore([single_task], [single_worker], {"history": make_training_points(12)})
        service = ResourceOptimizationService(store, fast_config)

        results = service.initialize_models("history")

        assert set(results) == {ALLOCATION_MODEL_ID, DURATION_MODEL_ID}
        assert all(0 < m.training_samples < 12 for m in results.values())
        assert service.registry.is_ready(ALLOCATION_MODEL_ID)
        assert service.registry.is_ready(DURATION_MODEL_ID)

    def test_warm_up_runs_once(self, service, make_request):
        service.optimize_resources(make_request())
        service.optimize_resources(make_request())
        assert [m.version for m in service.registry.lineage(DURATION_MODEL_ID)] == [1]

    def test_train_model_from_store(self, single_task, single_worker, fast_config):
        store = InMemoryDataStore([single_task], [single_worker], {"a": make_training_points(6)})
        service = ResourceOptimizationService(store, fast_config)

        metadata = service.train_model_from_store("custom", "a", "allocation")
        assert metadata.model_type.value == "allocation"
        assert 0 < metadata.training_samples <= 6
        assert service.status()["models"]

    def test_singleton_can_be_replaced(self, service):
        set_resource_optimization_service(service)
        try:
            assert get_resource_optimization_service() is service
        finally:
            reset_resource_optimization_service()
