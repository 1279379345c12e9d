"""
Fixtures comuns para os testes do resource engine.
"""
from datetime import timedelta

import pytest

from resource_engine.config import EngineConfig
from resource_engine.domain.types import (
    Constraints,
    OptimizationRequest,
    ResourceCategory,
    ResourceStatus,
    ResourceType,
    TimeHorizon,
)
from resource_engine.persistence.store import InMemoryDataStore

from .factories import START, make_resource, make_task


@pytest.fixture
def fast_config():
    """Small GA and short training so tests stay quick."""
    return EngineConfig(
        population_size=20,
        max_generations=15,
        allocation_model_epochs=5,
        duration_model_epochs=5,
        batch_size=8,
        seed=42,
    )


@pytest.fixture
def single_task():
    return make_task()


@pytest.fixture
def single_worker():
    return make_resource()


@pytest.fixture
def sample_tasks():
    return [
        make_task("T1", days=5),
        make_task("T2", days=3, offset_days=2, unit_price=80.0),
        make_task("T3", days=4, offset_days=5, required_category=ResourceCategory.EQUIPMENT, volume=10, unit_price=900.0),
        make_task("T4", days=2, offset_days=6, unit_price=60.0),
    ]


@pytest.fixture
def sample_resources():
    return [
        make_resource("W1", cost_per_hour=40.0, proficiency=4, completed_allocations=12),
        make_resource("W2", cost_per_hour=55.0, proficiency=5, productivity=1.3),
        make_resource("W3", cost_per_hour=30.0, proficiency=2, status=ResourceStatus.MAINTENANCE),
        make_resource("E1", ResourceType.EQUIPMENT, cost_per_hour=120.0, condition=4),
    ]


@pytest.fixture
def horizon():
    return TimeHorizon(start_date=START - timedelta(days=1), end_date=START + timedelta(days=60))


@pytest.fixture
def make_request(horizon):
    def _make(project_ids=("P1",), budget=None, **kwargs):
        return OptimizationRequest(
            project_ids=tuple(project_ids),
            time_horizon=horizon,
            constraints=Constraints(budget_limit=budget),
            **kwargs,
        )
    return _make


@pytest.fixture
def memory_store(single_task, single_worker):
    return InMemoryDataStore(tasks=[single_task], resources=[single_worker])
