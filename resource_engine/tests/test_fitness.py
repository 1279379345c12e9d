"""
Tests for fitness sub-scores, penalties and the resource load sweep.
"""
import pytest

from resource_engine.domain.types import Constraints, FitnessFunction, ResourceType, plan_allocation
from resource_engine.optimization.fitness import FitnessEvaluator, allocation_quality, peak_concurrent_load

from .factories import START, make_resource, make_task


class TestFitness:
    """Tests for FitnessEvaluator sub-scores and penalties."""

    def test_cost_score_against_budget(self, single_task, single_worker):
        genome = (plan_allocation(single_task, single_worker, 100, 8),)
        evaluator = FitnessEvaluator([single_task], [single_worker], Constraints(budget_limit=8000))
        assert evaluator.cost_score(genome) == pytest.approx(0.5)

    def test_cost_score_against_baseline(self, single_task, single_worker):
        genome = (plan_allocation(single_task, single_worker, 100, 8),)
        evaluator = FitnessEvaluator([single_task], [single_worker])
        assert evaluator.cost_score(genome) == pytest.approx(1 - 4000 / 15000)

    def test_time_score(self, single_task, single_worker):
        evaluator = FitnessEvaluator([single_task], [single_worker], fitness_function=FitnessFunction.TIME)
        full = (plan_allocation(single_task, single_worker, 100, 8),)
        half = (plan_allocation(single_task, single_worker, 50, 8),)
        assert evaluator.evaluate(full) == pytest.approx(1.0)
        assert evaluator.evaluate(half) == pytest.approx(0.5)

    def test_budget_violation_penalized(self, single_task, single_worker):
        genome = (plan_allocation(single_task, single_worker, 100, 8),)
        within = FitnessEvaluator([single_task], [single_worker], Constraints(budget_limit=5000),
                                  fitness_function=FitnessFunction.TIME)
        over = FitnessEvaluator([single_task], [single_worker], Constraints(budget_limit=1000),
                                fitness_function=FitnessFunction.TIME)
        assert within.breakdown(genome).violations == 0
        assert over.breakdown(genome).violations == 1
        assert over.evaluate(genome) == pytest.approx(within.evaluate(genome) - 0.1)

    def test_fitness_floored_at_zero(self, single_task, single_worker):
        genome = (plan_allocation(single_task, single_worker, 100, 8),)
        evaluator = FitnessEvaluator(
            [single_task], [single_worker],
            Constraints(budget_limit=100, deadline_date=START),
            fitness_function=FitnessFunction.COST,
        )
        assert evaluator.evaluate(genome) == 0.0

    def test_resource_cap(self, sample_resources):
        t1 = make_task("A", days=4)
        t2 = make_task("B", days=4, offset_days=1)
        worker = sample_resources[0]
        genome = (plan_allocation(t1, worker, 60, 8), plan_allocation(t2, worker, 60, 8))

        assert peak_concurrent_load(genome)[worker.id] == pytest.approx(120)
        evaluator = FitnessEvaluator([t1, t2], [worker])
        assert evaluator.count_violations(genome) == 1

    def test_back_to_back_allocations_do_not_overlap(self, single_worker):
        t1 = make_task("A", days=2)
        t2 = make_task("B", days=2, offset_days=2)
        genome = (plan_allocation(t1, single_worker, 100, 8), plan_allocation(t2, single_worker, 100, 8))
        assert peak_concurrent_load(genome)[single_worker.id] == pytest.approx(100)

    def test_unreliable_predictor_ignored(self, single_task, single_worker):
        class Unreliable:
            is_reliable = False

            def predict_outcomes(self, task, resource):
                raise AssertionError("should not be called")

        genome = (plan_allocation(single_task, single_worker, 100, 8),)
        evaluator = FitnessEvaluator([single_task], [single_worker], predictor=Unreliable())
        assert evaluator.use_predictions is False
        assert evaluator.adjusted_cost(genome) == pytest.approx(4000)

    def test_reliable_predictor_adjusts_low_confidence_cost(self, single_task):
        class Reliable:
            is_reliable = True

            def predict_outcomes(self, task, resource):
                return {"cost_overrun_percentage": 10.0, "quality_score": 100.0}

        newcomer = make_resource("new", completed_allocations=0)
        veteran = make_resource("vet", completed_allocations=20)
        evaluator = FitnessEvaluator([single_task], [newcomer, veteran], predictor=Reliable())

        assert evaluator.adjusted_cost((plan_allocation(single_task, newcomer, 100, 8),)) == pytest.approx(4400)
        assert evaluator.adjusted_cost((plan_allocation(single_task, veteran, 100, 8),)) == pytest.approx(4000)

    def test_quality_prefers_matching_category(self, single_task):
        worker = make_resource("w", proficiency=3)
        machine = make_resource("m", ResourceType.EQUIPMENT, condition=3)
        evaluator = FitnessEvaluator([single_task], [worker, machine], fitness_function=FitnessFunction.QUALITY)
        assert evaluator.evaluate((plan_allocation(single_task, worker, 100, 8),)) > evaluator.evaluate(
            (plan_allocation(single_task, machine, 100, 8),)
        )

    def test_allocation_quality_default_level(self, single_task):
        assert allocation_quality(single_task, make_resource()) == pytest.approx(0.75)
        assert allocation_quality(single_task, make_resource(proficiency=5)) == pytest.approx(1.0)
