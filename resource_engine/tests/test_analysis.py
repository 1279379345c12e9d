"""
Tests for metrics, warnings, alternatives and the scheduling plan.
"""
from datetime import timedelta

import pytest

from resource_engine.domain.types import (
    Constraints,
    WarningCategory,
    WarningSeverity,
    plan_allocation,
)
from resource_engine.optimization.analysis import (
    calculate_metrics,
    create_scheduling_plan,
    detect_warnings,
    generate_alternatives,
    generate_recommendations,
)

from .factories import START, make_resource, make_task


def allocate(task, resource, pct=100):
    return plan_allocation(task, resource, pct, 8)


class TestMetrics:
    """Tests for calculate_metrics."""

    def test_single_allocation(self, single_task, single_worker):
        metrics = calculate_metrics((allocate(single_task, single_worker),), [single_task], [single_worker])

        assert metrics.cost_savings == pytest.approx(11000)
        assert metrics.cost_savings_percentage == pytest.approx(11000 / 15000 * 100)
        assert metrics.resource_utilization_avg == pytest.approx(100)
        assert metrics.quality_score_avg == pytest.approx(75)
        assert metrics.feasibility_score == 1.0
        assert metrics.conflicts_remaining == 0

    def test_savings_never_negative(self, single_worker):
        task = make_task(unit_price=1.0)
        metrics = calculate_metrics((allocate(task, single_worker, 50),), [task], [single_worker])

        assert metrics.cost_savings == 0.0
        assert metrics.cost_savings_percentage == 0.0
        assert metrics.time_savings == 0.0
        assert metrics.time_savings_percentage == 0.0

    def test_empty_genome(self, single_task, single_worker):
        metrics = calculate_metrics((), [single_task], [single_worker])
        assert metrics.resource_utilization_avg == 0.0
        assert metrics.feasibility_score == 0.0

    def test_late_allocation_is_infeasible(self, single_task, single_worker):
        constraints = Constraints(deadline_date=START + timedelta(days=5))
        metrics = calculate_metrics(
            (allocate(single_task, single_worker),), [single_task], [single_worker], constraints
        )
        assert metrics.feasibility_score == 0.0


class TestWarnings:
    """Tests for detect_warnings."""

    def test_no_constraints_no_warnings(self, single_task, single_worker):
        assert detect_warnings((allocate(single_task, single_worker),), None) == []

    def test_over_budget_single_allocation(self, single_task, single_worker):
        genome = (allocate(single_task, single_worker),)
        warnings = detect_warnings(genome, Constraints(budget_limit=3000))

        assert len(warnings) == 1
        warning = warnings[0]
        assert warning.category == WarningCategory.BUDGET_OVERRUN
        assert warning.severity == WarningSeverity.CRITICAL
        assert warning.details["overrun_amount"] == pytest.approx(1000)

    def test_budget_crossed_reports_first_crossing(self, single_worker):
        t1, t2 = make_task("A"), make_task("B", offset_days=20)
        genome = (allocate(t1, single_worker), allocate(t2, single_worker))
        warnings = detect_warnings(genome, Constraints(budget_limit=5000))

        critical = [w for w in warnings if w.severity == WarningSeverity.CRITICAL]
        assert len(critical) == 1
        assert critical[0].details["first_allocation_id"] == genome[1].allocation_id
        assert critical[0].details["total_cost"] == pytest.approx(8000)

    def test_close_to_budget_is_high(self, single_task, single_worker):
        warnings = detect_warnings((allocate(single_task, single_worker),), Constraints(budget_limit=4100))
        assert [w.severity for w in warnings] == [WarningSeverity.HIGH]

    def test_comfortable_budget(self, single_task, single_worker):
        assert detect_warnings((allocate(single_task, single_worker),), Constraints(budget_limit=20000)) == []

    def test_deadline_warning_per_late_allocation(self, single_task, single_worker):
        deadline = START + timedelta(days=5)
        warnings = detect_warnings((allocate(single_task, single_worker),), Constraints(deadline_date=deadline))

        assert len(warnings) == 1
        assert warnings[0].category == WarningCategory.SCHEDULE_DELAY
        assert warnings[0].severity == WarningSeverity.HIGH
        assert warnings[0].details["delay_hours"] == pytest.approx(120)

    def test_over_allocated_resource(self, single_worker):
        t1 = make_task("A", days=4)
        t2 = make_task("B", days=4, offset_days=1)
        genome = (allocate(t1, single_worker, 60), allocate(t2, single_worker, 60))

        warnings = detect_warnings(genome, Constraints(), [single_worker])
        assert len(warnings) == 1
        assert warnings[0].category == WarningCategory.RESOURCE_CONFLICT
        assert warnings[0].severity == WarningSeverity.MEDIUM
        assert "Resource R1" in warnings[0].message

    def test_custom_cap(self, single_task, single_worker):
        genome = (allocate(single_task, single_worker, 80),)
        warnings = detect_warnings(genome, Constraints(resource_caps={"R1": 50}))
        assert [w.details["cap_percentage"] for w in warnings] == [50]


class TestAlternatives:
    """Tests for generate_alternatives."""

    def test_two_named_views(self, sample_tasks, sample_resources):
        cost_view, time_view = generate_alternatives([0.2, 0.6, 0.5], sample_tasks, sample_resources)

        assert (cost_view.name, time_view.name) == ("Cost Optimized", "Time Optimized")
        assert cost_view.fitness_score == 0.6
        assert time_view.fitness_score == 0.5
        assert cost_view.total_cost <= time_view.total_cost
        assert time_view.total_duration_hours <= cost_view.total_duration_hours
        assert len(cost_view.trade_offs) == 2

    def test_empty_resources(self, sample_tasks):
        views = generate_alternatives([0.4], sample_tasks, [])
        assert len(views) == 2
        assert all(v.total_cost == 0.0 for v in views)
        assert all(v.fitness_score == 0.4 for v in views)

    def test_empty_history(self, sample_tasks, sample_resources):
        views = generate_alternatives([], sample_tasks, sample_resources)
        assert [v.fitness_score for v in views] == [0.0, 0.0]


class TestRecommendationsAndPlan:
    """Tests for recommendations and the scheduling plan."""

    def test_one_recommendation_per_task(self, sample_tasks, sample_resources):
        w1, _, _, e1 = sample_resources
        genome = tuple(
            allocate(task, e1 if task.id == "T3" else w1) for task in sample_tasks
        )
        recommendations = generate_recommendations(genome, sample_tasks, sample_resources)

        assert [r.task_id for r in recommendations] == ["T1", "T2", "T3", "T4"]
        first = recommendations[0]
        assert first.resource_id == "W1"
        assert first.alternatives == ["W2"]
        assert "matches required category" in first.reasoning[0]

    def test_plan_totals(self, sample_tasks, sample_resources):
        genome = tuple(allocate(task, sample_resources[0]) for task in sample_tasks)
        plan = create_scheduling_plan(genome, sample_tasks)

        assert plan.project_id == "all"
        assert len(plan.schedules) == 4
        assert plan.total_cost == pytest.approx(sum(a.estimated_cost for a in genome))
        starts = [s.start_date for s in plan.schedules]
        assert starts == sorted(starts)

    def test_plan_for_one_project(self, single_worker):
        tasks = [make_task("A", project_id="P1"), make_task("B", project_id="P2")]
        genome = tuple(allocate(t, single_worker) for t in tasks)
        plan = create_scheduling_plan(genome, tasks, project_id="P2")

        assert plan.project_id == "P2"
        assert [s.task_id for s in plan.schedules] == ["B"]

    def test_plan_for_other_worker(self):
        worker = make_resource("Z", cost_per_hour=10)
        task = make_task()
        plan = create_scheduling_plan((allocate(task, worker),), [task])
        assert plan.total_cost == pytest.approx(800)
