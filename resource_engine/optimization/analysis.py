"""
Resource Engine - Result Analysis
=================================

Post-processing of the best genome:

- calculate_metrics        - benefit metrics, clamped at 0
- detect_warnings          - budget, deadline and over-allocation warnings
- generate_alternatives    - "Cost Optimized" and "Time Optimized" views
- generate_recommendations - one recommendation per task
- create_scheduling_plan   - per-task schedule with totals

None of these abort: deficits surface as warnings.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Sequence, Tuple

import numpy as np

from resource_engine.domain.types import (
    AlternativeScenario,
    Constraints,
    Genome,
    OptimizationMetrics,
    OptimizationWarning,
    Resource,
    ResourceRecommendation,
    SchedulingPlan,
    Task,
    TaskSchedule,
    WarningCategory,
    WarningSeverity,
    plan_allocation,
)

from .fitness import (
    allocation_quality,
    genome_makespan_hours,
    peak_concurrent_load,
    planned_makespan_hours,
)

logger = logging.getLogger(__name__)

BUDGET_ALERT_RATIO = 0.95


def _warning_id() -> str:
    return f"warn-{uuid.uuid4().hex[:12]}"


# ═══════════════════════════════════════════════════════════════════════════════
# METRICS
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_metrics(
    genome: Genome,
    tasks: Sequence[Task],
    resources: Sequence[Resource],
    constraints: Optional[Constraints] = None,
) -> OptimizationMetrics:
    """Savings, utilization and quality of a genome against the task baseline."""
    constraints = constraints or Constraints()
    task_map = {t.id: t for t in tasks}
    resource_map = {r.id: r for r in resources}

    baseline = sum(t.baseline_cost for t in tasks)
    estimated = sum(a.estimated_cost for a in genome)
    cost_savings = max(0.0, baseline - estimated)
    cost_savings_pct = cost_savings / baseline * 100 if baseline > 0 else 0.0

    utilization = float(np.mean([a.allocation_percentage for a in genome])) if genome else 0.0

    planned = planned_makespan_hours(tasks)
    actual = genome_makespan_hours(genome)
    time_savings = max(0.0, planned - actual) if genome else 0.0
    time_savings_pct = time_savings / planned * 100 if planned > 0 else 0.0

    qualities = [
        allocation_quality(task_map[a.task_id], resource_map[a.resource_id])
        for a in genome
        if a.task_id in task_map and a.resource_id in resource_map
    ]
    quality_avg = float(np.mean(qualities)) * 100 if qualities else 0.0

    over_cap = {
        rid for rid, peak in peak_concurrent_load(genome).items()
        if peak > constraints.cap_for(rid) + 1e-9
    }

    feasible = 0
    for a in genome:
        resource = resource_map.get(a.resource_id)
        task = task_map.get(a.task_id)
        if resource is None or task is None:
            continue
        if not resource.is_available or resource.category != task.required_category:
            continue
        if constraints.deadline_date is not None and a.end_date > constraints.deadline_date:
            continue
        if a.resource_id in over_cap:
            continue
        feasible += 1

    return OptimizationMetrics(
        cost_savings=cost_savings,
        cost_savings_percentage=max(0.0, cost_savings_pct),
        resource_utilization_avg=max(0.0, utilization),
        time_savings=time_savings,
        time_savings_percentage=max(0.0, time_savings_pct),
        quality_score_avg=quality_avg,
        conflicts_remaining=len(over_cap),
        feasibility_score=feasible / len(genome) if genome else 0.0,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# WARNINGS
# ═══════════════════════════════════════════════════════════════════════════════

def detect_warnings(
    genome: Genome,
    constraints: Optional[Constraints],
    resources: Optional[Sequence[Resource]] = None,
) -> List[OptimizationWarning]:
    """Structured warnings for every advisory constraint the genome breaks."""
    constraints = constraints or Constraints()
    warnings: List[OptimizationWarning] = []

    warnings.extend(_budget_warnings(genome, constraints))
    warnings.extend(_deadline_warnings(genome, constraints))
    warnings.extend(_capacity_warnings(genome, constraints, resources))

    if warnings:
        logger.info(f"{len(warnings)} warnings detected")
    return warnings


def _budget_warnings(genome: Genome, constraints: Constraints) -> List[OptimizationWarning]:
    budget = constraints.budget_limit
    if budget is None:
        return []

    cumulative = 0.0
    for index, allocation in enumerate(genome):
        cumulative += allocation.estimated_cost
        if cumulative > budget:
            total = sum(a.estimated_cost for a in genome)
            return [OptimizationWarning(
                warning_id=_warning_id(),
                category=WarningCategory.BUDGET_OVERRUN,
                severity=WarningSeverity.CRITICAL,
                message=f"Estimated cost {total:.2f} exceeds budget {budget:.2f}",
                details={
                    "budget_limit": budget,
                    "total_cost": round(total, 2),
                    "overrun_amount": round(total - budget, 2),
                    "first_allocation_id": allocation.allocation_id,
                    "allocations_over_budget": [a.allocation_id for a in genome[index:]],
                },
            )]

    if budget > 0 and cumulative > budget * BUDGET_ALERT_RATIO:
        return [OptimizationWarning(
            warning_id=_warning_id(),
            category=WarningCategory.BUDGET_OVERRUN,
            severity=WarningSeverity.HIGH,
            message=f"Estimated cost {cumulative:.2f} is within 5% of budget {budget:.2f}",
            details={
                "budget_limit": budget,
                "total_cost": round(cumulative, 2),
                "utilization_percentage": round(cumulative / budget * 100, 2),
            },
        )]
    return []


def _deadline_warnings(genome: Genome, constraints: Constraints) -> List[OptimizationWarning]:
    deadline = constraints.deadline_date
    if deadline is None:
        return []

    warnings = []
    for allocation in genome:
        if allocation.end_date > deadline:
            delay_hours = (allocation.end_date - deadline).total_seconds() / 3600.0
            warnings.append(OptimizationWarning(
                warning_id=_warning_id(),
                category=WarningCategory.SCHEDULE_DELAY,
                severity=WarningSeverity.HIGH,
                message=f"Task {allocation.task_id} ends {delay_hours:.1f}h after the deadline",
                details={
                    "task_id": allocation.task_id,
                    "allocation_id": allocation.allocation_id,
                    "end_date": allocation.end_date.isoformat(),
                    "deadline_date": deadline.isoformat(),
                    "delay_hours": round(delay_hours, 2),
                },
            ))
    return warnings


def _capacity_warnings(
    genome: Genome,
    constraints: Constraints,
    resources: Optional[Sequence[Resource]],
) -> List[OptimizationWarning]:
    names = {r.id: r.name for r in resources or []}
    warnings = []
    for resource_id, peak in sorted(peak_concurrent_load(genome).items()):
        cap = constraints.cap_for(resource_id)
        if peak > cap + 1e-9:
            warnings.append(OptimizationWarning(
                warning_id=_warning_id(),
                category=WarningCategory.RESOURCE_CONFLICT,
                severity=WarningSeverity.MEDIUM,
                message=f"Resource {names.get(resource_id, resource_id)} allocated {peak:.0f}% (cap {cap:.0f}%)",
                details={
                    "resource_id": resource_id,
                    "peak_allocation_percentage": round(peak, 2),
                    "cap_percentage": cap,
                    "allocation_ids": [a.allocation_id for a in genome if a.resource_id == resource_id],
                },
            ))
    return warnings


# ═══════════════════════════════════════════════════════════════════════════════
# ALTERNATIVES
# ═══════════════════════════════════════════════════════════════════════════════

def _compatible(task: Task, resources: Sequence[Resource]) -> List[Resource]:
    available = [r for r in resources if r.is_available]
    matching = [r for r in available if r.category == task.required_category]
    return matching or available


def _greedy_view(
    tasks: Sequence[Task],
    resources: Sequence[Resource],
    hours_per_day: float,
    cheapest: bool,
    min_allocation_percentage: float,
) -> Tuple[float, float, float]:
    """(total cost, makespan hours, quality 0-100) of a greedy assignment."""
    genome = []
    qualities = []
    for task in tasks:
        candidates = _compatible(task, resources)
        if not candidates:
            continue
        if cheapest:
            pct = min_allocation_percentage
            resource = min(
                candidates,
                key=lambda r: plan_allocation(task, r, pct, hours_per_day).estimated_cost,
            )
        else:
            pct = 100.0
            resource = max(candidates, key=lambda r: (r.effective_productivity(task), -r.cost_per_hour))
        genome.append(plan_allocation(task, resource, pct, hours_per_day))
        qualities.append(allocation_quality(task, resource))

    total_cost = sum(a.estimated_cost for a in genome)
    quality = float(np.mean(qualities)) * 100 if qualities else 0.0
    return total_cost, genome_makespan_hours(tuple(genome)), quality


def _relative(a: float, b: float) -> float:
    """Percentage by which `a` is below `b` (0 when `b` is 0)."""
    return (b - a) / b * 100 if b > 0 else 0.0


def generate_alternatives(
    fitness_history: Sequence[float],
    tasks: Sequence[Task],
    resources: Sequence[Resource],
    hours_per_day: float = 8.0,
    min_allocation_percentage: float = 10.0,
) -> Tuple[AlternativeScenario, AlternativeScenario]:
    """
    Two derivative views over the same tasks and resources.

    The cost view assigns each task its cheapest compatible resource at the
    minimum percentage; the time view assigns the most productive one at
    100 %. Scores come from the fitness trace (best and final value), so no
    further GA run is needed.
    """
    best = max(fitness_history) if fitness_history else 0.0
    final = fitness_history[-1] if fitness_history else 0.0

    cost_total, cost_hours, cost_quality = _greedy_view(
        tasks, resources, hours_per_day, True, min_allocation_percentage
    )
    time_total, time_hours, time_quality = _greedy_view(
        tasks, resources, hours_per_day, False, min_allocation_percentage
    )

    cost_saving = _relative(cost_total, time_total)
    time_saving = _relative(time_hours, cost_hours)

    cost_view = AlternativeScenario(
        scenario_id="alt_cost_optimized",
        name="Cost Optimized",
        description="Cheapest compatible resource per task at minimum allocation",
        fitness_score=best,
        total_cost=cost_total,
        total_duration_hours=cost_hours,
        metrics={"quality_score": round(cost_quality, 2), "cost_reduction_percentage": round(cost_saving, 2)},
        trade_offs=[
            f"{cost_saving:.0f}% lower cost than the time-optimized view",
            f"{time_saving:.0f}% longer duration",
        ],
    )
    time_view = AlternativeScenario(
        scenario_id="alt_time_optimized",
        name="Time Optimized",
        description="Most productive compatible resource per task at full allocation",
        fitness_score=final,
        total_cost=time_total,
        total_duration_hours=time_hours,
        metrics={"quality_score": round(time_quality, 2), "duration_reduction_percentage": round(time_saving, 2)},
        trade_offs=[
            f"{time_saving:.0f}% faster completion than the cost-optimized view",
            f"{cost_saving:.0f}% higher cost",
        ],
    )
    return cost_view, time_view


# ═══════════════════════════════════════════════════════════════════════════════
# RECOMMENDATIONS & PLAN
# ═══════════════════════════════════════════════════════════════════════════════

def generate_recommendations(
    genome: Genome,
    tasks: Sequence[Task],
    resources: Sequence[Resource],
    max_alternatives: int = 3,
) -> List[ResourceRecommendation]:
    task_map = {t.id: t for t in tasks}
    resource_map = {r.id: r for r in resources}
    recommendations = []

    for allocation in genome:
        task = task_map.get(allocation.task_id)
        resource = resource_map.get(allocation.resource_id)
        if task is None or resource is None:
            continue

        reasoning = []
        if resource.category == task.required_category:
            reasoning.append(f"{resource.name} matches required category {task.required_category.value}")
        else:
            reasoning.append(f"{resource.name} ({resource.category.value}) is outside category {task.required_category.value}")
        reasoning.append(f"Estimated cost {allocation.estimated_cost:.2f} at {allocation.allocation_percentage:.0f}% allocation")
        if allocation.estimated_cost < task.baseline_cost:
            reasoning.append(f"Below baseline cost {task.baseline_cost:.2f}")

        others = sorted(
            (r for r in _compatible(task, resources) if r.id != resource.id),
            key=lambda r: r.cost_per_hour,
        )
        recommendations.append(ResourceRecommendation(
            task_id=task.id,
            resource_id=resource.id,
            allocation_percentage=allocation.allocation_percentage,
            confidence=allocation_quality(task, resource),
            reasoning=reasoning,
            alternatives=[r.id for r in others[:max_alternatives]],
        ))
    return recommendations


def create_scheduling_plan(
    genome: Genome,
    tasks: Sequence[Task],
    project_id: Optional[str] = None,
) -> SchedulingPlan:
    """Schedule of the genome, restricted to one project when given."""
    task_ids = {t.id for t in tasks}
    allocations = [
        a for a in genome
        if a.task_id in task_ids and (project_id is None or a.project_id == project_id)
    ]
    schedules = tuple(
        TaskSchedule(
            task_id=a.task_id,
            resource_id=a.resource_id,
            start_date=a.start_date,
            end_date=a.end_date,
            cost=a.estimated_cost,
        )
        for a in sorted(allocations, key=lambda a: a.start_date)
    )
    return SchedulingPlan(
        plan_id=f"plan-{uuid.uuid4().hex[:12]}",
        project_id=project_id or "all",
        schedules=schedules,
        total_duration_hours=genome_makespan_hours(tuple(allocations)),
        total_cost=sum(a.estimated_cost for a in allocations),
    )
