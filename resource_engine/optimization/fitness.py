"""
Resource Engine - Fitness Evaluation
====================================

Scores a genome (one allocation per task) under a fitness function.

Sub-scores, each in [0, 1]:
- cost:    1 - total_cost / reference_cost
- time:    planned makespan / genome makespan (capped at 1)
- quality: mean per-allocation quality from category match and resource
           proficiency / condition

composite = 0.4 × cost + 0.3 × time + 0.3 × quality

Constraints are soft: each violation (budget, deadline, resource cap)
subtracts 0.1 from the fitness, floored at 0.

When a reliable outcome predictor is supplied, allocations on resources with
little history get a predicted cost-overrun adjustment and a blended quality
score; otherwise only direct cost is used.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from resource_engine.domain.types import (
    Allocation,
    Constraints,
    FitnessFunction,
    Genome,
    Resource,
    ResourceCategory,
    Task,
    plan_allocation,
)

logger = logging.getLogger(__name__)

COMPOSITE_WEIGHTS: Dict[str, float] = {"cost": 0.4, "time": 0.3, "quality": 0.3}
VIOLATION_PENALTY = 0.1
DEFAULT_LEVEL = 3.0
MISMATCH_QUALITY_FACTOR = 0.6


@dataclass(frozen=True)
class FitnessBreakdown:
    cost_score: float
    time_score: float
    quality_score: float
    violations: int
    fitness: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "cost_score": round(self.cost_score, 4),
            "time_score": round(self.time_score, 4),
            "quality_score": round(self.quality_score, 4),
            "violations": self.violations,
            "fitness": round(self.fitness, 4),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SCHEDULE HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def makespan_hours(windows: Sequence[Tuple[datetime, datetime]]) -> float:
    """Hours between the earliest start and the latest end."""
    if not windows:
        return 0.0
    start = min(w[0] for w in windows)
    end = max(w[1] for w in windows)
    return max(0.0, (end - start).total_seconds() / 3600.0)


def planned_makespan_hours(tasks: Sequence[Task]) -> float:
    return makespan_hours([(t.planned_start, t.planned_end) for t in tasks])


def genome_makespan_hours(genome: Genome) -> float:
    return makespan_hours([(a.start_date, a.end_date) for a in genome])


def peak_concurrent_load(allocations: Sequence[Allocation]) -> Dict[str, float]:
    """Highest simultaneous allocation percentage per resource (sweep line)."""
    events: Dict[str, List[Tuple[datetime, int, float]]] = {}
    for a in allocations:
        # Ends sort before starts at the same instant
        events.setdefault(a.resource_id, []).append((a.start_date, 1, a.allocation_percentage))
        events.setdefault(a.resource_id, []).append((a.end_date, 0, -a.allocation_percentage))

    peaks: Dict[str, float] = {}
    for resource_id, items in events.items():
        load = 0.0
        peak = 0.0
        for _, _, delta in sorted(items, key=lambda e: (e[0], e[1])):
            load += delta
            peak = max(peak, load)
        peaks[resource_id] = peak
    return peaks


def allocation_quality(task: Task, resource: Resource) -> float:
    """Quality in [0, 1] of `resource` working on `task`."""
    if resource.category == ResourceCategory.EQUIPMENT:
        level = resource.condition
    else:
        level = resource.proficiency
    level = DEFAULT_LEVEL if level is None else min(5.0, max(1.0, level))

    quality = 0.5 + 0.5 * (level - 1.0) / 4.0
    if resource.category != task.required_category:
        quality *= MISMATCH_QUALITY_FACTOR
    return quality


# ═══════════════════════════════════════════════════════════════════════════════
# EVALUATOR
# ═══════════════════════════════════════════════════════════════════════════════

class FitnessEvaluator:
    """Fitness of genomes over a fixed set of tasks, resources and constraints."""

    def __init__(
        self,
        tasks: Sequence[Task],
        resources: Sequence[Resource],
        constraints: Optional[Constraints] = None,
        fitness_function: FitnessFunction = FitnessFunction.COMPOSITE,
        hours_per_day: float = 8.0,
        predictor=None,
        low_confidence_threshold: int = 5,
    ):
        self.tasks = {t.id: t for t in tasks}
        self.resources = {r.id: r for r in resources}
        self.constraints = constraints or Constraints()
        self.fitness_function = FitnessFunction(fitness_function)
        self.hours_per_day = hours_per_day
        self.low_confidence_threshold = low_confidence_threshold

        self.use_predictions = predictor is not None and predictor.is_reliable
        if predictor is not None and not self.use_predictions:
            logger.warning("Outcome model not reliable; fitness uses direct cost only")
        self.predictor = predictor if self.use_predictions else None
        self._predictions: Dict[Tuple[str, str], Dict[str, float]] = {}

        self.reference_cost = self._reference_cost(tasks, resources)
        self.planned_makespan = planned_makespan_hours(tasks)

    def _reference_cost(self, tasks: Sequence[Task], resources: Sequence[Resource]) -> float:
        budget = self.constraints.budget_limit
        if budget is not None and budget > 0:
            return budget
        baseline = sum(t.baseline_cost for t in tasks)
        if baseline > 0:
            return baseline

        candidates = [r for r in resources if r.is_available] or list(resources)
        worst = 0.0
        for task in tasks:
            worst += max(
                (plan_allocation(task, r, 100.0, self.hours_per_day).estimated_cost for r in candidates),
                default=0.0,
            )
        return worst if worst > 0 else 1.0

    # ───────────────────────────────────────────────────────────────────────────
    # Predictions
    # ───────────────────────────────────────────────────────────────────────────

    def _is_low_confidence(self, resource: Resource) -> bool:
        return resource.completed_allocations < self.low_confidence_threshold

    def _predicted(self, task: Task, resource: Resource) -> Optional[Dict[str, float]]:
        if self.predictor is None or not self._is_low_confidence(resource):
            return None
        key = (task.id, resource.id)
        if key not in self._predictions:
            self._predictions[key] = self.predictor.predict_outcomes(task, resource)
        return self._predictions[key]

    # ───────────────────────────────────────────────────────────────────────────
    # Sub-scores
    # ───────────────────────────────────────────────────────────────────────────

    def total_cost(self, genome: Genome) -> float:
        return sum(a.estimated_cost for a in genome)

    def adjusted_cost(self, genome: Genome) -> float:
        total = 0.0
        for a in genome:
            cost = a.estimated_cost
            predicted = self._predicted(self.tasks[a.task_id], self.resources[a.resource_id])
            if predicted is not None:
                cost *= 1.0 + max(0.0, predicted["cost_overrun_percentage"]) / 100.0
            total += cost
        return total

    def cost_score(self, genome: Genome) -> float:
        return float(np.clip(1.0 - self.adjusted_cost(genome) / self.reference_cost, 0.0, 1.0))

    def time_score(self, genome: Genome) -> float:
        actual = genome_makespan_hours(genome)
        if actual <= 0:
            return 1.0
        return float(min(1.0, self.planned_makespan / actual))

    def quality_score(self, genome: Genome) -> float:
        if not genome:
            return 0.0
        scores = []
        for a in genome:
            task = self.tasks[a.task_id]
            resource = self.resources[a.resource_id]
            quality = allocation_quality(task, resource)
            predicted = self._predicted(task, resource)
            if predicted is not None:
                predicted_quality = float(np.clip(predicted["quality_score"] / 100.0, 0.0, 1.0))
                quality = 0.5 * quality + 0.5 * predicted_quality
            scores.append(quality)
        return float(np.mean(scores))

    def count_violations(self, genome: Genome) -> int:
        violations = 0
        budget = self.constraints.budget_limit
        if budget is not None and self.total_cost(genome) > budget:
            violations += 1

        deadline = self.constraints.deadline_date
        if deadline is not None:
            violations += sum(1 for a in genome if a.end_date > deadline)

        for resource_id, peak in peak_concurrent_load(genome).items():
            if peak > self.constraints.cap_for(resource_id) + 1e-9:
                violations += 1
        return violations

    # ───────────────────────────────────────────────────────────────────────────
    # Fitness
    # ───────────────────────────────────────────────────────────────────────────

    def breakdown(self, genome: Genome) -> FitnessBreakdown:
        cost = self.cost_score(genome)
        time = self.time_score(genome)
        quality = self.quality_score(genome)

        if self.fitness_function == FitnessFunction.COST:
            base = cost
        elif self.fitness_function == FitnessFunction.TIME:
            base = time
        elif self.fitness_function == FitnessFunction.QUALITY:
            base = quality
        else:
            base = (
                COMPOSITE_WEIGHTS["cost"] * cost
                + COMPOSITE_WEIGHTS["time"] * time
                + COMPOSITE_WEIGHTS["quality"] * quality
            )

        violations = self.count_violations(genome)
        fitness = max(0.0, base - VIOLATION_PENALTY * violations)
        return FitnessBreakdown(cost, time, quality, violations, fitness)

    def evaluate(self, genome: Genome) -> float:
        return self.breakdown(genome).fitness

    def evaluate_population(self, genomes: Sequence[Genome], workers: int = 1) -> List[float]:
        """Fitness of every genome, in order."""
        if workers > 1 and len(genomes) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                return list(executor.map(self.evaluate, genomes))
        return [self.evaluate(g) for g in genomes]
