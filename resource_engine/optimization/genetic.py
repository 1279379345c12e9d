"""
Resource Engine - Genetic Algorithm Optimizer
=============================================

Evolves resource-to-task allocations toward the configured fitness function.

Algorithm:
1. Initialize - random genomes, resources weighted by type compatibility
2. Evaluate   - FitnessEvaluator (optionally on a thread pool)
3. Select     - tournament / roulette / rank
4. Crossover  - two-point segment exchange on task-aligned genomes
5. Mutate     - resource swap, percentage perturbation or window shift
6. Elitism    - top floor(elitism_rate × N) carried unchanged
7. Converge   - variance of the last `convergence_window` best fitness values
                below `convergence_threshold`

Each generation is an immutable snapshot; the next one replaces it wholesale.
"""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from resource_engine.domain.types import (
    Allocation,
    Constraints,
    FitnessFunction,
    Genome,
    Resource,
    Task,
    plan_allocation,
)
from resource_engine.errors import EmptyProblemError, InvalidConfigurationError

from .fitness import FitnessEvaluator

logger = logging.getLogger(__name__)

MATCH_WEIGHT = 3.0
MISMATCH_WEIGHT = 1.0
SELECTION_METHODS = ("tournament", "roulette", "rank")
MUTATION_OPERATORS = ("swap", "percentage", "shift")
MIN_CONVERGENCE_WINDOW = 10

# Numeric parameters and the type each is coerced to
NUMERIC_FIELDS = {
    "population_size": int,
    "max_generations": int,
    "mutation_rate": float,
    "crossover_rate": float,
    "elitism_rate": float,
    "tournament_size": int,
    "convergence_threshold": float,
    "convergence_window": int,
    "min_allocation_percentage": float,
    "hours_per_day": float,
    "evaluation_workers": int,
}


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class GeneticAlgorithmConfig:
    """GA parameters; validated on construction."""
    population_size: int = 100
    max_generations: int = 200
    mutation_rate: float = 0.1
    crossover_rate: float = 0.8
    elitism_rate: float = 0.1
    fitness_function: FitnessFunction = FitnessFunction.COMPOSITE
    selection_method: str = "tournament"
    tournament_size: int = 5
    convergence_threshold: float = 0.001
    convergence_window: int = 10
    min_allocation_percentage: float = 10.0
    hours_per_day: float = 8.0
    evaluation_workers: int = 1
    seed: Optional[int] = None

    def __post_init__(self):
        problems = self._coerce_numbers()
        if problems:
            raise InvalidConfigurationError("Invalid genetic algorithm configuration", problems)

        if self.population_size < 2:
            problems.append("population_size must be >= 2")
        if self.max_generations < 1:
            problems.append("max_generations must be >= 1")
        for name in ("mutation_rate", "crossover_rate", "elitism_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                problems.append(f"{name} must be in [0, 1]")
        try:
            self.fitness_function = FitnessFunction(self.fitness_function)
        except ValueError:
            problems.append(f"unknown fitness_function: {self.fitness_function}")
        if self.selection_method not in SELECTION_METHODS:
            problems.append(f"unknown selection_method: {self.selection_method}")
        if self.tournament_size < 1:
            problems.append("tournament_size must be >= 1")
        if self.convergence_threshold < 0:
            problems.append("convergence_threshold must be >= 0")
        if self.convergence_window < MIN_CONVERGENCE_WINDOW:
            problems.append(f"convergence_window must be >= {MIN_CONVERGENCE_WINDOW}")
        if not 0.0 < self.min_allocation_percentage <= 100.0:
            problems.append("min_allocation_percentage must be in (0, 100]")
        if self.hours_per_day <= 0:
            problems.append("hours_per_day must be > 0")
        if self.evaluation_workers < 1:
            problems.append("evaluation_workers must be >= 1")

        if problems:
            raise InvalidConfigurationError("Invalid genetic algorithm configuration", problems)

    def _coerce_numbers(self) -> List[str]:
        """Convert numeric strings (env vars, JSON preferences) in place."""
        problems: List[str] = []
        for name, kind in NUMERIC_FIELDS.items():
            value = getattr(self, name)
            if isinstance(value, bool):
                problems.append(f"{name} must be a number, got {value!r}")
                continue
            try:
                number = kind(value)
            except (TypeError, ValueError, OverflowError):
                problems.append(f"{name} must be a number, got {value!r}")
                continue
            if kind is int and isinstance(value, float) and not value.is_integer():
                problems.append(f"{name} must be an integer, got {value!r}")
                continue
            if kind is float and not math.isfinite(number):
                problems.append(f"{name} must be finite, got {value!r}")
                continue
            setattr(self, name, number)

        if self.seed is not None:
            try:
                self.seed = int(self.seed)
            except (TypeError, ValueError):
                problems.append(f"seed must be an integer, got {self.seed!r}")
        return problems

    @property
    def elite_count(self) -> int:
        return int(math.floor(self.elitism_rate * self.population_size))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "population_size": self.population_size,
            "max_generations": self.max_generations,
            "mutation_rate": self.mutation_rate,
            "crossover_rate": self.crossover_rate,
            "elitism_rate": self.elitism_rate,
            "fitness_function": self.fitness_function.value,
            "selection_method": self.selection_method,
            "tournament_size": self.tournament_size,
            "convergence_threshold": self.convergence_threshold,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# CONVERGENCE
# ═══════════════════════════════════════════════════════════════════════════════

def population_variance(values: Sequence[float]) -> float:
    """Mean squared deviation from the mean (0 for an empty sequence)."""
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def has_converged(
    history: Sequence[float], threshold: float, window: int = MIN_CONVERGENCE_WINDOW
) -> bool:
    """
    True once the last `window` best-fitness values vary less than `threshold`.

    Never fires before MIN_CONVERGENCE_WINDOW generations are recorded.
    """
    window = max(window, MIN_CONVERGENCE_WINDOW)
    if len(history) < window:
        return False
    return population_variance(list(history[-window:])) < threshold


# ═══════════════════════════════════════════════════════════════════════════════
# GENERATIONS & RESULT
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Generation:
    """Immutable population snapshot with its fitness values."""
    index: int
    individuals: Tuple[Genome, ...]
    fitness: Tuple[float, ...]

    @property
    def best_index(self) -> int:
        return max(range(len(self.fitness)), key=lambda i: self.fitness[i])

    @property
    def best_individual(self) -> Genome:
        return self.individuals[self.best_index]

    @property
    def best_fitness(self) -> float:
        return self.fitness[self.best_index]

    def ranked(self) -> List[int]:
        """Indices sorted by fitness, best first."""
        return sorted(range(len(self.fitness)), key=lambda i: self.fitness[i], reverse=True)


@dataclass(frozen=True)
class GeneticAlgorithmResult:
    best_individual: Genome
    best_fitness: float
    generations_run: int
    convergence_generation: Optional[int]
    fitness_history: Tuple[float, ...] = field(default_factory=tuple)
    execution_time_ms: float = 0.0

    @property
    def converged(self) -> bool:
        return self.convergence_generation is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best_individual": [a.to_dict() for a in self.best_individual],
            "best_fitness": round(self.best_fitness, 4),
            "generations_run": self.generations_run,
            "convergence_generation": self.convergence_generation,
            "fitness_history": [round(f, 6) for f in self.fitness_history],
            "execution_time_ms": round(self.execution_time_ms, 1),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# OPTIMIZER
# ═══════════════════════════════════════════════════════════════════════════════

class GeneticAlgorithmOptimizer:
    """
    Genetic algorithm over task-aligned genomes.

    Non-available resources are never chosen for construction or as mutation
    targets, but allocations already holding one are left in place.
    """

    def __init__(
        self,
        config: Optional[GeneticAlgorithmConfig] = None,
        predictor=None,
        low_confidence_threshold: int = 5,
    ):
        self.config = config or GeneticAlgorithmConfig()
        self.predictor = predictor
        self.low_confidence_threshold = low_confidence_threshold
        self.rng = random.Random(self.config.seed)

        self._tasks: List[Task] = []
        self._resources: Dict[str, Resource] = {}
        self._available: List[Resource] = []

    def optimize(
        self,
        tasks: Sequence[Task],
        resources: Sequence[Resource],
        constraints: Optional[Constraints] = None,
    ) -> GeneticAlgorithmResult:
        """Run the GA to completion and return the best genome ever seen."""
        available = [r for r in resources if r.is_available]
        if not tasks or not available:
            raise EmptyProblemError(
                f"Cannot build a genome from {len(tasks)} tasks and {len(available)} available resources",
                task_count=len(tasks),
                resource_count=len(available),
            )

        started = time.perf_counter()
        cfg = self.config
        self._tasks = list(tasks)
        self._resources = {r.id: r for r in resources}
        self._available = available

        evaluator = FitnessEvaluator(
            tasks,
            resources,
            constraints,
            fitness_function=cfg.fitness_function,
            hours_per_day=cfg.hours_per_day,
            predictor=self.predictor,
            low_confidence_threshold=self.low_confidence_threshold,
        )

        generation = self._evaluate(0, [self.random_genome() for _ in range(cfg.population_size)], evaluator)
        best_individual = generation.best_individual
        best_fitness = generation.best_fitness

        history: List[float] = []
        convergence_generation: Optional[int] = None
        generations_run = 0

        for index in range(1, cfg.max_generations + 1):
            generation = self._evaluate(index, self._next_individuals(generation), evaluator)
            generations_run = index
            history.append(generation.best_fitness)

            if generation.best_fitness > best_fitness:
                best_fitness = generation.best_fitness
                best_individual = generation.best_individual

            logger.debug(f"Generation {index}: best={generation.best_fitness:.4f}")

            if has_converged(history, cfg.convergence_threshold, cfg.convergence_window):
                convergence_generation = index
                break

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"GA finished: {generations_run} generations, best fitness {best_fitness:.4f}, "
            f"converged={'yes' if convergence_generation else 'no'} ({elapsed_ms:.0f} ms)"
        )

        return GeneticAlgorithmResult(
            best_individual=best_individual,
            best_fitness=best_fitness,
            generations_run=generations_run,
            convergence_generation=convergence_generation,
            fitness_history=tuple(history),
            execution_time_ms=elapsed_ms,
        )

    def _evaluate(self, index: int, individuals: List[Genome], evaluator: FitnessEvaluator) -> Generation:
        fitness = evaluator.evaluate_population(individuals, self.config.evaluation_workers)
        return Generation(index=index, individuals=tuple(individuals), fitness=tuple(fitness))

    def _next_individuals(self, generation: Generation) -> List[Genome]:
        cfg = self.config
        ranked = generation.ranked()
        individuals: List[Genome] = [generation.individuals[i] for i in ranked[:cfg.elite_count]]

        while len(individuals) < cfg.population_size:
            parent1 = self.select(generation)
            parent2 = self.select(generation)
            if self.rng.random() < cfg.crossover_rate:
                child = self.crossover(parent1, parent2)
            else:
                child = parent1
            individuals.append(self.mutate(child))

        return individuals

    # ───────────────────────────────────────────────────────────────────────────
    # Initialization
    # ───────────────────────────────────────────────────────────────────────────

    def _compatibility_weights(self, task: Task, candidates: Sequence[Resource]) -> List[float]:
        return [MATCH_WEIGHT if r.category == task.required_category else MISMATCH_WEIGHT for r in candidates]

    def _pick_resource(self, task: Task, exclude: Optional[str] = None) -> Optional[Resource]:
        candidates = [r for r in self._available if r.id != exclude]
        if not candidates:
            return None
        return self.rng.choices(candidates, weights=self._compatibility_weights(task, candidates), k=1)[0]

    def _random_percentage(self) -> float:
        return self.rng.uniform(self.config.min_allocation_percentage, 100.0)

    def random_genome(self) -> Genome:
        """One allocation per task, in task order."""
        return tuple(
            plan_allocation(task, self._pick_resource(task), self._random_percentage(), self.config.hours_per_day)
            for task in self._tasks
        )

    # ───────────────────────────────────────────────────────────────────────────
    # Selection
    # ───────────────────────────────────────────────────────────────────────────

    def select(self, generation: Generation) -> Genome:
        method = self.config.selection_method
        if method == "roulette":
            return self._roulette_select(generation)
        if method == "rank":
            return self._rank_select(generation)
        return self._tournament_select(generation)

    def _tournament_select(self, generation: Generation) -> Genome:
        size = min(self.config.tournament_size, len(generation.individuals))
        contenders = self.rng.sample(range(len(generation.individuals)), size)
        winner = max(contenders, key=lambda i: generation.fitness[i])
        return generation.individuals[winner]

    def _roulette_select(self, generation: Generation) -> Genome:
        if sum(generation.fitness) <= 0:
            return self.rng.choice(generation.individuals)
        return self.rng.choices(generation.individuals, weights=generation.fitness, k=1)[0]

    def _rank_select(self, generation: Generation) -> Genome:
        ascending = list(reversed(generation.ranked()))
        weights = list(range(1, len(ascending) + 1))
        chosen = self.rng.choices(ascending, weights=weights, k=1)[0]
        return generation.individuals[chosen]

    # ───────────────────────────────────────────────────────────────────────────
    # Variation
    # ───────────────────────────────────────────────────────────────────────────

    def crossover(self, parent1: Genome, parent2: Genome) -> Genome:
        """Two-point crossover; single-point for two tasks; copy for one."""
        n = len(parent1)
        if n < 2:
            return parent1
        if n == 2:
            return (parent1[0], parent2[1])
        i, j = sorted(self.rng.sample(range(1, n), 2))
        return parent1[:i] + parent2[i:j] + parent1[j:]

    def mutate(self, genome: Genome) -> Genome:
        rate = self.config.mutation_rate
        if rate <= 0:
            return genome
        return tuple(
            self._mutate_allocation(task, allocation) if self.rng.random() < rate else allocation
            for task, allocation in zip(self._tasks, genome)
        )

    def _mutate_allocation(self, task: Task, allocation: Allocation) -> Allocation:
        operator = self.rng.choice(MUTATION_OPERATORS)
        resource = self._resources[allocation.resource_id]
        pct = allocation.allocation_percentage
        start = allocation.start_date

        if operator == "swap":
            replacement = self._pick_resource(task, exclude=allocation.resource_id)
            if replacement is None:
                return allocation
            return self._rebuild(allocation, task, replacement, pct, start)

        if operator == "percentage":
            pct = min(100.0, max(self.config.min_allocation_percentage, pct + self.rng.gauss(0.0, 15.0)))
            return self._rebuild(allocation, task, resource, pct, start)

        shifted = start + timedelta(days=self.rng.uniform(-1.0, 1.0))
        candidate = self._rebuild(allocation, task, resource, pct, shifted)
        if resource.is_available_between(candidate.start_date, candidate.end_date):
            return candidate
        return allocation

    def _rebuild(self, allocation: Allocation, task: Task, resource: Resource, pct: float, start) -> Allocation:
        planned = plan_allocation(task, resource, pct, self.config.hours_per_day, start=start)
        return allocation.evolve(
            resource_id=planned.resource_id,
            resource_type=planned.resource_type,
            start_date=planned.start_date,
            end_date=planned.end_date,
            allocation_percentage=planned.allocation_percentage,
            estimated_cost=planned.estimated_cost,
        )
