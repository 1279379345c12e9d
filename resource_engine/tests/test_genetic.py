"""
Tests for the genetic algorithm optimizer.
"""
import pytest

from resource_engine.domain.types import FitnessFunction, ResourceStatus, plan_allocation
from resource_engine.errors import EmptyProblemError, InvalidConfigurationError
from resource_engine.optimization.fitness import FitnessEvaluator
from resource_engine.optimization.genetic import (
    GeneticAlgorithmConfig,
    GeneticAlgorithmOptimizer,
    Generation,
    has_converged,
    population_variance,
)

from .factories import make_resource, make_task


def small_config(**overrides):
    params = dict(population_size=16, max_generations=12, seed=7)
    params.update(overrides)
    return GeneticAlgorithmConfig(**params)


class TestConvergence:
    """Tests for population_variance and has_converged."""

    def test_variance_of_one_to_five(self):
        assert population_variance([1, 2, 3, 4, 5]) == 2

    def test_variance_empty(self):
        assert population_variance([]) == 0.0

    @pytest.mark.parametrize("history", [[], [0.85], [0.85] * 9, [0.1, 0.9] * 4])
    def test_short_history_never_converges(self, history):
        assert has_converged(history, threshold=1.0) is False

    def test_clustered_history_converges(self):
        history = [0.5, 0.6, 0.7] + [0.85, 0.851, 0.849, 0.85, 0.8505, 0.8495, 0.85, 0.851, 0.849, 0.85]
        assert has_converged(history, threshold=0.001) is True

    def test_dispersed_history_does_not_converge(self):
        assert has_converged([0.1, 0.9] * 5, threshold=0.001) is False

    def test_small_window_still_needs_ten_generations(self):
        assert has_converged([0.1, 0.9, 0.5, 0.5, 0.5], threshold=0.001, window=3) is False
        assert has_converged([0.1, 0.9] + [0.5] * 8, threshold=0.001, window=3) is False
        assert has_converged([0.1, 0.9] + [0.5] * 10, threshold=0.001, window=3) is True


class TestConfig:
    """Tests for GeneticAlgorithmConfig validation."""

    def test_defaults(self):
        config = GeneticAlgorithmConfig()
        assert config.population_size == 100
        assert config.elite_count == 10

    @pytest.mark.parametrize("overrides", [
        {"population_size": 1},
        {"max_generations": 0},
        {"mutation_rate": 1.5},
        {"crossover_rate": -0.1},
        {"elitism_rate": 2},
        {"fitness_function": "speed"},
        {"selection_method": "lottery"},
        {"tournament_size": 0},
        {"convergence_threshold": -1},
        {"convergence_window": 3},
        {"mutation_rate": "fast"},
        {"mutation_rate": None},
        {"population_size": [20]},
        {"population_size": 20.5},
        {"crossover_rate": float("nan")},
        {"max_generations": True},
        {"seed": "abc"},
    ])
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(InvalidConfigurationError):
            GeneticAlgorithmConfig(**overrides)

    def test_numeric_strings_coerced(self):
        """Preferences arrive from JSON and env vars as strings."""
        config = GeneticAlgorithmConfig(mutation_rate="0.5", population_size="20", seed="3")

        assert config.mutation_rate == 0.5
        assert config.population_size == 20
        assert config.seed == 3

    def test_type_problem_is_listed(self):
        with pytest.raises(InvalidConfigurationError) as excinfo:
            GeneticAlgorithmConfig(mutation_rate="fast")
        assert any("mutation_rate" in p for p in excinfo.value.problems)

    def test_fitness_function_coerced(self):
        assert GeneticAlgorithmConfig(fitness_function="time").fitness_function == FitnessFunction.TIME


class TestOperators:
    """Tests for selection, crossover and mutation."""

    @pytest.fixture
    def optimizer(self, sample_tasks, sample_resources):
        optimizer = GeneticAlgorithmOptimizer(small_config())
        optimizer._tasks = sample_tasks
        optimizer._resources = {r.id: r for r in sample_resources}
        optimizer._available = [r for r in sample_resources if r.is_available]
        return optimizer

    def test_random_genome_one_allocation_per_task(self, optimizer, sample_tasks):
        genome = optimizer.random_genome()
        assert [a.task_id for a in genome] == [t.id for t in sample_tasks]
        assert all(10.0 <= a.allocation_percentage <= 100.0 for a in genome)

    def test_unavailable_resources_never_chosen(self, optimizer):
        for _ in range(50):
            assert all(a.resource_id != "W3" for a in optimizer.random_genome())

    def test_crossover_keeps_task_alignment(self, optimizer, sample_tasks):
        for _ in range(30):
            child = optimizer.crossover(optimizer.random_genome(), optimizer.random_genome())
            assert [a.task_id for a in child] == [t.id for t in sample_tasks]

    def test_crossover_mixes_parents(self, optimizer):
        p1 = optimizer.random_genome()
        p2 = optimizer.random_genome()
        child = optimizer.crossover(p1, p2)
        assert all(c is a or c is b for c, a, b in zip(child, p1, p2))
        assert child[0] is p1[0]

    def test_two_task_crossover_is_single_point(self, optimizer):
        p1 = optimizer.random_genome()[:2]
        p2 = optimizer.random_genome()[:2]
        assert optimizer.crossover(p1, p2) == (p1[0], p2[1])

    def test_mutation_builds_new_allocations(self, sample_tasks, sample_resources):
        optimizer = GeneticAlgorithmOptimizer(small_config(mutation_rate=1.0))
        optimizer._tasks = sample_tasks
        optimizer._resources = {r.id: r for r in sample_resources}
        optimizer._available = [r for r in sample_resources if r.is_available]

        genome = optimizer.random_genome()
        snapshot = [a.to_dict() for a in genome]
        mutated = optimizer.mutate(genome)

        assert [a.to_dict() for a in genome] == snapshot
        assert [a.task_id for a in mutated] == [a.task_id for a in genome]
        assert [a.allocation_id for a in mutated] == [a.allocation_id for a in genome]

    def test_unavailable_resource_kept_in_existing_genome(self, sample_tasks, sample_resources):
        optimizer = GeneticAlgorithmOptimizer(small_config(mutation_rate=0.0))
        optimizer._tasks = sample_tasks[:1]
        optimizer._resources = {r.id: r for r in sample_resources}
        optimizer._available = [r for r in sample_resources if r.is_available]

        held = (plan_allocation(sample_tasks[0], sample_resources[2], 50, 8),)
        assert optimizer.mutate(held)[0].resource_id == "W3"

    @pytest.mark.parametrize("method", ["tournament", "roulette", "rank"])
    def test_selection_methods(self, method, optimizer):
        optimizer.config = small_config(selection_method=method)
        individuals = tuple(optimizer.random_genome() for _ in range(5))
        generation = Generation(0, individuals, (0.1, 0.2, 0.9, 0.3, 0.4))
        assert optimizer.select(generation) in individuals

    def test_roulette_with_zero_fitness(self, optimizer):
        optimizer.config = small_config(selection_method="roulette")
        individuals = tuple(optimizer.random_genome() for _ in range(3))
        generation = Generation(0, individuals, (0.0, 0.0, 0.0))
        assert optimizer.select(generation) in individuals

    def test_tournament_of_whole_population_picks_best(self, optimizer):
        optimizer.config = small_config(tournament_size=10)
        individuals = tuple(optimizer.random_genome() for _ in range(4))
        generation = Generation(0, individuals, (0.1, 0.7, 0.3, 0.2))
        assert optimizer.select(generation) is individuals[1]


class TestOptimize:
    """Tests for full GA runs."""

    def test_empty_tasks_raise(self, sample_resources):
        with pytest.raises(EmptyProblemError):
            GeneticAlgorithmOptimizer(small_config()).optimize([], sample_resources)

    def test_no_available_resources_raise(self, sample_tasks):
        busy = [make_resource("X", status=ResourceStatus.UNAVAILABLE)]
        with pytest.raises(EmptyProblemError) as exc:
            GeneticAlgorithmOptimizer(small_config()).optimize(sample_tasks, busy)
        assert exc.value.resource_count == 0

    def test_result_shape(self, sample_tasks, sample_resources):
        result = GeneticAlgorithmOptimizer(small_config()).optimize(sample_tasks, sample_resources)

        assert len(result.best_individual) == len(sample_tasks)
        assert 0.0 <= result.best_fitness <= 1.0
        assert 1 <= result.generations_run <= 12
        assert len(result.fitness_history) == result.generations_run
        assert result.best_fitness >= max(result.fitness_history)
        assert result.execution_time_ms >= 0

    def test_stops_on_convergence(self, single_task, single_worker):
        config = small_config(max_generations=100, elitism_rate=0.2)
        result = GeneticAlgorithmOptimizer(config).optimize([single_task], [single_worker])

        assert result.converged
        assert result.convergence_generation == result.generations_run
        assert result.generations_run < 100

    def test_runs_all_generations_without_convergence(self, sample_tasks, sample_resources):
        config = small_config(max_generations=5, convergence_threshold=0.0)
        result = GeneticAlgorithmOptimizer(config).optimize(sample_tasks, sample_resources)
        assert result.generations_run == 5
        assert result.convergence_generation is None

    def test_cost_goal_prefers_cheap_resource(self):
        task = make_task(days=5)
        cheap = make_resource("cheap", cost_per_hour=20)
        pricey = make_resource("pricey", cost_per_hour=200)
        config = small_config(fitness_function="cost", max_generations=20)

        result = GeneticAlgorithmOptimizer(config).optimize([task], [cheap, pricey])
        assert result.best_individual[0].resource_id == "cheap"

    def test_parallel_evaluation_matches_serial(self, sample_tasks, sample_resources):
        optimizer = GeneticAlgorithmOptimizer(small_config())
        optimizer._tasks = sample_tasks
        optimizer._resources = {r.id: r for r in sample_resources}
        optimizer._available = [r for r in sample_resources if r.is_available]
        genomes = [optimizer.random_genome() for _ in range(10)]

        evaluator = FitnessEvaluator(sample_tasks, sample_resources)
        assert evaluator.evaluate_population(genomes, workers=4) == evaluator.evaluate_population(genomes)
