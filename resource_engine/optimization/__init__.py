"""
Optimization Module - Genetic Allocation Search
===============================================

Components:
- Fitness: cost / time / quality / composite scoring with soft penalties
- Genetic Algorithm: selection, crossover, mutation, elitism, convergence
- Analysis: metrics, warnings, alternatives, recommendations, plans
"""

from resource_engine.domain.types import map_optimization_goal

from .analysis import (
    calculate_metrics,
    create_scheduling_plan,
    detect_warnings,
    generate_alternatives,
    generate_recommendations,
)
from .fitness import FitnessBreakdown, FitnessEvaluator
from .genetic import (
    GeneticAlgorithmConfig,
    GeneticAlgorithmOptimizer,
    GeneticAlgorithmResult,
    Generation,
    has_converged,
    population_variance,
)

__all__ = [
    "calculate_metrics",
    "create_scheduling_plan",
    "detect_warnings",
    "generate_alternatives",
    "generate_recommendations",
    "map_optimization_goal",
    "FitnessBreakdown",
    "FitnessEvaluator",
    "GeneticAlgorithmConfig",
    "GeneticAlgorithmOptimizer",
    "GeneticAlgorithmResult",
    "Generation",
    "has_converged",
    "population_variance",
]
