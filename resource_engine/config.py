"""
Resource Engine - Configuration
===============================

Engine-wide defaults for the genetic algorithm, the regression models and the
orchestrator. Defaults are the production values; every field can be
overridden from the environment.

Usage:
    from resource_engine.config import EngineConfig

    config = EngineConfig.from_env()
    ga_config = config.ga_config(fitness_function="cost")

Environment variables (read after loading a local .env file):
    RESOPT_POPULATION_SIZE=100
    RESOPT_MAX_GENERATIONS=200
    RESOPT_SELECTION_METHOD=tournament
    RESOPT_TIMEOUT_SECONDS=30
    RESOPT_DATABASE_URL=sqlite:///resource_engine.db
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "RESOPT_"


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class EngineConfig:
    """Configuration shared by the optimizer, model manager and orchestrator."""

    # Genetic algorithm
    population_size: int = 100
    max_generations: int = 200
    mutation_rate: float = 0.1
    crossover_rate: float = 0.8
    elitism_rate: float = 0.1
    selection_method: str = "tournament"
    tournament_size: int = 5
    convergence_threshold: float = 0.001
    convergence_window: int = 10
    evaluation_workers: int = 1
    seed: Optional[int] = None

    # Allocation model
    hours_per_day: float = 8.0
    min_allocation_percentage: float = 10.0
    low_confidence_history_threshold: int = 5

    # Regression models
    allocation_model_epochs: int = 100
    duration_model_epochs: int = 50
    batch_size: int = 32
    learning_rate: float = 0.001
    min_model_accuracy: float = 0.5
    min_samples_for_full_confidence: int = 30

    # Orchestrator
    timeout_seconds: Optional[float] = None
    database_url: str = "sqlite:///resource_engine.db"
    log_level: str = "INFO"

    def ga_config(self, fitness_function: str = "composite", **overrides: Any):
        """Build a GeneticAlgorithmConfig from these defaults."""
        from resource_engine.optimization.genetic import GeneticAlgorithmConfig

        params: Dict[str, Any] = dict(
            population_size=self.population_size,
            max_generations=self.max_generations,
            mutation_rate=self.mutation_rate,
            crossover_rate=self.crossover_rate,
            elitism_rate=self.elitism_rate,
            fitness_function=fitness_function,
            selection_method=self.selection_method,
            tournament_size=self.tournament_size,
            convergence_threshold=self.convergence_threshold,
            convergence_window=self.convergence_window,
            min_allocation_percentage=self.min_allocation_percentage,
            hours_per_day=self.hours_per_day,
            evaluation_workers=self.evaluation_workers,
            seed=self.seed,
        )
        params.update(overrides)
        return GeneticAlgorithmConfig(**params)

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "EngineConfig":
        """
        Load configuration from RESOPT_* environment variables.

        Values that cannot be parsed are logged and ignored so a bad variable
        never prevents the engine from starting.
        """
        load_dotenv(env_file)
        config = cls()

        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            try:
                setattr(config, f.name, _parse_value(f.name, raw, getattr(config, f.name)))
                logger.info(f"Config {f.name} = {raw}")
            except ValueError:
                logger.warning(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw}")

        return config


def _parse_value(name: str, raw: str, current: Any) -> Any:
    """Coerce an environment string to the type of the current default."""
    if name in ("timeout_seconds",):
        return None if raw.lower() in ("none", "null") else float(raw)
    if name == "seed":
        return None if raw.lower() in ("none", "null") else int(raw)
    if isinstance(current, bool):
        return raw.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


# ═══════════════════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════════════════

def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic stream handler (for scripts and the dev server)."""
    level_name = (level or os.environ.get(ENV_PREFIX + "LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_config_instance: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the process-wide configuration (loaded from env on first use)."""
    global _config_instance
    if _config_instance is None:
        _config_instance = EngineConfig.from_env()
    return _config_instance


def reset_config() -> None:
    """Reset singleton."""
    global _config_instance
    _config_instance = None
