"""
Domain Module - Resource Optimization Types
============================================

Dataclass domain model, closed enums with their mapping tables, and the
pydantic bodies of the HTTP surface.
"""

from .types import (
    Allocation,
    AllocationStatus,
    AlternativeScenario,
    AvailabilityWindow,
    Constraints,
    FitnessFunction,
    Genome,
    OptimizationGoal,
    OptimizationMetrics,
    OptimizationRequest,
    OptimizationResult,
    OptimizationWarning,
    Resource,
    ResourceCategory,
    ResourceRecommendation,
    ResourceStatus,
    ResourceType,
    ResultStatus,
    SchedulingPlan,
    Task,
    TaskSchedule,
    TimeHorizon,
    TrainingDataPoint,
    WarningCategory,
    WarningSeverity,
    as_utc,
    map_optimization_goal,
    map_resource_type,
    plan_allocation,
)

__all__ = [
    "Allocation",
    "AllocationStatus",
    "AlternativeScenario",
    "AvailabilityWindow",
    "Constraints",
    "FitnessFunction",
    "Genome",
    "OptimizationGoal",
    "OptimizationMetrics",
    "OptimizationRequest",
    "OptimizationResult",
    "OptimizationWarning",
    "Resource",
    "ResourceCategory",
    "ResourceRecommendation",
    "ResourceStatus",
    "ResourceType",
    "ResultStatus",
    "SchedulingPlan",
    "Task",
    "TaskSchedule",
    "TimeHorizon",
    "TrainingDataPoint",
    "WarningCategory",
    "WarningSeverity",
    "as_utc",
    "map_optimization_goal",
    "map_resource_type",
    "plan_allocation",
]
