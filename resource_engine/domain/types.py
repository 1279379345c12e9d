"""
Resource Engine - Domain Types
==============================

Core domain model shared by the optimizer, the models and the orchestrator.

Estrutura:
- Resource / Task: read-only inputs fetched from the data store
- Allocation: one resource assigned to one task (genome element)
- Constraints / TimeHorizon / OptimizationRequest: request side
- OptimizationMetrics / OptimizationWarning / AlternativeScenario /
  ResourceRecommendation / SchedulingPlan / OptimizationResult: result side

Resource types and optimization goals are closed enums; the two mapping
functions below are total and never raise.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

MISMATCH_PRODUCTIVITY_FACTOR = 0.6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timezone-aware UTC copy of `value`; naive values are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class ResourceType(str, Enum):
    """Tipo de recurso, as stored upstream."""
    HUMAN = "human"
    EQUIPMENT = "equipment"
    MATERIAL = "material"


class ResourceCategory(str, Enum):
    """Category the optimizer reasons about."""
    WORKER = "worker"
    EQUIPMENT = "equipment"
    MATERIAL = "material"
    UNKNOWN = "unknown"


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    ALLOCATED = "allocated"
    MAINTENANCE = "maintenance"
    UNAVAILABLE = "unavailable"


class AllocationStatus(str, Enum):
    PLANNED = "planned"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OptimizationGoal(str, Enum):
    """Public optimization goals accepted on a request."""
    MINIMIZE_COST = "minimize_cost"
    MINIMIZE_DURATION = "minimize_duration"
    MAXIMIZE_QUALITY = "maximize_quality"
    BALANCE_COST_TIME = "balance_cost_time"
    MAXIMIZE_UTILIZATION = "maximize_utilization"
    MINIMIZE_IDLE_TIME = "minimize_idle_time"


class FitnessFunction(str, Enum):
    """Objective used internally by the genetic algorithm."""
    COST = "cost"
    TIME = "time"
    QUALITY = "quality"
    COMPOSITE = "composite"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class WarningCategory(str, Enum):
    BUDGET_OVERRUN = "budget_overrun"
    SCHEDULE_DELAY = "schedule_delay"
    RESOURCE_CONFLICT = "resource_conflict"


class WarningSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ═══════════════════════════════════════════════════════════════════════════════
# MAPPINGS
# ═══════════════════════════════════════════════════════════════════════════════

RESOURCE_TYPE_TO_CATEGORY: Dict[str, ResourceCategory] = {
    ResourceType.HUMAN.value: ResourceCategory.WORKER,
    ResourceType.EQUIPMENT.value: ResourceCategory.EQUIPMENT,
    ResourceType.MATERIAL.value: ResourceCategory.MATERIAL,
}

GOAL_TO_FITNESS: Dict[str, FitnessFunction] = {
    OptimizationGoal.MINIMIZE_COST.value: FitnessFunction.COST,
    OptimizationGoal.MINIMIZE_DURATION.value: FitnessFunction.TIME,
    OptimizationGoal.MAXIMIZE_QUALITY.value: FitnessFunction.QUALITY,
}


def map_resource_type(resource_type: Union[ResourceType, str]) -> Union[ResourceCategory, str]:
    """
    Map a resource type to the optimizer category.

    human -> worker, equipment -> equipment, material -> material; any other
    value is returned unchanged.
    """
    key = resource_type.value if isinstance(resource_type, Enum) else resource_type
    if isinstance(key, str) and key in RESOURCE_TYPE_TO_CATEGORY:
        return RESOURCE_TYPE_TO_CATEGORY[key]
    return resource_type


def map_optimization_goal(goal: Any) -> FitnessFunction:
    """Map a request goal to a fitness function; unknown goals map to composite."""
    key = goal.value if isinstance(goal, Enum) else goal
    if isinstance(key, str):
        return GOAL_TO_FITNESS.get(key, FitnessFunction.COMPOSITE)
    return FitnessFunction.COMPOSITE


def _category_of(value: Any) -> ResourceCategory:
    mapped = map_resource_type(value)
    if isinstance(mapped, ResourceCategory):
        return mapped
    try:
        return ResourceCategory(mapped)
    except ValueError:
        return ResourceCategory.UNKNOWN


def _type_label(resource_type: Any) -> str:
    """Allocation type label: the mapped category, or the raw type unchanged."""
    mapped = map_resource_type(resource_type)
    return mapped.value if isinstance(mapped, Enum) else str(mapped)


# ═══════════════════════════════════════════════════════════════════════════════
# INPUT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AvailabilityWindow:
    """Period during which a resource can be scheduled."""
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AvailabilityWindow":
        return cls(start=_parse_dt(data["start"]), end=_parse_dt(data["end"]))


@dataclass
class Resource:
    """
    A worker, piece of equipment or material that can be allocated.

    Optional metadata keys: proficiency (1-5), experience_years,
    equipment_age, condition (1-5), completed_allocations, productivity.
    """
    id: str
    name: str
    type: ResourceType
    cost_per_hour: float
    availability: List[AvailabilityWindow] = field(default_factory=list)
    status: ResourceStatus = ResourceStatus.AVAILABLE
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def category(self) -> ResourceCategory:
        return _category_of(self.type)

    @property
    def is_available(self) -> bool:
        return self.status == ResourceStatus.AVAILABLE

    @property
    def productivity(self) -> float:
        value = float(self.metadata.get("productivity", 1.0) or 1.0)
        return value if value > 0 else 1.0

    @property
    def proficiency(self) -> Optional[float]:
        value = self.metadata.get("proficiency")
        return float(value) if value is not None else None

    @property
    def condition(self) -> Optional[float]:
        value = self.metadata.get("condition")
        return float(value) if value is not None else None

    @property
    def completed_allocations(self) -> int:
        return int(self.metadata.get("completed_allocations", 0) or 0)

    def effective_productivity(self, task: "Task") -> float:
        """Productivity on a task, reduced when the category does not match."""
        if self.category == task.required_category:
            return self.productivity
        return self.productivity * MISMATCH_PRODUCTIVITY_FACTOR

    def is_available_between(self, start: datetime, end: datetime) -> bool:
        """True when no windows are declared or one window covers [start, end]."""
        if not self.availability:
            return True
        return any(w.contains(start, end) for w in self.availability)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value if isinstance(self.type, Enum) else self.type,
            "category": self.category.value,
            "cost_per_hour": self.cost_per_hour,
            "availability": [w.to_dict() for w in self.availability],
            "status": self.status.value,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Resource":
        raw_type = data.get("type", ResourceType.HUMAN.value)
        try:
            resource_type: Any = ResourceType(raw_type)
        except ValueError:
            resource_type = raw_type
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            type=resource_type,
            cost_per_hour=float(data.get("cost_per_hour", 0.0)),
            availability=[AvailabilityWindow.from_dict(w) for w in data.get("availability", [])],
            status=ResourceStatus(data.get("status", ResourceStatus.AVAILABLE.value)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Task:
    """A unit of project work that needs exactly one resource."""
    id: str
    project_id: str
    name: str
    volume: float
    unit: str
    unit_price: float
    planned_start: datetime
    planned_end: datetime
    required_category: ResourceCategory = ResourceCategory.WORKER
    complexity: float = 5.0
    required_skills: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.planned_start = as_utc(self.planned_start)
        self.planned_end = as_utc(self.planned_end)

    @property
    def baseline_cost(self) -> float:
        return self.volume * self.unit_price

    @property
    def duration_days(self) -> float:
        """Planned duration in days, at least one day."""
        days = (self.planned_end - self.planned_start).total_seconds() / 86400.0
        return max(1.0, days)

    def effort_hours(self, hours_per_day: float) -> float:
        return self.duration_days * hours_per_day

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "volume": self.volume,
            "unit": self.unit,
            "unit_price": self.unit_price,
            "planned_start": self.planned_start.isoformat(),
            "planned_end": self.planned_end.isoformat(),
            "required_category": self.required_category.value,
            "complexity": self.complexity,
            "required_skills": list(self.required_skills),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        return cls(
            id=str(data["id"]),
            project_id=str(data["project_id"]),
            name=data.get("name", str(data["id"])),
            volume=float(data.get("volume", 0.0)),
            unit=data.get("unit", "unit"),
            unit_price=float(data.get("unit_price", 0.0)),
            planned_start=_parse_dt(data["planned_start"]),
            planned_end=_parse_dt(data["planned_end"]),
            required_category=_category_of(data.get("required_category", ResourceCategory.WORKER.value)),
            complexity=float(data.get("complexity", 5.0)),
            required_skills=list(data.get("required_skills") or []),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ALLOCATION (GENOME ELEMENT)
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Allocation:
    """One resource assigned to one task. Immutable; use `evolve` to change."""
    allocation_id: str
    resource_id: str
    resource_type: str
    project_id: str
    task_id: str
    start_date: datetime
    end_date: datetime
    allocation_percentage: float
    estimated_cost: float
    status: AllocationStatus = AllocationStatus.PLANNED
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    created_by: str = "resource-engine"
    updated_by: str = "resource-engine"

    @property
    def duration_hours(self) -> float:
        return (self.end_date - self.start_date).total_seconds() / 3600.0

    def evolve(self, **changes: Any) -> "Allocation":
        changes.setdefault("updated_at", _utcnow())
        return replace(self, **changes)

    def overlaps(self, other: "Allocation") -> bool:
        return self.start_date < other.end_date and other.start_date < self.end_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allocation_id": self.allocation_id,
            "resource_id": self.resource_id,
            "resource_type": self.resource_type,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "allocation_percentage": round(self.allocation_percentage, 2),
            "estimated_cost": round(self.estimated_cost, 2),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Allocation":
        return cls(
            allocation_id=data["allocation_id"],
            resource_id=data["resource_id"],
            resource_type=data.get("resource_type", ResourceCategory.UNKNOWN.value),
            project_id=data["project_id"],
            task_id=data["task_id"],
            start_date=_parse_dt(data["start_date"]),
            end_date=_parse_dt(data["end_date"]),
            allocation_percentage=float(data["allocation_percentage"]),
            estimated_cost=float(data["estimated_cost"]),
            status=AllocationStatus(data.get("status", AllocationStatus.PLANNED.value)),
            created_at=_parse_dt(data.get("created_at")) or _utcnow(),
            updated_at=_parse_dt(data.get("updated_at")) or _utcnow(),
            created_by=data.get("created_by", "resource-engine"),
            updated_by=data.get("updated_by", "resource-engine"),
        )


Genome = Tuple[Allocation, ...]


def plan_allocation(
    task: Task,
    resource: Resource,
    allocation_percentage: float,
    hours_per_day: float,
    start: Optional[datetime] = None,
    allocation_id: Optional[str] = None,
) -> Allocation:
    """
    Build an allocation of `resource` to `task`.

    Billed hours are the task effort divided by the resource's effective
    productivity; the elapsed window stretches as the allocation percentage
    shrinks.
    """
    pct = min(100.0, max(0.0, allocation_percentage))
    start_date = as_utc(start) or task.planned_start
    billed_hours = task.effort_hours(hours_per_day) / resource.effective_productivity(task)
    elapsed_hours = billed_hours / (pct / 100.0) if pct > 0 else billed_hours
    end_date = start_date + timedelta(days=elapsed_hours / hours_per_day)

    return Allocation(
        allocation_id=allocation_id or _new_id("alloc"),
        resource_id=resource.id,
        resource_type=_type_label(resource.type),
        project_id=task.project_id,
        task_id=task.id,
        start_date=start_date,
        end_date=end_date,
        allocation_percentage=pct,
        estimated_cost=resource.cost_per_hour * billed_hours,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# REQUEST TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Constraints:
    """Advisory constraints: they shape fitness and warnings, never reject."""
    budget_limit: Optional[float] = None
    deadline_date: Optional[datetime] = None
    resource_caps: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "deadline_date", as_utc(self.deadline_date))

    def cap_for(self, resource_id: str) -> float:
        return float(self.resource_caps.get(resource_id, 100.0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "budget_limit": self.budget_limit,
            "deadline_date": _iso(self.deadline_date),
            "resource_caps": dict(self.resource_caps),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Constraints":
        data = data or {}
        budget = data.get("budget_limit")
        return cls(
            budget_limit=float(budget) if budget is not None else None,
            deadline_date=_parse_dt(data.get("deadline_date")),
            resource_caps={k: float(v) for k, v in (data.get("resource_caps") or {}).items()},
        )


@dataclass(frozen=True)
class TimeHorizon:
    start_date: datetime
    end_date: datetime

    def __post_init__(self):
        object.__setattr__(self, "start_date", as_utc(self.start_date))
        object.__setattr__(self, "end_date", as_utc(self.end_date))

    @property
    def is_well_formed(self) -> bool:
        return self.end_date >= self.start_date

    def to_dict(self) -> Dict[str, Any]:
        return {"start_date": self.start_date.isoformat(), "end_date": self.end_date.isoformat()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimeHorizon":
        return cls(start_date=_parse_dt(data["start_date"]), end_date=_parse_dt(data["end_date"]))


@dataclass(frozen=True)
class OptimizationRequest:
    """A request to optimize resource allocation for a set of projects."""
    project_ids: Tuple[str, ...]
    time_horizon: TimeHorizon
    optimization_goal: str = OptimizationGoal.BALANCE_COST_TIME.value
    constraints: Constraints = field(default_factory=Constraints)
    preferences: Dict[str, Any] = field(default_factory=dict)
    requested_by: str = "system"
    request_id: str = field(default_factory=lambda: _new_id("req"))
    requested_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        goal = self.optimization_goal
        return {
            "request_id": self.request_id,
            "project_ids": list(self.project_ids),
            "optimization_goal": goal.value if isinstance(goal, Enum) else goal,
            "constraints": self.constraints.to_dict(),
            "preferences": dict(self.preferences),
            "time_horizon": self.time_horizon.to_dict(),
            "requested_by": self.requested_by,
            "requested_at": self.requested_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OptimizationRequest":
        kwargs: Dict[str, Any] = {}
        if data.get("request_id"):
            kwargs["request_id"] = data["request_id"]
        if data.get("requested_at"):
            kwargs["requested_at"] = _parse_dt(data["requested_at"])
        return cls(
            project_ids=tuple(data.get("project_ids") or ()),
            time_horizon=TimeHorizon.from_dict(data["time_horizon"]),
            optimization_goal=data.get("optimization_goal", OptimizationGoal.BALANCE_COST_TIME.value),
            constraints=Constraints.from_dict(data.get("constraints")),
            preferences=dict(data.get("preferences") or {}),
            requested_by=data.get("requested_by", "system"),
            **kwargs,
        )


@dataclass(frozen=True)
class TrainingDataPoint:
    """One historical task outcome."""
    data_id: str
    project_id: str
    task_id: str
    features: Dict[str, Any]
    labels: Dict[str, float]
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data_id": self.data_id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "features": dict(self.features),
            "labels": dict(self.labels),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrainingDataPoint":
        return cls(
            data_id=str(data["data_id"]),
            project_id=str(data.get("project_id", "")),
            task_id=str(data.get("task_id", "")),
            features=dict(data.get("features") or {}),
            labels=dict(data.get("labels") or {}),
            timestamp=_parse_dt(data.get("timestamp")) or _utcnow(),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class OptimizationMetrics:
    """Benefit metrics of a genome. Deficits are reported as warnings."""
    cost_savings: float = 0.0
    cost_savings_percentage: float = 0.0
    resource_utilization_avg: float = 0.0
    time_savings: float = 0.0
    time_savings_percentage: float = 0.0
    quality_score_avg: float = 0.0
    conflicts_remaining: int = 0
    feasibility_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cost_savings": round(self.cost_savings, 2),
            "cost_savings_percentage": round(self.cost_savings_percentage, 2),
            "resource_utilization_avg": round(self.resource_utilization_avg, 2),
            "time_savings": round(self.time_savings, 2),
            "time_savings_percentage": round(self.time_savings_percentage, 2),
            "quality_score_avg": round(self.quality_score_avg, 2),
            "conflicts_remaining": self.conflicts_remaining,
            "feasibility_score": round(self.feasibility_score, 3),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OptimizationMetrics":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class OptimizationWarning:
    warning_id: str
    category: WarningCategory
    severity: WarningSeverity
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "warning_id": self.warning_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OptimizationWarning":
        return cls(
            warning_id=data["warning_id"],
            category=WarningCategory(data["category"]),
            severity=WarningSeverity(data["severity"]),
            message=data.get("message", ""),
            details=dict(data.get("details") or {}),
        )


@dataclass(frozen=True)
class AlternativeScenario:
    scenario_id: str
    name: str
    description: str
    fitness_score: float
    total_cost: float
    total_duration_hours: float
    metrics: Dict[str, float] = field(default_factory=dict)
    trade_offs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "name": self.name,
            "description": self.description,
            "fitness_score": round(self.fitness_score, 4),
            "total_cost": round(self.total_cost, 2),
            "total_duration_hours": round(self.total_duration_hours, 2),
            "metrics": dict(self.metrics),
            "trade_offs": list(self.trade_offs),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlternativeScenario":
        return cls(
            scenario_id=data["scenario_id"],
            name=data["name"],
            description=data.get("description", ""),
            fitness_score=float(data.get("fitness_score", 0.0)),
            total_cost=float(data.get("total_cost", 0.0)),
            total_duration_hours=float(data.get("total_duration_hours", 0.0)),
            metrics=dict(data.get("metrics") or {}),
            trade_offs=list(data.get("trade_offs") or []),
        )


@dataclass(frozen=True)
class ResourceRecommendation:
    task_id: str
    resource_id: str
    allocation_percentage: float
    confidence: float
    reasoning: List[str] = field(default_factory=list)
    alternatives: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "resource_id": self.resource_id,
            "allocation_percentage": round(self.allocation_percentage, 2),
            "confidence": round(self.confidence, 3),
            "reasoning": list(self.reasoning),
            "alternatives": list(self.alternatives),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceRecommendation":
        return cls(
            task_id=data["task_id"],
            resource_id=data["resource_id"],
            allocation_percentage=float(data.get("allocation_percentage", 0.0)),
            confidence=float(data.get("confidence", 0.0)),
            reasoning=list(data.get("reasoning") or []),
            alternatives=list(data.get("alternatives") or []),
        )


@dataclass(frozen=True)
class TaskSchedule:
    task_id: str
    resource_id: str
    start_date: datetime
    end_date: datetime
    cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "resource_id": self.resource_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "cost": round(self.cost, 2),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaskSchedule":
        return cls(
            task_id=data["task_id"],
            resource_id=data["resource_id"],
            start_date=_parse_dt(data["start_date"]),
            end_date=_parse_dt(data["end_date"]),
            cost=float(data.get("cost", 0.0)),
        )


@dataclass(frozen=True)
class SchedulingPlan:
    plan_id: str
    project_id: str
    schedules: Tuple[TaskSchedule, ...] = ()
    total_duration_hours: float = 0.0
    total_cost: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "project_id": self.project_id,
            "schedules": [s.to_dict() for s in self.schedules],
            "total_duration_hours": round(self.total_duration_hours, 2),
            "total_cost": round(self.total_cost, 2),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SchedulingPlan":
        return cls(
            plan_id=data["plan_id"],
            project_id=data.get("project_id", ""),
            schedules=tuple(TaskSchedule.from_dict(s) for s in data.get("schedules", [])),
            total_duration_hours=float(data.get("total_duration_hours", 0.0)),
            total_cost=float(data.get("total_cost", 0.0)),
        )


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of one optimization run. Always returned, even on failure."""
    request_id: str
    status: ResultStatus
    confidence_score: float = 0.0
    genome: Genome = ()
    recommendations: Tuple[ResourceRecommendation, ...] = ()
    scheduling_plan: Optional[SchedulingPlan] = None
    metrics: OptimizationMetrics = field(default_factory=OptimizationMetrics)
    warnings: Tuple[OptimizationWarning, ...] = ()
    alternatives: Tuple[AlternativeScenario, ...] = ()
    generations_run: int = 0
    convergence_generation: Optional[int] = None
    fitness_history: Tuple[float, ...] = ()
    reason: Optional[str] = None
    error: Optional[Dict[str, str]] = None
    result_id: str = field(default_factory=lambda: _new_id("res"))
    computed_at: datetime = field(default_factory=_utcnow)
    computation_time_ms: float = 0.0

    @property
    def critical_warnings(self) -> List[OptimizationWarning]:
        return [w for w in self.warnings if w.severity == WarningSeverity.CRITICAL]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result_id": self.result_id,
            "request_id": self.request_id,
            "status": self.status.value,
            "confidence_score": round(self.confidence_score, 4),
            "genome": [a.to_dict() for a in self.genome],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "scheduling_plan": self.scheduling_plan.to_dict() if self.scheduling_plan else None,
            "metrics": self.metrics.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
            "alternatives": [a.to_dict() for a in self.alternatives],
            "generations_run": self.generations_run,
            "convergence_generation": self.convergence_generation,
            "fitness_history": [round(f, 6) for f in self.fitness_history],
            "reason": self.reason,
            "error": dict(self.error) if self.error else None,
            "computed_at": self.computed_at.isoformat(),
            "computation_time_ms": round(self.computation_time_ms, 1),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OptimizationResult":
        plan = data.get("scheduling_plan")
        return cls(
            result_id=data["result_id"],
            request_id=data["request_id"],
            status=ResultStatus(data["status"]),
            confidence_score=float(data.get("confidence_score", 0.0)),
            genome=tuple(Allocation.from_dict(a) for a in data.get("genome", [])),
            recommendations=tuple(ResourceRecommendation.from_dict(r) for r in data.get("recommendations", [])),
            scheduling_plan=SchedulingPlan.from_dict(plan) if plan else None,
            metrics=OptimizationMetrics.from_dict(data.get("metrics") or {}),
            warnings=tuple(OptimizationWarning.from_dict(w) for w in data.get("warnings", [])),
            alternatives=tuple(AlternativeScenario.from_dict(a) for a in data.get("alternatives", [])),
            generations_run=int(data.get("generations_run", 0)),
            convergence_generation=data.get("convergence_generation"),
            fitness_history=tuple(float(f) for f in data.get("fitness_history", [])),
            reason=data.get("reason"),
            error=dict(data["error"]) if data.get("error") else None,
            computed_at=_parse_dt(data.get("computed_at")) or _utcnow(),
            computation_time_ms=float(data.get("computation_time_ms", 0.0)),
        )
