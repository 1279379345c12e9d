"""
Resource Engine - HTTP Schemas
==============================

Pydantic bodies for the HTTP surface. Semantic validation (empty project
list, inverted horizon) is left to the orchestrator, which answers with a
failed result instead of a 422.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .types import Constraints, OptimizationGoal, OptimizationRequest, TimeHorizon


class ConstraintsInput(BaseModel):
    """Advisory constraints."""
    budget_limit: Optional[float] = Field(None, ge=0)
    deadline_date: Optional[datetime] = None
    resource_caps: Dict[str, float] = Field(default_factory=dict)

    def to_domain(self) -> Constraints:
        return Constraints(
            budget_limit=self.budget_limit,
            deadline_date=self.deadline_date,
            resource_caps=dict(self.resource_caps),
        )


class TimeHorizonInput(BaseModel):
    start_date: datetime
    end_date: datetime


class OptimizeRequestInput(BaseModel):
    """Input for an optimization run."""
    project_ids: List[str] = Field(default_factory=list)
    optimization_goal: str = Field(
        OptimizationGoal.BALANCE_COST_TIME.value,
        description="minimize_cost, minimize_duration, maximize_quality, balance_cost_time, ...",
    )
    constraints: ConstraintsInput = Field(default_factory=ConstraintsInput)
    preferences: Dict[str, Any] = Field(default_factory=dict)
    time_horizon: TimeHorizonInput
    requested_by: str = "api"
    request_id: Optional[str] = None

    def to_domain(self) -> OptimizationRequest:
        extra: Dict[str, Any] = {}
        if self.request_id:
            extra["request_id"] = self.request_id
        return OptimizationRequest(
            project_ids=tuple(self.project_ids),
            time_horizon=TimeHorizon(
                start_date=self.time_horizon.start_date,
                end_date=self.time_horizon.end_date,
            ),
            optimization_goal=self.optimization_goal,
            constraints=self.constraints.to_domain(),
            preferences=dict(self.preferences),
            requested_by=self.requested_by,
            **extra,
        )


class TrainModelInput(BaseModel):
    """Input for an explicit training run."""
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(..., min_length=1)
    model_type: str = Field("duration", description="allocation or duration")
    dataset_id: Optional[str] = None


class ModelStatusResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    status: str
    version: int = 0
    accuracy: float = 0.0
    trained_at: Optional[str] = None
    training_samples: int = 0
    performance_metrics: Dict[str, float] = Field(default_factory=dict)
