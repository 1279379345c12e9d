"""SQLAlchemy implementation of the resource data store."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import Column, DateTime, Float, Integer, JSON, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from resource_engine.domain.types import (
    AvailabilityWindow,
    OptimizationResult,
    Resource,
    ResourceCategory,
    ResourceStatus,
    ResourceType,
    Task,
    TrainingDataPoint,
    as_utc,
)
from resource_engine.errors import DataStoreError

from .store import ResourceDataStore, overlaps_horizon

logger = logging.getLogger(__name__)

Base = declarative_base()


class ResourceModel(Base):
    __tablename__ = "resources"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)
    cost_per_hour = Column(Float, default=0.0)
    status = Column(String, default=ResourceStatus.AVAILABLE.value, index=True)
    availability = Column(JSON, default=list)
    resource_metadata = Column("metadata", JSON, default=dict)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, index=True)
    project_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    volume = Column(Float, default=0.0)
    unit = Column(String, default="unit")
    unit_price = Column(Float, default=0.0)
    planned_start = Column(DateTime, nullable=False)
    planned_end = Column(DateTime, nullable=False)
    required_category = Column(String, default=ResourceCategory.WORKER.value)
    complexity = Column(Float, default=5.0)
    required_skills = Column(JSON, default=list)


class TrainingRecordModel(Base):
    __tablename__ = "training_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dataset_id = Column(String, nullable=False, index=True)
    data_id = Column(String, nullable=False)
    project_id = Column(String, nullable=True)
    task_id = Column(String, nullable=True)
    features = Column(JSON, nullable=False)
    labels = Column(JSON, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow)


class OptimizationResultModel(Base):
    __tablename__ = "optimization_results"

    result_id = Column(String, primary_key=True, index=True)
    request_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, index=True)
    confidence_score = Column(Float, default=0.0)
    computed_at = Column(DateTime, default=datetime.utcnow)
    payload = Column(JSON, nullable=False)


class SqlAlchemyDataStore(ResourceDataStore):
    """Store backed by any SQLAlchemy URL (SQLite by default)."""

    def __init__(self, database_url: str = "sqlite:///resource_engine.db"):
        self.database_url = database_url
        engine_kwargs = {}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.init_db()

    def init_db(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise DataStoreError(f"Could not initialise database {self.database_url}: {e}") from e

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise DataStoreError(f"Database error: {e}") from e
        finally:
            db.close()

    # ───────────────────────────────────────────────────────────────────────────
    # Writes used to seed the store
    # ───────────────────────────────────────────────────────────────────────────

    def add_resources(self, resources: Iterable[Resource]) -> None:
        with self.session() as db:
            for r in resources:
                db.merge(ResourceModel(
                    id=r.id,
                    name=r.name,
                    type=r.type.value if isinstance(r.type, ResourceType) else str(r.type),
                    cost_per_hour=r.cost_per_hour,
                    status=r.status.value,
                    availability=[w.to_dict() for w in r.availability],
                    resource_metadata=dict(r.metadata),
                ))

    def add_tasks(self, tasks: Iterable[Task]) -> None:
        with self.session() as db:
            for t in tasks:
                db.merge(TaskModel(
                    id=t.id,
                    project_id=t.project_id,
                    name=t.name,
                    volume=t.volume,
                    unit=t.unit,
                    unit_price=t.unit_price,
                    planned_start=_to_column(t.planned_start),
                    planned_end=_to_column(t.planned_end),
                    required_category=t.required_category.value,
                    complexity=t.complexity,
                    required_skills=list(t.required_skills),
                ))

    def add_training_data(self, dataset_id: str, points: Iterable[TrainingDataPoint]) -> None:
        with self.session() as db:
            for p in points:
                db.add(TrainingRecordModel(
                    dataset_id=dataset_id,
                    data_id=p.data_id,
                    project_id=p.project_id,
                    task_id=p.task_id,
                    features=dict(p.features),
                    labels=dict(p.labels),
                    timestamp=_to_column(p.timestamp),
                ))

    # ───────────────────────────────────────────────────────────────────────────
    # Store interface
    # ───────────────────────────────────────────────────────────────────────────

    def fetch_tasks_and_resources(self, project_ids, time_horizon=None):
        with self.session() as db:
            task_rows = db.query(TaskModel).filter(TaskModel.project_id.in_(list(project_ids))).all()
            resource_rows = db.query(ResourceModel).all()
            tasks = [_task_from_row(row) for row in task_rows]
            resources = [_resource_from_row(row) for row in resource_rows]

        tasks = [t for t in tasks if overlaps_horizon(t, time_horizon)]
        logger.debug(f"Fetched {len(tasks)} tasks and {len(resources)} resources")
        return tasks, resources

    def load_training_data(self, dataset_id=None):
        with self.session() as db:
            query = db.query(TrainingRecordModel)
            if dataset_id is not None:
                query = query.filter(TrainingRecordModel.dataset_id == dataset_id)
            return [
                TrainingDataPoint(
                    data_id=row.data_id,
                    project_id=row.project_id or "",
                    task_id=row.task_id or "",
                    features=dict(row.features or {}),
                    labels=dict(row.labels or {}),
                    timestamp=as_utc(row.timestamp),
                )
                for row in query.order_by(TrainingRecordModel.id).all()
            ]

    def save_optimization_result(self, result):
        with self.session() as db:
            db.merge(OptimizationResultModel(
                result_id=result.result_id,
                request_id=result.request_id,
                status=result.status.value,
                confidence_score=result.confidence_score,
                computed_at=_to_column(result.computed_at),
                payload=result.to_dict(),
            ))
        logger.info(f"Result {result.result_id} persisted ({result.status.value})")
        return result.result_id

    def get_result(self, result_id: str) -> Optional[OptimizationResult]:
        with self.session() as db:
            row = db.get(OptimizationResultModel, result_id)
            return OptimizationResult.from_dict(row.payload) if row else None

    def list_results(self, request_id: Optional[str] = None) -> List[OptimizationResult]:
        with self.session() as db:
            query = db.query(OptimizationResultModel)
            if request_id is not None:
                query = query.filter(OptimizationResultModel.request_id == request_id)
            return [OptimizationResult.from_dict(row.payload) for row in query.all()]


def _to_column(value: Optional[datetime]) -> Optional[datetime]:
    """DateTime columns hold naive UTC."""
    value = as_utc(value)
    return value.replace(tzinfo=None) if value is not None else None


def _resource_from_row(row: ResourceModel) -> Resource:
    try:
        resource_type = ResourceType(row.type)
    except ValueError:
        resource_type = row.type
    return Resource(
        id=row.id,
        name=row.name,
        type=resource_type,
        cost_per_hour=row.cost_per_hour or 0.0,
        availability=[AvailabilityWindow.from_dict(w) for w in row.availability or []],
        status=ResourceStatus(row.status),
        metadata=dict(row.resource_metadata or {}),
    )


def _task_from_row(row: TaskModel) -> Task:
    return Task(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        volume=row.volume or 0.0,
        unit=row.unit or "unit",
        unit_price=row.unit_price or 0.0,
        planned_start=as_utc(row.planned_start),
        planned_end=as_utc(row.planned_end),
        required_category=ResourceCategory(row.required_category or ResourceCategory.WORKER.value),
        complexity=row.complexity if row.complexity is not None else 5.0,
        required_skills=list(row.required_skills or []),
    )
