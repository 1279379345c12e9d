"""
════════════════════════════════════════════════════════════════════════════════════════════════════
RESOURCE OPTIMIZATION API - REST Endpoints
════════════════════════════════════════════════════════════════════════════════════════════════════

Endpoints:
- GET  /resource-optimization/status           - Service and model status
- POST /resource-optimization/optimize         - Run an optimization
- POST /resource-optimization/models/train     - Train a model from stored history
- GET  /resource-optimization/models/{model_id} - Model metadata and lineage
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, FastAPI, HTTPException

from resource_engine.domain.schemas import ModelStatusResponse, OptimizeRequestInput, TrainModelInput
from resource_engine.domain.types import FitnessFunction, OptimizationGoal
from resource_engine.errors import DataStoreError, ModelNotReadyError
from resource_engine.ml.model_manager import ModelType
from resource_engine.service import get_resource_optimization_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/resource-optimization", tags=["Resource Optimization"])


# ═══════════════════════════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/status")
async def get_status():
    """Get resource optimization module status."""
    service = get_resource_optimization_service()

    return {
        "service": "Resource Optimization",
        "version": "1.0.0",
        "status": "operational",
        **service.status(),
        "goals": [g.value for g in OptimizationGoal],
        "fitness_functions": [f.value for f in FitnessFunction],
    }


@router.post("/optimize")
def optimize(data: OptimizeRequestInput):
    """Run an optimization. Failures are reported in the result body."""
    service = get_resource_optimization_service()
    result = service.optimize_resources(data.to_domain())
    return result.to_dict()


@router.post("/models/train")
def train_model(data: TrainModelInput):
    """Train one model on the stored history."""
    service = get_resource_optimization_service()

    try:
        model_type = ModelType(data.model_type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown model type: {data.model_type}")

    try:
        metadata = service.train_model_from_store(data.model_id, data.dataset_id, model_type.value)
    except DataStoreError as e:
        logger.error(f"Training data unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    return metadata.to_dict()


@router.get("/models/{model_id}")
async def get_model(model_id: str):
    """Get current metadata and lineage of a model."""
    service = get_resource_optimization_service()
    try:
        metadata = service.registry.require(model_id)
    except ModelNotReadyError as e:
        raise HTTPException(status_code=404, detail=str(e))

    current = ModelStatusResponse(
        model_id=model_id,
        status=service.registry.status(model_id).value,
        version=metadata.version,
        accuracy=metadata.accuracy,
        trained_at=metadata.trained_at.isoformat(),
        training_samples=metadata.training_samples,
        performance_metrics=metadata.performance_metrics,
    )
    return {
        **current.model_dump(),
        "lineage": [m.to_dict() for m in service.registry.lineage(model_id)],
    }


def create_app() -> FastAPI:
    app = FastAPI(title="Resource Optimization Engine")
    app.include_router(router)
    return app
