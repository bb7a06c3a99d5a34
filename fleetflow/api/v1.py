"""Versioned API router: every module router is mounted under ``/api/v1``."""

from fastapi import APIRouter

from fleetflow.modules.batch.router import router as batch_router
from fleetflow.modules.packaging.router import router as packaging_router
from fleetflow.modules.requisition.router import router as requisition_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(requisition_router)
v1_router.include_router(packaging_router)
v1_router.include_router(batch_router)
