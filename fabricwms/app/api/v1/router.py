from fastapi import APIRouter

from fabricwms.app.api.v1.endpoints.health import router as health_router
from fabricwms.app.api.v1.endpoints.materials import router as materials_router
from fabricwms.app.api.v1.endpoints.purchases import router as purchases_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(materials_router, tags=["materials"])
router.include_router(purchases_router, tags=["purchases"])
