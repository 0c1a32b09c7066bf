from fastapi import APIRouter

from app.api.v1.endpoints.geocode import router as geocode_router
from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.network import router as network_router
from app.api.v1.endpoints.view import router as view_router

router = APIRouter()
router.include_router(health_router, tags=["meta"])
router.include_router(network_router, prefix="/network", tags=["network"])
router.include_router(geocode_router, tags=["geocode"])
router.include_router(view_router, prefix="/view", tags=["view"])
