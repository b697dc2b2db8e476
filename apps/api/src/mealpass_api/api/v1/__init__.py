from fastapi import APIRouter

from .endpoints import health, scan

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(scan.router)
