"""API v1 router initialization."""
from fastapi import APIRouter

from .profiles import router as profiles_router
from .recognition import router as recognition_router

# Create v1 router
router = APIRouter()

router.include_router(
    recognition_router,
    prefix="/recognition",
    tags=["recognition"]
)
router.include_router(
    profiles_router,
    prefix="/profiles",
    tags=["profiles"]
)
