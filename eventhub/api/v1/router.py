"""
API v1 router for EventHub.
"""

from fastapi import APIRouter

from .events import router as events_router
from .realtime import router as realtime_router
from .uploads import router as uploads_router
from .users import router as users_router

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(events_router)
router.include_router(uploads_router)
router.include_router(users_router)
router.include_router(realtime_router)
