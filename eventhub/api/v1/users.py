"""
Caller profile endpoint for EventHub.
"""

from fastapi import APIRouter, Depends

from ...schemas.user import Identity, UserEventsResponse
from ...services.event_service import EventLifecycleService
from ..dependencies import get_current_user, get_lifecycle_service

router = APIRouter(tags=["Users"])


@router.get("/me", response_model=UserEventsResponse)
async def get_me(
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """Caller identity with the events it organizes and attends."""
    return await service.describe_caller(current_user)
