"""
Event endpoints for EventHub.
Listing and reading accept an optional bearer credential; every mutation
requires one.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from ...models.event import EventCategory, EventStatus
from ...schemas.event import (
    EventCreate, EventFilter, EventResponse, EventUpdate, MessageResponse,
    UnregisterRequest, serialize_event
)
from ...schemas.user import Identity
from ...services.event_service import EventLifecycleService
from ..dependencies import get_current_user, get_lifecycle_service, get_optional_current_user

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("/", response_model=List[EventResponse])
async def list_events(
    category: Optional[EventCategory] = Query(None, description="Filter by category"),
    status_filter: Optional[EventStatus] = Query(None, alias="status", description="Filter by status"),
    search: Optional[str] = Query(None, max_length=255, description="Case-insensitive text in title or description"),
    current_user: Optional[Identity] = Depends(get_optional_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """
    List events, ongoing first, then upcoming, then completed.
    Anonymous and non-admin callers only see approved, enabled events.
    """
    events = await service.list(
        EventFilter(category=category, status=status_filter, search=search),
        current_user
    )
    return [serialize_event(event) for event in events]


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: int,
    current_user: Optional[Identity] = Depends(get_optional_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """
    Get event by ID.

    Raises:
        NotFoundError: If event not found
    """
    return serialize_event(await service.get(event_id))


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """
    Create an event organized by the caller.
    Events created by admins are approved immediately.
    """
    return serialize_event(await service.create(event_data, current_user))


@router.put("/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: int,
    event_data: EventUpdate,
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """
    Update an event. Admins may update any event, organizers their own.
    """
    return serialize_event(await service.update(event_id, event_data, current_user))


@router.delete("/{event_id}", response_model=MessageResponse)
async def delete_event(
    event_id: int,
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """
    Delete an event. Admins may delete any event, organizers their own.
    """
    await service.delete(event_id, current_user)
    return MessageResponse(message="Event deleted successfully")


@router.post("/{event_id}/register", response_model=EventResponse)
async def register_for_event(
    event_id: int,
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """Register the caller for an event."""
    return serialize_event(await service.register(event_id, current_user))


@router.post("/{event_id}/unregister", response_model=EventResponse)
async def unregister_from_event(
    event_id: int,
    body: Optional[UnregisterRequest] = None,
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """
    Unregister the caller, or, for admins, the attendee named by email.
    """
    target_email = body.attendee_email if body else None
    return serialize_event(await service.unregister(event_id, current_user, target_email))


@router.post("/{event_id}/approve", response_model=EventResponse)
async def approve_event(
    event_id: int,
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """Approve an event (admin only)."""
    return serialize_event(await service.approve(event_id, current_user))


@router.post("/{event_id}/toggle-status", response_model=EventResponse)
async def toggle_event_status(
    event_id: int,
    current_user: Identity = Depends(get_current_user),
    service: EventLifecycleService = Depends(get_lifecycle_service)
):
    """Enable or disable an event (admin only)."""
    return serialize_event(await service.toggle_disabled(event_id, current_user))
