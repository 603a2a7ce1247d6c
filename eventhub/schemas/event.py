"""
Pydantic schemas for Event-related operations.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.event import EventCategory, EventStatus


def _require_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class UserSummary(BaseModel):
    """Attendee as shown on an event."""
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class OrganizerSummary(UserSummary):
    """Organizer as shown on an event."""
    role: str


class EventBase(BaseModel):
    """Base event schema."""
    title: str = Field(..., min_length=1, max_length=255, description="Event title")
    description: str = Field(..., min_length=1, description="Event description")
    location: str = Field(..., min_length=1, max_length=255, description="Event location")
    date: datetime = Field(..., description="Scheduled start")
    category: EventCategory = Field(..., description="Event category")
    max_attendees: int = Field(..., ge=1, description="Attendee capacity")
    image_url: Optional[str] = Field(None, max_length=1024, description="Event image URL")

    @field_validator("title", "description", "location")
    @classmethod
    def validate_text(cls, v):
        return _require_text(v)


class EventCreate(EventBase):
    """Schema for creating a new event."""
    pass


class EventUpdate(BaseModel):
    """
    Schema for updating an event.
    Status is derived from the date; only an explicit cancellation is honored.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    date: Optional[datetime] = None
    category: Optional[EventCategory] = None
    max_attendees: Optional[int] = Field(None, ge=1)
    image_url: Optional[str] = Field(None, max_length=1024)
    status: Optional[EventStatus] = None

    @field_validator("title", "description", "location")
    @classmethod
    def validate_text(cls, v):
        return _require_text(v)


class EventFilter(BaseModel):
    """Listing filter."""
    category: Optional[EventCategory] = None
    status: Optional[EventStatus] = None
    search: Optional[str] = None


class UnregisterRequest(BaseModel):
    """Body of an unregister call; admins may name an attendee to remove."""
    attendee_email: Optional[str] = Field(None, max_length=255)


class EventResponse(BaseModel):
    """Schema for event response."""
    id: int
    title: str
    description: str
    location: str
    date: datetime
    category: EventCategory
    organizer: OrganizerSummary
    attendees: List[UserSummary]
    attendee_count: int
    max_attendees: int
    image_url: str
    status: EventStatus
    is_approved: bool
    is_disabled: bool
    is_full: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    """Generic message response schema."""
    message: str
    success: bool = True


def serialize_event(event) -> dict:
    """Render an Event as the JSON-ready dict used by responses and pushes."""
    return EventResponse.model_validate(event).model_dump(mode="json")
