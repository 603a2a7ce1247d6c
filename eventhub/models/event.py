"""
Event models for EventHub.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean,
    ForeignKey, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

DEFAULT_IMAGE_URL = "/default-event.jpg"


class EventCategory(str, Enum):
    """Event category enumeration."""
    CONFERENCE = "Conference"
    MEETUP = "Meetup"
    WORKSHOP = "Workshop"
    SOCIAL = "Social"
    OTHER = "Other"


class EventStatus(str, Enum):
    """Event lifecycle status enumeration."""
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserRole(str, Enum):
    """Identity role enumeration."""
    USER = "user"
    ADMIN = "admin"


class UserProfile(Base):
    """
    Identity directory entry.
    Mirrors the identity provider; refreshed whenever a credential resolves.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)

    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    def __repr__(self):
        return f"<UserProfile(id={self.id}, email='{self.email}', role='{self.role}')>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class EventAttendee(Base):
    """
    Registration of one identity for one event.
    """
    __tablename__ = "event_attendees"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    registered_at = Column(DateTime, default=datetime.now, nullable=False)

    event = relationship("Event", back_populates="attendee_links")
    user = relationship("UserProfile", lazy="joined")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_attendee"),
    )

    def __repr__(self):
        return f"<EventAttendee(event_id={self.event_id}, user_id={self.user_id})>"


class Event(Base):
    """
    Event model representing an event in the system.
    """
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False)
    location = Column(String(255), nullable=False)
    date = Column(DateTime, nullable=False, index=True)
    category = Column(String(20), nullable=False, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    max_attendees = Column(Integer, nullable=False)
    attendee_count = Column(Integer, nullable=False, default=0)
    image_url = Column(String(1024), nullable=False, default=DEFAULT_IMAGE_URL)
    status = Column(String(20), nullable=False, default=EventStatus.UPCOMING.value, index=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    is_disabled = Column(Boolean, nullable=False, default=False)

    # Metadata
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    organizer = relationship("UserProfile", lazy="joined")
    attendee_links = relationship(
        "EventAttendee",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventAttendee.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("max_attendees > 0", name="check_max_attendees_positive"),
        CheckConstraint(
            "attendee_count >= 0 AND attendee_count <= max_attendees",
            name="check_attendee_count_within_capacity"
        ),
        Index("idx_event_visibility", "is_approved", "is_disabled"),
    )

    def __repr__(self):
        return f"<Event(id={self.id}, title='{self.title}', location='{self.location}')>"

    @property
    def attendees(self) -> list:
        """Attending identities in registration order."""
        return [link.user for link in self.attendee_links]

    @property
    def is_full(self) -> bool:
        return (self.attendee_count or 0) >= self.max_attendees

    def has_attendee(self, user_id: int) -> bool:
        return any(link.user_id == user_id for link in self.attendee_links)
