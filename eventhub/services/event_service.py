"""
Event Lifecycle Service for EventHub.
Enforces authorization and event invariants, keeps the derived status
current and hands every successful mutation to the notifier.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..core.exceptions import (
    CapacityError, ConflictError, NotFoundError, PermissionDeniedError, ValidationError
)
from ..db.database import EventRepository
from ..models.event import DEFAULT_IMAGE_URL, Event, EventStatus
from ..schemas.event import EventCreate, EventFilter, EventUpdate
from ..schemas.user import Identity, UserEventsResponse
from .event_notifier import EventNotifier
from .identity import IdentityProvider
from .status import derive_status, listing_sort_key, resolve_status, to_local_naive

logger = logging.getLogger(__name__)


def _validate(schema, data, message: str):
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data or {})
    except SchemaValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        raise ValidationError(message, details={"errors": errors})


class EventLifecycleService:
    """
    Create, read, update, delete, register, unregister, approve and
    toggle events.
    """

    def __init__(
        self,
        events: EventRepository,
        identities: IdentityProvider,
        notifier: EventNotifier,
        clock: Callable[[], datetime] = datetime.now,
        default_image_url: str = DEFAULT_IMAGE_URL
    ):
        self.events = events
        self.identities = identities
        self.notifier = notifier
        self.clock = clock
        self.default_image_url = default_image_url

    def _get_or_404(self, event_id: int) -> Event:
        event = self.events.get_by_id(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    def _refresh_statuses(self, events: List[Event]) -> List[Event]:
        """
        Recompute status for each event and write corrections through.
        A failed write is logged; the corrected value is still returned and
        the write is retried on a later read.
        """
        now = self.clock()
        corrections = {}
        for event in events:
            status = resolve_status(event.status, event.date, now)
            if event.status != status.value:
                corrections[event.id] = (event, status.value)
                event.status = status.value

        if not corrections:
            return events

        try:
            self.events.save()
            logger.debug(f"Corrected status for events {sorted(corrections)}")
        except SQLAlchemyError as e:
            logger.warning(f"Failed to persist status for events {sorted(corrections)}: {e}")
            for event, status in corrections.values():
                event.status = status

        return events

    async def create(self, draft: Union[EventCreate, Mapping[str, Any]], caller: Identity) -> Event:
        """
        Create an event organized by the caller; admin-created events are approved.

        Raises:
            ValidationError: If required fields are missing or capacity is below one
        """
        data = _validate(EventCreate, draft, "Invalid event data")
        self.identities.remember(caller)

        date = to_local_naive(data.date)
        event = self.events.create({
            "title": data.title,
            "description": data.description,
            "location": data.location,
            "date": date,
            "category": data.category.value,
            "max_attendees": data.max_attendees,
            "image_url": data.image_url or self.default_image_url,
            "organizer_id": caller.id,
            "attendee_count": 0,
            "status": derive_status(date, self.clock()).value,
            "is_approved": caller.is_admin,
            "is_disabled": False,
        })

        logger.info(f"Event {event.id} created by user {caller.id} (approved={event.is_approved})")
        self.notifier.event_created(event)
        return event

    async def list(
        self,
        filters: Union[EventFilter, Mapping[str, Any], None] = None,
        caller: Optional[Identity] = None
    ) -> List[Event]:
        """
        List events matching the filter.
        Non-admin callers only see approved, enabled events. Admin listings are
        also pushed to the admin channel.
        """
        filters = _validate(EventFilter, filters, "Invalid event filter")
        is_admin = caller is not None and caller.is_admin

        events = self.events.find(
            category=filters.category.value if filters.category else None,
            search=filters.search.strip() if filters.search and filters.search.strip() else None,
            visible_only=not is_admin
        )
        self._refresh_statuses(events)

        if filters.status:
            events = [event for event in events if event.status == filters.status.value]

        events.sort(key=lambda event: listing_sort_key(event.status, event.date))

        if is_admin:
            self.notifier.admin_events_listed(events)

        return events

    async def get(self, event_id: int) -> Event:
        """
        Raises:
            NotFoundError: If no event has this id
        """
        event = self._get_or_404(event_id)
        self._refresh_statuses([event])
        return event

    async def update(
        self,
        event_id: int,
        patch: Union[EventUpdate, Mapping[str, Any]],
        caller: Identity
    ) -> Event:
        """
        Apply a patch. Admins may update any event, organizers their own.

        Raises:
            NotFoundError: If the event is unknown or not editable by the caller
            ValidationError: If the patch is malformed or would break capacity
        """
        data = _validate(EventUpdate, patch, "Invalid event update")

        event = self.events.get_by_id(event_id)
        if not event or (not caller.is_admin and event.organizer_id != caller.id):
            raise NotFoundError("Event not found or unauthorized")

        changes: Dict[str, Any] = {
            key: value for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }
        requested_status = changes.pop("status", None)

        if "image_url" in data.model_fields_set and data.image_url is None:
            changes["image_url"] = self.default_image_url
        if "category" in changes:
            changes["category"] = changes["category"].value
        if "date" in changes:
            changes["date"] = to_local_naive(changes["date"])
        if "max_attendees" in changes and changes["max_attendees"] < event.attendee_count:
            raise ValidationError(
                "max_attendees cannot be lower than the current attendee count",
                details={"attendee_count": event.attendee_count}
            )

        date = changes.get("date", event.date)
        if requested_status == EventStatus.CANCELLED:
            changes["status"] = EventStatus.CANCELLED.value
        elif requested_status is not None:
            changes["status"] = derive_status(date, self.clock()).value
        else:
            changes["status"] = resolve_status(event.status, date, self.clock()).value

        try:
            event = self.events.update(event_id, changes)
        except IntegrityError:
            raise ValidationError("max_attendees cannot be lower than the current attendee count")

        logger.info(f"Event {event_id} updated by user {caller.id}: {sorted(changes)}")
        self.notifier.event_updated(event)
        return event

    async def delete(self, event_id: int, caller: Identity) -> None:
        """
        Delete an event and its attendee back-references.

        Raises:
            NotFoundError: If the event is unknown
            PermissionDeniedError: If a non-admin caller does not organize it
        """
        event = self._get_or_404(event_id)
        if not caller.is_admin and event.organizer_id != caller.id:
            raise PermissionDeniedError("Unauthorized to delete this event")

        self.events.delete(event_id)
        logger.info(f"Event {event_id} deleted by user {caller.id}")
        self.notifier.event_deleted(event_id)

    async def register(self, event_id: int, caller: Identity) -> Event:
        """
        Add the caller to the attendees.

        Raises:
            NotFoundError: If the event is unknown or not visible to the caller
            PermissionDeniedError: If the event is disabled and the caller is not an admin
            ConflictError: If the caller is already registered
            CapacityError: If the event is full
        """
        event = self._get_or_404(event_id)
        if not caller.is_admin:
            if not event.is_approved:
                raise NotFoundError("Event not found")
            if event.is_disabled:
                raise PermissionDeniedError("Registration is closed for this event")

        if event.has_attendee(caller.id):
            raise ConflictError("Already registered for this event")

        self.identities.remember(caller)
        if not self.events.add_attendee(event_id, caller.id):
            self._get_or_404(event_id)
            raise CapacityError("Event is full")

        event = self._get_or_404(event_id)
        self._refresh_statuses([event])
        logger.info(f"User {caller.id} registered for event {event_id} ({event.attendee_count}/{event.max_attendees})")
        self.notifier.attendee_updated(event)
        return event

    async def unregister(
        self,
        event_id: int,
        caller: Identity,
        target_email: Optional[str] = None
    ) -> Event:
        """
        Remove an attendee. Admins may name another attendee by email; anyone
        else removes themself.

        Raises:
            NotFoundError: If the event or the named attendee is unknown
            ConflictError: If the caller is not registered
        """
        event = self._get_or_404(event_id)

        if caller.is_admin and target_email:
            target = self.identities.lookup_by_email(target_email)
            if target is None or not event.has_attendee(target.id):
                raise NotFoundError("Attendee not found")
            if not self.events.remove_attendee(event_id, target.id):
                raise NotFoundError("Attendee not found")
            logger.info(f"Admin {caller.id} removed user {target.id} from event {event_id}")
        else:
            if not self.events.remove_attendee(event_id, caller.id):
                raise ConflictError("Not registered for this event")
            logger.info(f"User {caller.id} unregistered from event {event_id}")

        event = self._get_or_404(event_id)
        self._refresh_statuses([event])
        self.notifier.attendee_updated(event)
        return event

    async def approve(self, event_id: int, caller: Identity) -> Event:
        """
        Raises:
            PermissionDeniedError: If the caller is not an admin
            NotFoundError: If the event is unknown
        """
        if not caller.is_admin:
            raise PermissionDeniedError("Only admins can approve events")

        self._get_or_404(event_id)
        event = self.events.update(event_id, {"is_approved": True})
        self._refresh_statuses([event])

        logger.info(f"Event {event_id} approved by admin {caller.id}")
        self.notifier.event_approved(event)
        return event

    async def toggle_disabled(self, event_id: int, caller: Identity) -> Event:
        """
        Raises:
            PermissionDeniedError: If the caller is not an admin
            NotFoundError: If the event is unknown
        """
        if not caller.is_admin:
            raise PermissionDeniedError("Only admins can toggle event status")

        if not self.events.toggle_disabled(event_id):
            raise NotFoundError("Event not found")

        event = self._get_or_404(event_id)
        self._refresh_statuses([event])

        logger.info(f"Event {event_id} disabled={event.is_disabled} by admin {caller.id}")
        self.notifier.event_toggled(event)
        return event

    async def describe_caller(self, caller: Identity) -> UserEventsResponse:
        """Caller identity with the ids of events it organizes and attends."""
        self.identities.remember(caller)
        users = self.identities.users
        return UserEventsResponse(
            id=caller.id,
            name=caller.name,
            email=caller.email,
            role=caller.role,
            created_events=users.created_event_ids(caller.id),
            attending_events=users.attending_event_ids(caller.id),
        )
