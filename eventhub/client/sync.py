"""
Client-side synchronization for EventHub.

Holds a local view of events keyed by id and folds push messages into it.
Pushes are not replayed, so after a reconnect the view must be rebuilt from
a fresh listing with ``resync``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..services.status import listing_sort_key

logger = logging.getLogger(__name__)

EVENTS_PATH = "/v1/events/"


def _parse_date(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.max


def dedupe_attendees(attendees: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep the first attendee for each email, compared case-insensitively."""
    seen = set()
    unique = []
    for attendee in attendees or []:
        email = (attendee.get("email") or "").strip().lower()
        if email and email in seen:
            continue
        if email:
            seen.add(email)
        unique.append(attendee)
    return unique


class EventSyncStore:
    """
    Local event collection reconciled from listings and push messages.
    """

    def __init__(self, events: Optional[Iterable[Dict[str, Any]]] = None):
        self._events: Dict[int, Dict[str, Any]] = {}
        self.needs_resync = False
        if events is not None:
            self.replace_all(events)

    def __len__(self):
        return len(self._events)

    def __contains__(self, event_id) -> bool:
        return event_id in self._events

    def get(self, event_id: int) -> Optional[Dict[str, Any]]:
        return self._events.get(event_id)

    def events(self) -> List[Dict[str, Any]]:
        """Current view in listing order."""
        return sorted(
            self._events.values(),
            key=lambda event: listing_sort_key(event.get("status"), _parse_date(event.get("date")))
        )

    def replace_all(self, events: Iterable[Dict[str, Any]]):
        """Replace the whole view with a listing."""
        self._events = {event["id"]: event for event in events}

    def upsert(self, event: Dict[str, Any]):
        self._events[event["id"]] = event

    def replace(self, event: Dict[str, Any]) -> bool:
        """Replace an event only if it is already in view."""
        if event["id"] not in self._events:
            return False
        self._events[event["id"]] = event
        return True

    def remove(self, event_id: int) -> bool:
        return self._events.pop(event_id, None) is not None

    def handle(self, message: Dict[str, Any]) -> bool:
        """
        Apply one push message.

        Args:
            message: ``{"type": <event name>, "data": <payload>}``

        Returns:
            True if the local view changed
        """
        kind = message.get("type")
        data = message.get("data") or {}

        if kind == "newEvent":
            self.upsert(data["event"])
            return True

        if kind == "eventUpdated":
            return self.replace(data["event"])

        if kind == "eventDeleted":
            return self.remove(data["event_id"])

        if kind == "attendeeUpdate":
            event = dict(data["event"])
            event["attendees"] = dedupe_attendees(event.get("attendees"))
            return self.replace(event)

        if kind == "adminEventsUpdate":
            self.replace_all(data["events"])
            return True

        logger.debug(f"Ignoring push message {kind}")
        return False

    def mark_disconnected(self):
        """Record that pushes may have been missed."""
        self.needs_resync = True

    async def resync(self, client: httpx.AsyncClient, token: Optional[str] = None, **filters) -> List[Dict[str, Any]]:
        """
        Re-issue the listing and replace the local view with it.

        Args:
            client: HTTP client whose base_url points at the service
            token: Bearer token; admins see unapproved and disabled events
            filters: Optional category, status and search listing filters
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        params = {key: value for key, value in filters.items() if value is not None}

        response = await client.get(EVENTS_PATH, headers=headers, params=params)
        response.raise_for_status()

        events = response.json()
        self.replace_all(events)
        self.needs_resync = False
        logger.info(f"Resynchronized {len(events)} events")
        return self.events()
