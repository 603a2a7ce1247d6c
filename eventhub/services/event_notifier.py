"""
Event Notifier for EventHub.
Maps each lifecycle change to the channels, push event name and payload
connected clients receive.
"""

import logging
import time
from typing import Iterable

from ..schemas.event import serialize_event
from .notification_hub import Channel, NotificationHub

logger = logging.getLogger(__name__)

NEW_EVENT = "newEvent"
EVENT_UPDATED = "eventUpdated"
EVENT_DELETED = "eventDeleted"
ATTENDEE_UPDATE = "attendeeUpdate"
ADMIN_EVENTS_UPDATE = "adminEventsUpdate"

BOTH_CHANNELS = (Channel.ADMIN, Channel.USER)


def _timestamp() -> int:
    return int(time.time() * 1000)


class EventNotifier:
    """
    Publishes lifecycle notifications through the notification hub.
    Failures are logged and never reach the caller.
    """

    def __init__(self, hub: NotificationHub):
        self.hub = hub

    def event_created(self, event):
        """Admins always hear about a new event; users only once it is approved."""
        try:
            channels = BOTH_CHANNELS if event.is_approved else (Channel.ADMIN,)
            self.hub.send(channels, NEW_EVENT, {
                "event": serialize_event(event),
                "timestamp": _timestamp(),
            })
            logger.info(f"Published {NEW_EVENT} for event {event.id}")
        except Exception as e:
            logger.error(f"Failed to publish {NEW_EVENT}: {e}")

    def event_updated(self, event):
        try:
            self.hub.send(BOTH_CHANNELS, EVENT_UPDATED, {
                "event": serialize_event(event),
                "timestamp": _timestamp(),
            })
            logger.info(f"Published {EVENT_UPDATED} for event {event.id}")
        except Exception as e:
            logger.error(f"Failed to publish {EVENT_UPDATED}: {e}")

    def event_deleted(self, event_id: int):
        """Best-effort: may be dropped for slow subscribers."""
        try:
            self.hub.send(BOTH_CHANNELS, EVENT_DELETED, {
                "event_id": event_id,
                "timestamp": _timestamp(),
            }, volatile=True)
            logger.info(f"Published {EVENT_DELETED} for event {event_id}")
        except Exception as e:
            logger.error(f"Failed to publish {EVENT_DELETED}: {e}")

    def attendee_updated(self, event):
        try:
            self.hub.send(BOTH_CHANNELS, ATTENDEE_UPDATE, {
                "event_id": event.id,
                "attendee_count": event.attendee_count,
                "event": serialize_event(event),
            })
            logger.info(f"Published {ATTENDEE_UPDATE} for event {event.id}")
        except Exception as e:
            logger.error(f"Failed to publish {ATTENDEE_UPDATE}: {e}")

    def event_approved(self, event):
        """Admins see an update; users see the event for the first time."""
        try:
            payload = {
                "event": serialize_event(event),
                "timestamp": _timestamp(),
            }
            self.hub.send((Channel.ADMIN,), EVENT_UPDATED, payload)
            self.hub.send((Channel.USER,), NEW_EVENT, payload)
            logger.info(f"Published approval of event {event.id}")
        except Exception as e:
            logger.error(f"Failed to publish approval: {e}")

    def event_toggled(self, event):
        try:
            self.hub.broadcast(EVENT_UPDATED, {"event": serialize_event(event)})
            logger.info(f"Broadcast {EVENT_UPDATED} for event {event.id}")
        except Exception as e:
            logger.error(f"Failed to broadcast {EVENT_UPDATED}: {e}")

    def admin_events_listed(self, events: Iterable):
        try:
            self.hub.send((Channel.ADMIN,), ADMIN_EVENTS_UPDATE, {
                "events": [serialize_event(event) for event in events],
            })
        except Exception as e:
            logger.error(f"Failed to publish {ADMIN_EVENTS_UPDATE}: {e}")
