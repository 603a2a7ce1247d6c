"""
Event status derivation.

Status is a function of the event date and the current time using the
same-calendar-day rule: an event is ``ongoing`` for the whole calendar day
it is scheduled on, ``upcoming`` before that day and ``completed`` after it.
The rule is applied on every create, update and read. A ``cancelled`` event
keeps its status.
"""

from datetime import datetime, time, timedelta
from typing import Optional, Tuple

from ..models.event import EventStatus

STATUS_RANK = {
    EventStatus.ONGOING: 0,
    EventStatus.UPCOMING: 1,
    EventStatus.COMPLETED: 2,
}
UNRANKED = len(STATUS_RANK)


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def derive_status(date: datetime, now: datetime) -> EventStatus:
    """Map (event date, now) to a lifecycle status."""
    date = to_local_naive(date)
    now = to_local_naive(now)

    start_of_today = datetime.combine(now.date(), time.min)
    event_day = datetime.combine(date.date(), time.min)

    if event_day == start_of_today:
        return EventStatus.ONGOING
    if date > now:
        return EventStatus.UPCOMING
    if now > event_day + timedelta(days=1) - timedelta(microseconds=1):
        return EventStatus.COMPLETED
    return EventStatus.UPCOMING


def resolve_status(current: Optional[str], date: datetime, now: datetime) -> EventStatus:
    """Status an event should carry now, honoring terminal cancellation."""
    if current == EventStatus.CANCELLED:
        return EventStatus.CANCELLED
    return derive_status(date, now)


def status_rank(status) -> int:
    try:
        return STATUS_RANK.get(EventStatus(status), UNRANKED)
    except ValueError:
        return UNRANKED


def listing_sort_key(status, date: datetime) -> Tuple[int, datetime]:
    """Ongoing first, then upcoming, then completed, cancelled last; by date within a rank."""
    return status_rank(status), to_local_naive(date)
