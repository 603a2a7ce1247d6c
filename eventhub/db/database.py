"""
Database connection, session management and repositories for EventHub.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Iterator, List, Optional
from sqlalchemy import create_engine, event as sa_event, not_, or_, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..core.exceptions import ConflictError
from ..models.event import Base, Event, EventAttendee, UserProfile

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Database connection manager for EventHub.
    Handles connection pooling and session management.
    """

    def __init__(self):
        self.engine = None
        self.SessionLocal = None
        self._initialized = False

    def initialize(self, database_url: str):
        """
        Initialize database connection.

        Args:
            database_url: Database connection URL
        """
        try:
            if database_url.startswith("sqlite"):
                engine_options = {"connect_args": {"check_same_thread": False}}
                if ":memory:" in database_url or database_url == "sqlite://":
                    engine_options["poolclass"] = StaticPool
            else:
                engine_options = {"pool_pre_ping": True, "pool_recycle": 300}

            self.engine = create_engine(database_url, echo=False, **engine_options)

            if database_url.startswith("sqlite"):
                sa_event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine
            )

            self._initialized = True
            logger.info("Database connection initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise

    def get_session(self) -> Generator[Session, None, None]:
        """
        Get database session.

        Yields:
            SQLAlchemy database session
        """
        with self.session_scope() as session:
            yield session

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Session for work outside a request, closed and returned to the pool on exit.
        """
        if not self._initialized:
            raise RuntimeError("Database not initialized")

        session = self.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    def create_tables(self):
        """Create all database tables."""
        if not self._initialized:
            raise RuntimeError("Database not initialized")

        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create database tables: {e}")
            raise

    def health_check(self) -> bool:
        """
        Check database health.

        Returns:
            True if database is healthy
        """
        if not self._initialized:
            return False

        try:
            session = self.SessionLocal()
            try:
                session.execute(text("SELECT 1"))
                return True
            finally:
                session.close()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self):
        """Dispose of pooled connections."""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class EventRepository:
    """
    Repository for Event model operations.
    Every mutating method commits its own transaction and rolls back on failure.
    """

    def __init__(self, session: Session):
        self.session = session

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def create(self, event_data: dict) -> Event:
        """Create a new event."""
        event = Event(**event_data)
        self.session.add(event)
        self._commit()
        self.session.refresh(event)
        return event

    def get_by_id(self, event_id: int) -> Optional[Event]:
        """Get event by ID."""
        return self.session.query(Event).filter(Event.id == event_id).first()

    def find(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        visible_only: bool = False
    ) -> List[Event]:
        """
        Find events by category and free text, ordered by date.

        Args:
            category: Exact category to match
            search: Case-insensitive substring matched against title and description
            visible_only: Restrict to approved, enabled events
        """
        query = self.session.query(Event)

        if category:
            query = query.filter(Event.category == category)

        if search:
            pattern = f"%{_escape_like(search)}%"
            query = query.filter(or_(
                Event.title.ilike(pattern, escape="\\"),
                Event.description.ilike(pattern, escape="\\")
            ))

        if visible_only:
            query = query.filter(Event.is_approved.is_(True), Event.is_disabled.is_(False))

        return query.order_by(Event.date, Event.id).all()

    def update(self, event_id: int, event_data: dict) -> Optional[Event]:
        """Update an event."""
        event = self.get_by_id(event_id)
        if event:
            for key, value in event_data.items():
                if hasattr(event, key):
                    setattr(event, key, value)
            self._commit()
            self.session.refresh(event)
        return event

    def save(self):
        """Commit pending changes to loaded events."""
        self._commit()

    def toggle_disabled(self, event_id: int) -> bool:
        """Atomically flip the disabled flag."""
        updated = self.session.query(Event).filter(
            Event.id == event_id
        ).update(
            {Event.is_disabled: not_(Event.is_disabled), Event.updated_at: datetime.now()},
            synchronize_session=False
        )
        self._commit()
        return updated > 0

    def delete(self, event_id: int) -> bool:
        """Delete an event together with its attendee rows."""
        event = self.get_by_id(event_id)
        if event:
            self.session.delete(event)
            self._commit()
            return True
        return False

    def add_attendee(self, event_id: int, user_id: int) -> bool:
        """
        Atomically append an attendee when the event is below capacity.

        Returns:
            False if the capacity guard rejected the append

        Raises:
            ConflictError: If the identity is already an attendee
        """
        try:
            reserved = self.session.query(Event).filter(
                Event.id == event_id,
                Event.attendee_count < Event.max_attendees
            ).update(
                {
                    Event.attendee_count: Event.attendee_count + 1,
                    Event.updated_at: datetime.now()
                },
                synchronize_session=False
            )

            if not reserved:
                self.session.rollback()
                return False

            self.session.add(EventAttendee(event_id=event_id, user_id=user_id))
            self.session.commit()
            return True

        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Already registered for this event")
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def remove_attendee(self, event_id: int, user_id: int) -> bool:
        """
        Atomically remove an attendee.

        Returns:
            False if the identity was not an attendee
        """
        try:
            removed = self.session.query(EventAttendee).filter(
                EventAttendee.event_id == event_id,
                EventAttendee.user_id == user_id
            ).delete(synchronize_session=False)

            if not removed:
                self.session.rollback()
                return False

            self.session.query(Event).filter(
                Event.id == event_id,
                Event.attendee_count > 0
            ).update(
                {
                    Event.attendee_count: Event.attendee_count - 1,
                    Event.updated_at: datetime.now()
                },
                synchronize_session=False
            )
            self.session.commit()
            return True

        except SQLAlchemyError:
            self.session.rollback()
            raise


class UserRepository:
    """
    Repository for the identity directory.
    """

    def __init__(self, session: Session):
        self.session = session

    def upsert(self, user_id: int, email: str, name: str = "", role: str = "user") -> UserProfile:
        """Insert or refresh a directory entry."""
        try:
            user = self.session.query(UserProfile).filter(UserProfile.id == user_id).first()
            if user is None:
                user = UserProfile(id=user_id, email=email, name=name, role=role)
                self.session.add(user)
            elif (user.email, user.name, user.role) != (email, name, role):
                user.email = email
                user.name = name
                user.role = role
            else:
                # Unchanged: release the read transaction
                self.session.rollback()
                return user

            self.session.commit()
            self.session.refresh(user)
            return user

        except SQLAlchemyError:
            self.session.rollback()
            raise

    def get_by_id(self, user_id: int) -> Optional[UserProfile]:
        return self.session.query(UserProfile).filter(UserProfile.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[UserProfile]:
        return self.session.query(UserProfile).filter(
            UserProfile.email.ilike(_escape_like(email.strip()), escape="\\")
        ).first()

    def created_event_ids(self, user_id: int) -> List[int]:
        """Ids of the events the identity organizes."""
        rows = self.session.query(Event.id).filter(
            Event.organizer_id == user_id
        ).order_by(Event.id).all()
        return [row[0] for row in rows]

    def attending_event_ids(self, user_id: int) -> List[int]:
        """Ids of the events the identity is registered for."""
        rows = self.session.query(EventAttendee.event_id).filter(
            EventAttendee.user_id == user_id
        ).order_by(EventAttendee.event_id).all()
        return [row[0] for row in rows]
