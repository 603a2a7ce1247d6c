"""
Dependency injection for EventHub.
Provides database sessions, repositories, authentication and the
application-scoped notification hub.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Generator, Optional

from ..core.exceptions import AuthError
from ..db.database import DatabaseConnection, EventRepository, UserRepository
from ..models.event import DEFAULT_IMAGE_URL
from ..schemas.user import Identity
from ..services.blob_store import LocalBlobStore
from ..services.event_notifier import EventNotifier
from ..services.event_service import EventLifecycleService
from ..services.identity import IdentityProvider, JWTService
from ..services.notification_hub import NotificationHub

# Security scheme; missing credentials are reported as AuthError
security = HTTPBearer(auto_error=False)

# Global instances
db_connection = DatabaseConnection()
jwt_service = JWTService()


def get_database_session() -> Generator[Session, None, None]:
    """
    Get database session dependency.

    Yields:
        SQLAlchemy database session
    """
    yield from db_connection.get_session()


def get_event_repository(session: Session = Depends(get_database_session)) -> EventRepository:
    return EventRepository(session)


def get_user_repository(session: Session = Depends(get_database_session)) -> UserRepository:
    return UserRepository(session)


async def get_jwt_service() -> JWTService:
    """
    Get JWT service dependency.

    Returns:
        JWT service instance
    """
    if not jwt_service._initialized:
        await jwt_service.initialize()
    return jwt_service


def get_identity_provider(
    jwt_svc: JWTService = Depends(get_jwt_service),
    users: UserRepository = Depends(get_user_repository)
) -> IdentityProvider:
    return IdentityProvider(jwt_svc, users)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identities: IdentityProvider = Depends(get_identity_provider)
) -> Identity:
    """
    Get current authenticated identity dependency.

    Raises:
        AuthError: If the bearer credential is missing or invalid
    """
    if credentials is None:
        raise AuthError("Not authenticated")
    return identities.resolve(credentials.credentials)


async def get_optional_current_user(
    request: Request,
    identities: IdentityProvider = Depends(get_identity_provider)
) -> Optional[Identity]:
    """
    Get current identity without requiring one.

    Returns:
        Current identity if a valid bearer credential was sent, None otherwise
    """
    authorization = request.headers.get("Authorization")

    if not authorization or not authorization.startswith("Bearer "):
        return None

    try:
        return identities.resolve(authorization.split(" ", 1)[1])
    except AuthError:
        return None


def get_notification_hub(request: Request) -> NotificationHub:
    """The hub created by the application lifespan."""
    return request.app.state.hub


def get_event_notifier(hub: NotificationHub = Depends(get_notification_hub)) -> EventNotifier:
    return EventNotifier(hub)


def get_lifecycle_service(
    request: Request,
    events: EventRepository = Depends(get_event_repository),
    identities: IdentityProvider = Depends(get_identity_provider),
    notifier: EventNotifier = Depends(get_event_notifier)
) -> EventLifecycleService:
    return EventLifecycleService(
        events,
        identities,
        notifier,
        default_image_url=getattr(request.app.state, "default_image_url", DEFAULT_IMAGE_URL)
    )


def get_blob_store(request: Request) -> LocalBlobStore:
    return request.app.state.blob_store
