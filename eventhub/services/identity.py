"""
Identity provider for EventHub.
Verifies bearer credentials and resolves identities from the directory.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from pydantic import ValidationError as SchemaValidationError
import logging

from ..core.config import config
from ..core.exceptions import AuthError
from ..db.database import UserRepository
from ..schemas.user import Identity

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("user_id", "email", "role")


class JWTService:
    """
    JWT service for token validation.
    """

    def __init__(self):
        self.secret_key: Optional[str] = None
        self.algorithm: Optional[str] = None
        self._initialized = False

    async def initialize(self):
        """Initialize JWT configuration from secrets."""
        self.secret_key = await config.get_jwt_secret()
        self.algorithm = await config.get_jwt_algorithm()
        self._initialized = True

    def configure(self, secret_key: str, algorithm: str = "HS256"):
        """Initialize with explicit settings."""
        self.secret_key = secret_key
        self.algorithm = algorithm
        self._initialized = True

    def create_token(self, claims: Dict[str, Any], expires_minutes: int = 30) -> str:
        """Create a signed token; used by tooling and tests."""
        if not self._initialized:
            raise RuntimeError("JWT service not initialized")

        to_encode = dict(claims)
        to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify and decode a JWT token.

        Args:
            token: JWT token to verify

        Returns:
            Token payload if valid, None otherwise
        """
        if not self._initialized:
            logger.error("JWT service not initialized")
            return None

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])

            if not all(key in payload for key in REQUIRED_CLAIMS):
                return None

            return payload

        except JWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            return None


class IdentityProvider:
    """
    Resolves credentials to identities and looks identities up by email.
    Every successful resolution refreshes the identity directory.
    """

    def __init__(self, jwt_service: JWTService, users: UserRepository):
        self.jwt_service = jwt_service
        self.users = users

    def resolve(self, credential: Optional[str]) -> Identity:
        """
        Resolve a bearer credential.

        Raises:
            AuthError: If the credential is missing, invalid or malformed
        """
        if not credential:
            raise AuthError("Missing credential")

        payload = self.jwt_service.verify_token(credential)
        if payload is None:
            raise AuthError("Could not validate credentials")

        try:
            identity = Identity(
                id=payload["user_id"],
                email=payload["email"],
                name=payload.get("name") or "",
                role=payload["role"],
            )
        except SchemaValidationError as e:
            raise AuthError(f"Malformed credential claims: {e.error_count()} invalid field(s)")

        return self.remember(identity)

    def remember(self, identity: Identity) -> Identity:
        """Make sure the directory knows an identity before it is referenced."""
        self.users.upsert(identity.id, identity.email, identity.name, identity.role.value)
        return identity

    def lookup_by_email(self, email: str) -> Optional[Identity]:
        user = self.users.get_by_email(email)
        if user is None:
            return None
        return Identity.model_validate(user)
