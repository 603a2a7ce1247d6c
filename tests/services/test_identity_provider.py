"""
Tests for JWT verification and the identity provider.
"""

import pytest
from datetime import datetime, timedelta, timezone
from jose import jwt
from unittest.mock import AsyncMock, patch

from eventhub.core.exceptions import AuthError
from eventhub.models.event import UserRole
from eventhub.services.identity import IdentityProvider, JWTService


class TestJWTService:
    """Test cases for JWT initialization and verification."""

    @pytest.mark.asyncio
    async def test_initialize_from_config(self):
        service = JWTService()

        with patch("eventhub.services.identity.config") as mock_config:
            mock_config.get_jwt_secret = AsyncMock(return_value="from-config")
            mock_config.get_jwt_algorithm = AsyncMock(return_value="HS512")
            await service.initialize()

        assert service.secret_key == "from-config"
        assert service.algorithm == "HS512"
        assert service._initialized is True

    def test_verify_valid_token(self, jwt_svc):
        token = jwt_svc.create_token({"user_id": 5, "email": "e@example.com", "role": "user"})

        payload = jwt_svc.verify_token(token)

        assert payload["user_id"] == 5
        assert payload["email"] == "e@example.com"

    def test_verify_uninitialized(self):
        assert JWTService().verify_token("anything") is None
        with pytest.raises(RuntimeError):
            JWTService().create_token({"user_id": 1})

    def test_verify_wrong_secret(self, jwt_svc):
        token = jwt.encode({"user_id": 1, "email": "e@example.com", "role": "user"}, "other", algorithm="HS256")
        assert jwt_svc.verify_token(token) is None

    def test_verify_expired(self, jwt_svc):
        token = jwt.encode(
            {
                "user_id": 1, "email": "e@example.com", "role": "user",
                "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            },
            "test-secret",
            algorithm="HS256"
        )
        assert jwt_svc.verify_token(token) is None

    def test_verify_missing_claims(self, jwt_svc):
        token = jwt_svc.create_token({"user_id": 1, "email": "e@example.com"})
        assert jwt_svc.verify_token(token) is None


class TestIdentityProvider:
    """Test cases for credential resolution and email lookup."""

    def test_resolve_registers_identity(self, identity_provider, make_token, alice, user_repo):
        identity = identity_provider.resolve(make_token(alice))

        assert identity == alice
        assert identity.is_admin is False
        assert user_repo.get_by_id(alice.id).email == alice.email

    def test_resolve_admin(self, identity_provider, make_token, admin):
        identity = identity_provider.resolve(make_token(admin))
        assert identity.role == UserRole.ADMIN
        assert identity.is_admin is True

    def test_resolve_refreshes_directory(self, identity_provider, make_token, alice, user_repo):
        identity_provider.resolve(make_token(alice))
        identity_provider.resolve(make_token(alice, name="Alice Cooper"))

        assert user_repo.get_by_id(alice.id).name == "Alice Cooper"

    @pytest.mark.parametrize("credential", [None, "", "not-a-jwt"])
    def test_resolve_bad_credentials(self, identity_provider, credential):
        with pytest.raises(AuthError):
            identity_provider.resolve(credential)

    def test_resolve_malformed_claims(self, identity_provider, make_token, alice):
        with pytest.raises(AuthError):
            identity_provider.resolve(make_token(alice, role="superuser"))
        with pytest.raises(AuthError):
            identity_provider.resolve(make_token(alice, user_id="abc"))

    def test_lookup_by_email(self, identity_provider, make_token, bob):
        assert identity_provider.lookup_by_email(bob.email) is None

        identity_provider.resolve(make_token(bob))
        found = identity_provider.lookup_by_email("BOB@example.com")

        assert found.id == bob.id
        assert found.role == UserRole.USER

    def test_remember(self, identity_provider, admin, user_repo):
        assert identity_provider.remember(admin) is admin
        assert user_repo.get_by_id(admin.id).is_admin is True
