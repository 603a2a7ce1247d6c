"""
Configuration management for EventHub.
Reads the process environment first and falls back to Zero secrets when a
ZERO_TOKEN is configured.
"""

import os
import asyncio
from urllib.parse import quote_plus
from typing import Dict, Any, List, Optional
import logging

logger = logging.getLogger(__name__)


class ZeroSecretsManager:
    """
    Zero secrets client using the official Zero Python SDK.
    Secrets are fetched once per process and cached.
    """

    def __init__(self, zero_token: str, caller_name: str = "eventhub"):
        self.zero_token = zero_token
        self.caller_name = caller_name
        self._cache: Dict[str, Any] = {}
        self._secrets = None

    def _fetch_blocking(self) -> Dict[str, Any]:
        from zero_python_sdk import zero

        return zero(
            token=self.zero_token,
            pick=["eventhub"],
            caller_name=self.caller_name
        ).fetch()

    async def _fetch_secrets(self):
        """Fetch secrets from Zero if not already cached."""
        if self._secrets is None:
            try:
                loop = asyncio.get_running_loop()
                self._secrets = await loop.run_in_executor(None, self._fetch_blocking)
                logger.info("Successfully fetched secrets from Zero")
            except Exception as e:
                logger.error(f"Failed to fetch secrets from Zero: {e}")
                self._secrets = {}

    def _normalize_key(self, key: str) -> str:
        """Normalize a key to lowercase and replace underscores with hyphens."""
        return key.lower().replace("_", "-")

    async def get_secret(self, key: str) -> Optional[str]:
        """
        Get a secret value by key.

        Args:
            key: The secret key to retrieve

        Returns:
            Secret value or None if not found
        """
        key = self._normalize_key(key)
        if key in self._cache:
            return self._cache[key]

        await self._fetch_secrets()
        secret_value = self._secrets.get("eventhub", {}).get(key)

        if secret_value:
            self._cache[key] = secret_value

        return secret_value


class EventsConfig:
    """
    EventHub configuration manager.
    Every getter resolves environment -> Zero secrets -> default.
    """

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self.environ = environ if environ is not None else os.environ
        zero_token = self.environ.get("ZERO_TOKEN")
        self.secrets_manager = ZeroSecretsManager(zero_token) if zero_token else None

    async def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Resolve a single configuration key."""
        value = self.environ.get(key)
        if value:
            return value

        if self.secrets_manager:
            value = await self.secrets_manager.get_secret(key)
            if value:
                return value

        return default

    async def get_database_url(self) -> str:
        """Get the database connection URL."""
        url = await self.get_value("DATABASE_URL")
        if url:
            return url

        host = await self.get_value("DB_HOST")
        if not host:
            return "sqlite:///./eventhub.db"

        port = await self.get_value("DB_PORT", "5432")
        name = await self.get_value("DB_NAME", "eventhub")
        user = await self.get_value("DB_USER", "eventhub")
        password = await self.get_value("DB_PASSWORD", "eventhub")

        return f"postgresql://{user}:{quote_plus(password)}@{host}:{port}/{name}"

    async def get_redis_url(self) -> Optional[str]:
        """Get the Redis URL, or None when no push backplane is configured."""
        url = await self.get_value("REDIS_URL")
        if url:
            return url

        host = await self.get_value("REDIS_HOST")
        if not host:
            return None

        port = await self.get_value("REDIS_PORT", "6379")
        password = await self.get_value("REDIS_PASSWORD")
        use_tls = await self.get_value("REDIS_USE_TLS")

        protocol = "rediss://" if use_tls else "redis://"

        if password:
            return f"{protocol}:{password}@{host}:{port}"
        return f"{protocol}{host}:{port}"

    async def get_jwt_secret(self) -> str:
        """Get JWT secret key."""
        return await self.get_value("JWT_SECRET", "your-secret-key-change-in-production")

    async def get_jwt_algorithm(self) -> str:
        """Get JWT algorithm."""
        return await self.get_value("JWT_ALGORITHM", "HS256")

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS allowed origins.
        Read from the environment only; middleware is built before the event loop starts.
        """
        origins = self.environ.get("CORS_ORIGINS")
        if origins:
            return [origin.strip() for origin in origins.split(",") if origin.strip()]
        return ["http://localhost:3000", "http://localhost:8080"]

    async def get_upload_config(self) -> Dict[str, Any]:
        """Get blob store configuration."""
        return {
            "upload_dir": await self.get_value("UPLOAD_DIR", "./uploads"),
            "public_base_url": (await self.get_value("PUBLIC_BASE_URL", "http://localhost:5000")).rstrip("/"),
            "max_upload_bytes": int(await self.get_value("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024))),
        }

    async def get_default_image_url(self) -> str:
        """Get the placeholder image used when an event has none."""
        return await self.get_value("DEFAULT_IMAGE_URL", "/default-event.jpg")

    async def get_push_config(self) -> Dict[str, int]:
        """Get push connection tuning."""
        return {
            "queue_size": int(await self.get_value("PUSH_QUEUE_SIZE", "100")),
        }


# Global config instance
config = EventsConfig()
