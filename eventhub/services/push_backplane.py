"""
Redis push backplane for EventHub.
Relays push envelopes between worker processes so that every process fans
each push out to its own connections.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional
import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisPushBackplane:
    """
    Publishes push envelopes to Redis and delivers received ones to the local hub.
    A single publisher task drains the outbox, so envelopes reach Redis in send order.
    """

    def __init__(
        self,
        redis_client,
        hub,
        channel: str = "eventhub:push",
        owns_client: bool = False,
        flush_timeout: float = 5.0
    ):
        self.redis = redis_client
        self.owns_client = owns_client
        self.hub = hub
        self.channel = channel
        self.flush_timeout = flush_timeout
        self.running = False
        self.pubsub = None
        self._outbox: Optional[asyncio.Queue] = None
        self._publisher: Optional[asyncio.Task] = None
        self._listener: Optional[asyncio.Task] = None

    @classmethod
    async def connect(cls, redis_url: str, hub, channel: str = "eventhub:push") -> "RedisPushBackplane":
        """
        Open a Redis client for the backplane and check it answers.
        The backplane closes the client when stopped.
        """
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            health_check_interval=30
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error(f"Failed to reach Redis for the push backplane: {e}")
            await client.aclose()
            raise
        return cls(client, hub, channel=channel, owns_client=True)

    def publish(self, envelope: Dict[str, Any]) -> None:
        """Queue an envelope for the publisher task; never waits on Redis."""
        if not self.running:
            logger.warning(f"Push backplane not running, dropping {envelope.get('type')}")
            return
        self._outbox.put_nowait(envelope)

    async def _publish(self, envelope: Dict[str, Any]):
        try:
            await self.redis.publish(self.channel, json.dumps(envelope, default=str))
            logger.debug(f"Published {envelope['type']} to {self.channel}")
        except Exception as e:
            logger.error(f"Failed to publish {envelope.get('type')} to backplane: {e}")

    async def _drain_outbox(self):
        while True:
            envelope = await self._outbox.get()
            try:
                await self._publish(envelope)
            finally:
                self._outbox.task_done()

    async def start(self):
        """Subscribe and start relaying."""
        if self.running:
            return

        self.pubsub = self.redis.pubsub()
        await self.pubsub.subscribe(self.channel)
        self._outbox = asyncio.Queue()
        self.running = True
        self._publisher = asyncio.create_task(self._drain_outbox())
        self._listener = asyncio.create_task(self._listen_for_messages())
        logger.info(f"Push backplane listening on {self.channel}")

    async def stop(self):
        """Flush queued publishes, then stop relaying."""
        if not self.running:
            return

        self.running = False
        try:
            await asyncio.wait_for(self._outbox.join(), timeout=self.flush_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Push backplane stopped with {self._outbox.qsize()} unpublished envelopes")

        for task in (self._publisher, self._listener):
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self.pubsub:
            await self.pubsub.unsubscribe(self.channel)
            await self.pubsub.aclose()
        if self.owns_client:
            await self.redis.aclose()

        logger.info("Push backplane stopped")

    async def _listen_for_messages(self):
        while self.running:
            try:
                message = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message["type"] == "message":
                    self._handle_message(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in backplane listener: {e}")
                await asyncio.sleep(1.0)

    def _handle_message(self, message):
        try:
            envelope = json.loads(message["data"])
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed backplane message: {e}")
            return

        if "type" not in envelope:
            logger.warning("Discarding backplane message without type")
            return

        self.hub.deliver(envelope)
