"""
Notification fan-out for EventHub.

Keeps the registry of live push connections and their channel membership.
Sending never awaits a socket: each connection owns a bounded queue drained
by its own writer task, so a slow subscriber cannot delay the caller.
Delivery is at-most-once and nothing is replayed; clients that miss a push
resynchronize by listing events again.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from ..core.exceptions import NotFoundError, PermissionDeniedError
from ..schemas.user import Identity

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    """Broadcast groups."""
    ADMIN = "admin"
    USER = "user"


class PushConnection:
    """
    A single connected client.
    """

    def __init__(
        self,
        websocket,
        identity: Optional[Identity] = None,
        queue_size: int = 100,
        connection_id: Optional[str] = None
    ):
        self.connection_id = connection_id or uuid.uuid4().hex
        self.websocket = websocket
        self.identity = identity
        self.channels: Set[Channel] = set()
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.sent_count = 0
        self.dropped_count = 0
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

    def __repr__(self):
        return f"<PushConnection(id={self.connection_id}, channels={sorted(c.value for c in self.channels)})>"

    @property
    def is_admin(self) -> bool:
        return bool(self.identity and self.identity.is_admin)

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, on_failure):
        self._writer = asyncio.create_task(self._drain(on_failure))

    def enqueue(self, message: Dict[str, Any]) -> bool:
        """Queue a message without waiting; False if the queue is full or closed."""
        if self._closed:
            return False
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.dropped_count += 1
            return False

    async def _drain(self, on_failure):
        try:
            while True:
                message = await self.queue.get()
                await self.websocket.send_json(message)
                self.sent_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Push connection {self.connection_id} failed while sending: {e}")
            await on_failure(self.connection_id)

    async def close(self, code: int = 1000):
        if self._closed:
            return
        self._closed = True
        current = asyncio.current_task()
        if self._writer and self._writer is not current:
            self._writer.cancel()
            try:
                await self._writer
            except (asyncio.CancelledError, Exception):
                pass
        try:
            await self.websocket.close(code=code)
        except Exception as e:
            logger.debug(f"Closing push connection {self.connection_id}: {e}")


class NotificationHub:
    """
    Channel registry and fan-out.
    One instance per server process, created by the application lifespan.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._connections: Dict[str, PushConnection] = {}
        self._channels: Dict[Channel, Set[str]] = {channel: set() for channel in Channel}
        self._backplane = None
        self._background: Set[asyncio.Task] = set()

    def attach_backplane(self, backplane):
        """Route sends through a cross-process backplane."""
        self._backplane = backplane

    def detach_backplane(self):
        self._backplane = None

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def get_connection(self, connection_id: str) -> PushConnection:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise NotFoundError(f"Unknown push connection {connection_id}")
        return connection

    def members(self, channel: Channel) -> List[str]:
        return sorted(self._channels[Channel(channel)])

    async def connect(self, websocket, identity: Optional[Identity] = None) -> PushConnection:
        """Register a connection and start its writer."""
        connection = PushConnection(websocket, identity=identity, queue_size=self.queue_size)
        self._connections[connection.connection_id] = connection
        connection.start(self.disconnect)
        logger.info(
            f"Push connection {connection.connection_id} opened "
            f"(user={identity.id if identity else None})"
        )
        return connection

    def join(self, connection_id: str, channel) -> Channel:
        """
        Add a connection to a channel.

        Raises:
            PermissionDeniedError: If a non-admin connection asks for the admin channel
        """
        channel = Channel(channel)
        connection = self.get_connection(connection_id)

        if channel == Channel.ADMIN and not connection.is_admin:
            raise PermissionDeniedError("Only admins can join the admin channel")

        connection.channels.add(channel)
        self._channels[channel].add(connection_id)
        logger.debug(f"Push connection {connection_id} joined {channel.value}")
        return channel

    def leave(self, connection_id: str, channel) -> None:
        channel = Channel(channel)
        connection = self._connections.get(connection_id)
        if connection:
            connection.channels.discard(channel)
        self._channels[channel].discard(connection_id)

    async def disconnect(self, connection_id: str, code: int = 1000) -> None:
        """Remove a connection from every channel and stop its writer."""
        connection = self._connections.pop(connection_id, None)
        for members in self._channels.values():
            members.discard(connection_id)
        if connection:
            await connection.close(code=code)
            logger.info(f"Push connection {connection_id} closed")

    async def close_all(self) -> None:
        for connection_id in list(self._connections):
            await self.disconnect(connection_id, code=1001)

    def send(
        self,
        channels: Optional[Iterable],
        event_name: str,
        payload: Dict[str, Any],
        volatile: bool = False
    ) -> None:
        """
        Fan an event out to the members of the given channels.

        Args:
            channels: Channels to target; None targets every connection
            event_name: Push event name
            payload: JSON-ready payload
            volatile: Best-effort delivery that may be dropped under backpressure
        """
        envelope = {
            "channels": None if channels is None else [Channel(c).value for c in channels],
            "type": event_name,
            "data": payload,
            "volatile": volatile,
        }

        if self._backplane is not None:
            self._backplane.publish(envelope)
        else:
            self.deliver(envelope)

    def broadcast(self, event_name: str, payload: Dict[str, Any], volatile: bool = False) -> None:
        """Send to every connected client regardless of channel."""
        self.send(None, event_name, payload, volatile=volatile)

    def deliver(self, envelope: Dict[str, Any]) -> int:
        """
        Enqueue an envelope on every local target connection, once per connection.

        Returns:
            Number of connections the message was queued for
        """
        channels = envelope.get("channels")
        volatile = envelope.get("volatile", False)
        message = {"type": envelope["type"], "data": envelope.get("data")}

        if channels is None:
            targets = set(self._connections)
        else:
            targets = set()
            for channel in channels:
                targets |= self._channels[Channel(channel)]

        delivered = 0
        for connection_id in sorted(targets):
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            if connection.enqueue(message):
                delivered += 1
            elif volatile:
                logger.debug(f"Dropped volatile {message['type']} for {connection_id}")
            else:
                logger.warning(
                    f"Push queue full for {connection_id}, dropping {message['type']} and closing"
                )
                self._spawn(self.disconnect(connection_id, code=1013))

        logger.debug(f"Delivered {message['type']} to {delivered}/{len(targets)} connections")
        return delivered

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def stats(self) -> Dict[str, Any]:
        return {
            "connections": len(self._connections),
            "channels": {channel.value: len(members) for channel, members in self._channels.items()},
            "backplane": self._backplane is not None,
        }
