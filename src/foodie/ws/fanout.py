"""Cross-process fan-out of room broadcasts over Redis pub/sub.

Every emit is delivered to the local sockets first and then published on the
broker channel. Each process runs a listener that replays messages published
by other processes into its own rooms. Publishing and subscribing use two
separate connections because a Redis connection in subscribe mode cannot
issue other commands.

Without a reachable broker the adapter keeps working in local-only mode. A
role that loses its connection drops it and walks the candidate list again
at most once per retry interval: the publisher on the next emit, the
subscriber from the listener loop.
"""

import asyncio
import json
import time
import uuid
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from foodie.config import Settings
from foodie.ws.manager import RoomManager, manager

logger = structlog.get_logger()

_BROKER_ERRORS = (RedisError, OSError, asyncio.TimeoutError)

ClientFactory = Callable[[str], aioredis.Redis]


class BrokerRole:
    """One broker connection, tried against each candidate URL in order."""

    role = "broker"

    def __init__(
        self,
        candidates: list[str],
        connect_timeout: float = 3.0,
        client_factory: ClientFactory | None = None,
        retry_interval: float = 5.0,
    ) -> None:
        self.candidates = candidates
        self.connect_timeout = connect_timeout
        self.retry_interval = retry_interval
        self._client_factory = client_factory or self._default_factory
        self.client: aioredis.Redis | None = None
        self.url: str | None = None
        self._last_attempt = 0.0

    def _default_factory(self, url: str) -> aioredis.Redis:
        return aioredis.from_url(url, decode_responses=True, socket_connect_timeout=self.connect_timeout)

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    async def connect(self) -> bool:
        """Connect to the first reachable candidate. Never raises."""
        self._last_attempt = time.monotonic()
        for url in self.candidates:
            client = self._client_factory(url)
            try:
                await asyncio.wait_for(client.ping(), timeout=self.connect_timeout)
            except _BROKER_ERRORS as e:
                logger.debug("broker_candidate_failed", role=self.role, url=url, error=str(e))
                await _close_quietly(client)
                continue
            self.client = client
            self.url = url
            logger.info("broker_connected", role=self.role, url=url)
            return True

        logger.warning("broker_unavailable", role=self.role, candidates=self.candidates)
        return False

    async def ensure_connected(self) -> bool:
        """Reconnect if the last attempt is older than the retry interval."""
        if self.client is not None:
            return True
        if time.monotonic() - self._last_attempt < self.retry_interval:
            return False
        return await self.connect()

    async def mark_down(self, error: Exception) -> None:
        """Drop a connection that failed; the next ``ensure_connected`` retries."""
        logger.warning("broker_connection_lost", role=self.role, url=self.url, error=str(error))
        await self.close()
        self._last_attempt = time.monotonic()

    async def close(self) -> None:
        if self.client is not None:
            await _close_quietly(self.client)
        self.client = None
        self.url = None


class Publisher(BrokerRole):
    role = "publisher"

    async def publish(self, channel: str, message: dict) -> bool:
        if not await self.ensure_connected():
            return False
        try:
            await self.client.publish(channel, json.dumps(message, default=str))  # type: ignore[union-attr]
        except _BROKER_ERRORS as e:
            await self.mark_down(e)
            return False
        return True


class Subscriber(BrokerRole):
    role = "subscriber"


class Broker:
    """The pub/sub broker seen as two independently connected roles."""

    def __init__(
        self,
        candidates: list[str],
        connect_timeout: float = 3.0,
        client_factory: ClientFactory | None = None,
        retry_interval: float = 5.0,
    ) -> None:
        self.publisher = Publisher(candidates, connect_timeout, client_factory, retry_interval)
        self.subscriber = Subscriber(candidates, connect_timeout, client_factory, retry_interval)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Broker":
        return cls(
            settings.broker_candidates(),
            settings.broker_connect_timeout_seconds,
            retry_interval=settings.broker_retry_interval_seconds,
        )

    async def connect(self) -> tuple[bool, bool]:
        return await self.publisher.connect(), await self.subscriber.connect()

    async def close(self) -> None:
        await self.publisher.close()
        await self.subscriber.close()

    def status(self) -> dict[str, bool]:
        return {
            "publisher": self.publisher.is_connected,
            "subscriber": self.subscriber.is_connected,
        }


class FanoutAdapter:
    """Room broadcast that reaches sockets on every process."""

    def __init__(
        self,
        rooms: RoomManager,
        broker: Broker | None = None,
        channel: str = "ws:fanout:messages",
    ) -> None:
        self.rooms = rooms
        self.broker = broker
        self.channel = channel
        self.origin = uuid.uuid4().hex
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_distributed(self) -> bool:
        return self.broker is not None and self.broker.publisher.is_connected

    async def emit(self, room: str, event: str, data: Any) -> int:
        """Deliver locally, then publish for other processes.

        Returns the number of local sockets reached.
        """
        sent = await self.rooms.emit_local(room, event, data)
        if self.broker is not None:
            await self.broker.publisher.publish(
                self.channel,
                {"origin": self.origin, "room": room, "event": event, "data": data},
            )
        return sent

    async def deliver(self, raw: str | bytes) -> int:
        """Replay one published envelope into local rooms.

        Envelopes from this process are skipped since ``emit`` already
        delivered them.
        """
        try:
            if isinstance(raw, bytes):
                raw = raw.decode()
            envelope = json.loads(raw)
            origin = envelope["origin"]
            room = envelope["room"]
            event = envelope["event"]
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError):
            logger.warning("fanout_invalid_message", channel=self.channel)
            return 0

        if origin == self.origin:
            return 0
        return await self.rooms.emit_local(room, event, envelope.get("data"))

    async def start(self) -> None:
        """Start the background listener. Without a broker emits stay local."""
        if self.broker is None:
            logger.warning("fanout_local_only", channel=self.channel)
            return
        self._running = True
        self._task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _listen(self) -> None:
        subscriber = self.broker.subscriber  # type: ignore[union-attr]
        logger.info("fanout_listener_started", channel=self.channel, origin=self.origin)
        try:
            while self._running:
                if not await subscriber.ensure_connected():
                    await asyncio.sleep(subscriber.retry_interval)
                    continue
                try:
                    await self._consume(subscriber.client)
                except _BROKER_ERRORS as e:
                    await subscriber.mark_down(e)
                    await asyncio.sleep(subscriber.retry_interval)
        finally:
            logger.info("fanout_listener_stopped", channel=self.channel)

    async def _consume(self, client: aioredis.Redis) -> None:
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            logger.info("fanout_subscribed", channel=self.channel)
            while self._running:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                sent = await self.deliver(message.get("data", b""))
                if sent > 0:
                    logger.debug("fanout_delivered", recipients=sent)
        finally:
            try:
                await pubsub.unsubscribe()
                await pubsub.aclose()
            except _BROKER_ERRORS:
                pass


async def _close_quietly(client: aioredis.Redis) -> None:
    try:
        await client.aclose()
    except _BROKER_ERRORS:
        pass


_fanout: FanoutAdapter | None = None


def init_fanout(adapter: FanoutAdapter) -> FanoutAdapter:
    global _fanout  # noqa: PLW0603
    _fanout = adapter
    return adapter


def get_fanout() -> FanoutAdapter:
    """Get the process fan-out adapter; local-only until ``init_fanout`` runs."""
    global _fanout  # noqa: PLW0603
    if _fanout is None:
        _fanout = FanoutAdapter(manager)
    return _fanout


def reset_fanout() -> None:
    global _fanout  # noqa: PLW0603
    _fanout = None
