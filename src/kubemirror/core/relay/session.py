"""
Per-connection subscription multiplexing.

A Session owns the subscription table for one client channel. Each
subscription runs two asyncio tasks joined by a bounded queue:

    reader     ChangeStreamClient.open_stream(path) -> queue.put(event)
    forwarder  queue.get() -> transform -> SessionChannel.send(...)

A full queue stalls the reader, so events are never dropped. All writes to
the channel are serialized by one lock in SessionChannel. There is no
process-wide mutable state; closing a session tears down everything it owns.

Example:
    >>> session = Session(websocket.send_text, stream_client, RelayConfig())
    >>> await session.start()
    >>> await session.handle_frame('{"id": "a", "action": "subscribe", "path": "/api/v1/pods"}')
    >>> await session.close()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from kubemirror.core.config.models import RelayConfig
from kubemirror.core.errors import (
    AlreadySubscribedError,
    InvalidMessageError,
    NotSubscribedError,
    ProtocolError,
    StreamError,
)
from kubemirror.core.relay.protocol import (
    Action,
    ClientMessage,
    ServerMessage,
    SubscriptionStatus,
    data_message,
    error_message,
    ready_message,
    stats_message,
    status_message,
)
from kubemirror.core.relay.transform import parse_projection_fields, transform_object
from kubemirror.core.stream.models import ChangeEvent

logger = logging.getLogger(__name__)

# Queue sentinel marking the end of a subscription's stream
_END = object()


class StreamSource(Protocol):
    """Anything that can open a change stream (ChangeStreamClient in production)."""

    def open_stream(self, path: str) -> AsyncIterator[ChangeEvent]: ...


@dataclass
class Counters:
    """Cumulative per-session counters reported in stats messages."""

    objects: int = 0
    bytes_sent: int = 0
    managed_bytes_removed: int = 0


class SessionChannel:
    """
    Serialized writer over a client channel.

    Every outgoing frame goes through one asyncio.Lock so frames from
    concurrent forwarders never interleave.
    """

    def __init__(self, send_text: Callable[[str], Awaitable[None]], counters: Counters) -> None:
        self._send_text = send_text
        self._lock = asyncio.Lock()
        self._counters = counters
        self.closed = False

    async def send(self, message: ServerMessage) -> bool:
        """
        Write one message.

        Returns:
            False if the channel is closed or the write failed
        """
        payload = message.to_json()
        async with self._lock:
            if self.closed:
                return False
            try:
                await self._send_text(payload)
            except Exception as e:
                logger.debug("Channel write failed: %s", e)
                self.closed = True
                return False
            self._counters.bytes_sent += len(payload)
            return True


@dataclass
class Subscription:
    """One active subscription within a session."""

    id: str
    path: str
    fields: list[str]
    queue: asyncio.Queue
    tasks: list[asyncio.Task] = field(default_factory=list)


class Session:
    """
    Subscription table and lifecycle for one connected client.

    Attributes:
        counters: Cumulative objects/bytes counters for stats messages
        subscriptions: Active subscriptions keyed by path
    """

    def __init__(
        self,
        send_text: Callable[[str], Awaitable[None]],
        source: StreamSource,
        config: RelayConfig | None = None,
    ) -> None:
        self.config = config or RelayConfig()
        self.source = source
        self.counters = Counters()
        self.channel = SessionChannel(send_text, self.counters)
        self.subscriptions: dict[str, Subscription] = {}
        self._stats_task: asyncio.Task | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Send the ready message and start periodic stats."""
        await self.channel.send(ready_message())
        if self.config.stats_interval > 0:
            self._stats_task = asyncio.create_task(self._stats_loop())

    async def close(self) -> None:
        """Cancel every subscription and stop stats. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        if self._stats_task is not None:
            self._stats_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stats_task
            self._stats_task = None

        for path in list(self.subscriptions):
            await self._cancel(path)
        self.channel.closed = True
        logger.debug("Session closed")

    async def _stats_loop(self) -> None:
        interval = self.config.stats_interval
        while True:
            await asyncio.sleep(interval)
            await self.channel.send(
                stats_message(
                    self.counters.objects,
                    self.counters.bytes_sent,
                    self.counters.managed_bytes_removed,
                    interval,
                )
            )

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def handle_frame(self, raw: str | bytes) -> None:
        """Dispatch one client frame. Protocol errors are reported, never raised."""
        try:
            message = ClientMessage.parse_frame(raw)
            if message.action == Action.SUBSCRIBE.value:
                await self.subscribe(message.id, message.path, message.params)
            elif message.action == Action.UNSUBSCRIBE.value:
                await self.unsubscribe(message.id, message.path)
            else:
                raise InvalidMessageError(
                    "unknown action", request_id=message.id, path=message.path
                )
        except ProtocolError as e:
            logger.debug("Protocol error for %r: %s", e.path, e.message)
            await self.channel.send(error_message(e.request_id, e.path, e.message))

    async def subscribe(
        self, request_id: str, path: str, params: dict[str, str] | None = None
    ) -> None:
        """
        Start streaming ``path`` to the client under ``request_id``.

        Raises:
            AlreadySubscribedError: If ``path`` is already active in this session
        """
        if path in self.subscriptions:
            raise AlreadySubscribedError(path, request_id=request_id)

        fields = parse_projection_fields((params or {}).get("fields"))
        sub = Subscription(
            id=request_id,
            path=path,
            fields=fields,
            queue=asyncio.Queue(maxsize=self.config.queue_capacity),
        )
        self.subscriptions[path] = sub
        sub.tasks = [
            asyncio.create_task(self._reader(sub)),
            asyncio.create_task(self._forwarder(sub)),
        ]
        logger.info("Subscribed %s (id=%s)", path, request_id)
        await self.channel.send(status_message(request_id, path, SubscriptionStatus.SUBSCRIBED))

    async def unsubscribe(self, request_id: str, path: str) -> None:
        """
        Stop streaming ``path``; the ack is sent after delivery has stopped.

        Raises:
            NotSubscribedError: If ``path`` has no active subscription
        """
        if path not in self.subscriptions:
            raise NotSubscribedError(path, request_id=request_id)

        await self._cancel(path)
        logger.info("Unsubscribed %s (id=%s)", path, request_id)
        await self.channel.send(
            status_message(request_id, path, SubscriptionStatus.UNSUBSCRIBED)
        )

    async def _cancel(self, path: str) -> None:
        sub = self.subscriptions.pop(path, None)
        if sub is None:
            return
        current = asyncio.current_task()
        for task in sub.tasks:
            if task is not current:
                task.cancel()
        for task in sub.tasks:
            if task is not current:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    # -------------------------------------------------------------------------
    # Per-subscription tasks
    # -------------------------------------------------------------------------

    async def _reader(self, sub: Subscription) -> None:
        try:
            async with contextlib.aclosing(self.source.open_stream(sub.path)) as stream:
                async for event in stream:
                    await sub.queue.put(event)
        except StreamError as e:
            logger.warning("Stream %s failed: %s", sub.path, e)
            await sub.queue.put(e)
        except Exception as e:
            logger.exception("Stream %s failed unexpectedly", sub.path)
            await sub.queue.put(StreamError(sub.path, f"stream failed: {e}"))
        else:
            logger.info("Stream %s ended", sub.path)
        await sub.queue.put(_END)

    async def _forwarder(self, sub: Subscription) -> None:
        while True:
            item = await sub.queue.get()
            if item is _END:
                break
            if isinstance(item, StreamError):
                await self.channel.send(error_message(sub.id, sub.path, item.message))
                continue
            if not await self._deliver(sub, item):
                # Channel is gone; close() reaps the reader
                return
        # Stream finished on its own: drop the subscription so the path can be reused
        if self.subscriptions.get(sub.path) is sub:
            del self.subscriptions[sub.path]

    async def _deliver(self, sub: Subscription, event: ChangeEvent) -> bool:
        data = event.to_wire()
        if event.object is not None:
            obj, removed = transform_object(event.object, sub.fields)
            data["object"] = obj
            self.counters.managed_bytes_removed += removed
            self.counters.objects += 1
        if event.is_error and event.error and event.object is None:
            data["object"] = {"message": event.error}
        return await self.channel.send(data_message(sub.id, sub.path, data))


__all__ = ["Counters", "Session", "SessionChannel", "StreamSource", "Subscription"]
