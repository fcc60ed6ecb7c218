"""
Client-side sync: relay messages in, mirror updates and recomputes out.

MirrorSync turns decoded relay messages into store updates, tracks
connection health in a ConnectionMonitor, and coalesces dependent
recomputes (relationship rebuild, then listeners such as a graph rebuild)
through a Debouncer. RelayClient drives a MirrorSync over a real WebSocket
with exponential-backoff reconnects.

Example:
    >>> sync = MirrorSync(registry=KindRegistry.default())
    >>> sync.add_listener(lambda store: print(len(store.collection("core/Pod"))))
    >>> client = RelayClient("ws://127.0.0.1:8080/ws", sync)
    >>> sync.watch("core/Pod", namespace="default")
    >>> await client.run()
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import websockets
from pydantic import ValidationError

from kubemirror.core.config.models import MirrorConfig
from kubemirror.core.errors import StreamConnectionError
from kubemirror.core.kinds import KindRegistry
from kubemirror.core.mirror.debounce import Debouncer
from kubemirror.core.mirror.store import MirrorStore
from kubemirror.core.relay.protocol import Action, MessageType, ServerMessage
from kubemirror.core.stream.models import ChangeEvent, EventKind

logger = logging.getLogger(__name__)

Listener = Callable[[MirrorStore], None]


# =============================================================================
# Reconnect policy
# =============================================================================


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Exponential backoff: ``min(base * 2**attempt, max_delay)`` seconds.

    Example:
        >>> list(ReconnectPolicy(max_attempts=6).delays())
        [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 10

    @classmethod
    def from_config(cls, config: MirrorConfig) -> ReconnectPolicy:
        return cls(
            base_delay=config.reconnect_base_delay,
            max_delay=config.reconnect_max_delay,
            max_attempts=config.reconnect_max_attempts,
        )

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (zero-based)."""
        return min(self.base_delay * (2**attempt), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def delays(self) -> Iterator[float]:
        for attempt in range(self.max_attempts):
            yield self.delay(attempt)


# =============================================================================
# Connection monitor
# =============================================================================


class ConnectionState(str, Enum):
    """Health of the session or of one subscription."""

    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ConnectionMonitor:
    """
    Tracks session and per-path health for a degraded indicator.

    ``degraded`` is true while the session or any subscription is down and
    clears silently once events resume.
    """

    def __init__(self) -> None:
        self.session_state = ConnectionState.RECONNECTING
        self.path_states: dict[str, ConnectionState] = {}
        self.errors: dict[str, str] = {}

    @property
    def degraded(self) -> bool:
        if self.session_state != ConnectionState.CONNECTED:
            return True
        return any(state != ConnectionState.CONNECTED for state in self.path_states.values())

    def session_up(self) -> None:
        self.session_state = ConnectionState.CONNECTED

    def session_down(self) -> None:
        self.session_state = ConnectionState.RECONNECTING
        for path in self.path_states:
            self.path_states[path] = ConnectionState.RECONNECTING

    def path_failed(self, path: str, error: str) -> None:
        if self.path_states.get(path) != ConnectionState.RECONNECTING:
            logger.warning("Subscription %s is down: %s", path, error)
        self.path_states[path] = ConnectionState.RECONNECTING
        self.errors[path] = error

    def path_active(self, path: str) -> None:
        self.path_states[path] = ConnectionState.CONNECTED
        self.errors.pop(path, None)

    def forget(self, path: str) -> None:
        self.path_states.pop(path, None)
        self.errors.pop(path, None)


# =============================================================================
# Mirror sync
# =============================================================================


@dataclass
class TrackedPath:
    """A path the client wants mirrored."""

    path: str
    kind: str
    request_id: str
    params: dict[str, str] = field(default_factory=dict)
    failures: int = 0

    def subscribe_frame(self) -> dict[str, Any]:
        frame: dict[str, Any] = {
            "id": self.request_id,
            "action": Action.SUBSCRIBE.value,
            "path": self.path,
        }
        if self.params:
            frame["params"] = dict(self.params)
        return frame


class MirrorSync:
    """
    Applies relay messages to a MirrorStore and coalesces recomputes.

    ``handle_message`` returns the frames the caller should send back to the
    relay (resubscribes after ``ready``), which keeps this class free of I/O.
    """

    def __init__(
        self,
        store: MirrorStore | None = None,
        registry: KindRegistry | None = None,
        config: MirrorConfig | None = None,
    ) -> None:
        self.store = store or MirrorStore()
        self.registry = registry or KindRegistry.default()
        self.config = config or MirrorConfig()
        self.monitor = ConnectionMonitor()
        self.tracked: dict[str, TrackedPath] = {}
        self.stats: dict[str, Any] = {}
        self._listeners: list[Listener] = []
        self._debouncer = Debouncer(self.recompute, window=self.config.coalesce_window)
        self._sessions_seen = 0

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    def add_listener(self, listener: Listener) -> None:
        """Register a callback run after each coalesced burst."""
        self._listeners.append(listener)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def watch(
        self,
        kind: str,
        namespace: str | None = None,
        *,
        path: str | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Track a kind and return its subscribe frame.

        The path is resolved through the kind registry unless given.
        """
        path = path or self.registry.watch_path(kind, namespace)
        tracked = self.tracked.get(path)
        if tracked is None:
            tracked = TrackedPath(
                path=path, kind=kind, request_id=uuid.uuid4().hex[:12], params=params or {}
            )
            self.tracked[path] = tracked
        self.monitor.path_states.setdefault(path, ConnectionState.RECONNECTING)
        return tracked.subscribe_frame()

    def unwatch(self, path: str) -> dict[str, Any] | None:
        """Stop tracking ``path`` and return its unsubscribe frame."""
        tracked = self.tracked.pop(path, None)
        self.monitor.forget(path)
        if tracked is None:
            return None
        return {"id": tracked.request_id, "action": Action.UNSUBSCRIBE.value, "path": path}

    def resubscribe_frames(self) -> list[dict[str, Any]]:
        return [tracked.subscribe_frame() for tracked in self.tracked.values()]

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def handle_message(self, raw: str | bytes | dict[str, Any]) -> list[dict[str, Any]]:
        """
        Apply one relay message.

        Returns:
            Frames to send back to the relay
        """
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            message = ServerMessage.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Dropping unreadable relay message: %s", e)
            return []

        if message.type == MessageType.READY:
            return self._on_ready()
        if message.type == MessageType.STATS:
            self.stats = dict((message.data or {}).get("object") or {})
            return []
        if message.type == MessageType.ERROR:
            self._on_error(message)
            return []
        if message.type == MessageType.STATUS:
            logger.debug("Status for %s: %s", message.path, (message.data or {}).get("type"))
            return []
        self._on_data(message)
        return []

    def _on_ready(self) -> list[dict[str, Any]]:
        self._sessions_seen += 1
        if self._sessions_seen > 1:
            # Reconnected: the relay replays full state on resubscribe
            self.store.clear({tracked.kind for tracked in self.tracked.values()})
            self._schedule()
        self.monitor.session_up()
        logger.info("Relay ready, subscribing to %d paths", len(self.tracked))
        return self.resubscribe_frames()

    def _on_error(self, message: ServerMessage) -> None:
        tracked = self.tracked.get(message.path)
        if tracked is None:
            logger.warning("Relay error: %s", message.error)
            return
        tracked.failures += 1
        self.monitor.path_failed(message.path, message.error or "unknown error")

    def _on_data(self, message: ServerMessage) -> None:
        tracked = self.tracked.get(message.path)
        if tracked is None or not message.data:
            return
        try:
            event = ChangeEvent(
                kind=EventKind(message.data.get("type")),
                object=message.data.get("object"),
                source_path=message.path,
            )
        except (ValueError, ValidationError) as e:
            logger.debug("Skipping data message for %s: %s", message.path, e)
            return

        if event.is_error:
            self._on_error(
                message.model_copy(update={"error": str((event.object or {}).get("message", ""))})
            )
            return

        tracked.failures = 0
        self.monitor.path_active(message.path)
        if self.store.apply_event(tracked.kind, event):
            self._schedule()

    # -------------------------------------------------------------------------
    # Recompute
    # -------------------------------------------------------------------------

    def _schedule(self) -> None:
        try:
            self._debouncer.trigger()
        except RuntimeError:
            # No running loop: recompute synchronously
            self.recompute()

    def recompute(self) -> None:
        """Rebuild relationships, then notify listeners."""
        self.store.rebuild_relationships(self.registry.predicates)
        for listener in self._listeners:
            listener(self.store)


# =============================================================================
# Relay client
# =============================================================================


class RelayClient:
    """
    Keeps one WebSocket session to the relay alive and feeds a MirrorSync.

    Reconnects with exponential backoff; a successful ``ready`` resets the
    attempt counter. Subscriptions the relay reports as failed are retried on
    the same schedule.
    """

    def __init__(
        self,
        url: str,
        sync: MirrorSync,
        policy: ReconnectPolicy | None = None,
    ) -> None:
        self.url = url
        self.sync = sync
        self.policy = policy or ReconnectPolicy.from_config(sync.config)
        self._ws: Any = None
        self._stopping = False
        self._retry_tasks: dict[str, asyncio.Task] = {}

    async def send(self, frame: dict[str, Any]) -> None:
        if self._ws is None:
            return
        await self._ws.send(json.dumps(frame))

    async def watch(self, kind: str, namespace: str | None = None, **kwargs: Any) -> None:
        """Track a kind and subscribe right away if connected."""
        await self.send(self.sync.watch(kind, namespace, **kwargs))

    async def unwatch(self, path: str) -> None:
        frame = self.sync.unwatch(path)
        if frame is not None:
            await self.send(frame)

    def stop(self) -> None:
        self._stopping = True

    async def run(self) -> None:
        """
        Connect and process messages until stopped.

        Raises:
            StreamConnectionError: When reconnect attempts are exhausted
        """
        attempt = 0
        while not self._stopping:
            try:
                async with websockets.connect(self.url) as ws:
                    self._ws = ws
                    logger.info("Connected to relay %s", self.url)
                    async for raw in ws:
                        if self._stopping:
                            break
                        if self._is_ready(raw):
                            attempt = 0
                        for frame in self.sync.handle_message(raw):
                            await self.send(frame)
                        self._retry_failed()
                if self._stopping:
                    break
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.warning("Relay connection lost: %s", e)
            finally:
                self._ws = None
                self._cancel_retries()
                self.sync.monitor.session_down()

            if self._stopping:
                break
            if not self.policy.should_retry(attempt):
                raise StreamConnectionError(
                    self.url, "maximum reconnection attempts reached", attempts=attempt
                )
            delay = self.policy.delay(attempt)
            attempt += 1
            logger.info(
                "Reconnecting in %.1fs (attempt %d/%d)", delay, attempt, self.policy.max_attempts
            )
            await asyncio.sleep(delay)

    @staticmethod
    def _is_ready(raw: str | bytes) -> bool:
        try:
            return json.loads(raw).get("type") == MessageType.READY.value
        except (json.JSONDecodeError, AttributeError):
            return False

    def _retry_failed(self) -> None:
        for path, tracked in self.sync.tracked.items():
            if (
                self.sync.monitor.path_states.get(path) == ConnectionState.RECONNECTING
                and tracked.failures
                and path not in self._retry_tasks
                and self.policy.should_retry(tracked.failures - 1)
            ):
                delay = self.policy.delay(tracked.failures - 1)
                self._retry_tasks[path] = asyncio.create_task(self._resubscribe_later(path, delay))

    async def _resubscribe_later(self, path: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            tracked = self.sync.tracked.get(path)
            if tracked is not None:
                logger.info("Resubscribing to %s", path)
                await self.send(tracked.subscribe_frame())
        finally:
            self._retry_tasks.pop(path, None)

    def _cancel_retries(self) -> None:
        for task in self._retry_tasks.values():
            task.cancel()
        self._retry_tasks.clear()


__all__ = [
    "ConnectionMonitor",
    "ConnectionState",
    "MirrorSync",
    "ReconnectPolicy",
    "RelayClient",
    "TrackedPath",
]
