"""
Pytest configuration and shared fixtures.

Provides in-memory change-stream sources, config isolation, and a helper
for driving asyncio code step by step.
"""

import asyncio
import os
from collections.abc import AsyncIterator, Callable

import pytest

from kubemirror.core.config import clear_cache
from kubemirror.core.config.models import RelayConfig
from kubemirror.core.stream.models import ChangeEvent

# ==============================================================================
# In-memory change streams
# ==============================================================================


class FakeStreamSource:
    """
    Change-stream source driven from the test.

    ``push`` queues an event, ``fail`` queues an exception to raise, and
    ``end`` ends the stream cleanly. Must be driven from the loop that
    consumes it.
    """

    def __init__(self) -> None:
        self.queues: dict[str, asyncio.Queue] = {}
        self.opened: list[str] = []
        self.closed: list[str] = []

    def _queue(self, path: str) -> asyncio.Queue:
        return self.queues.setdefault(path, asyncio.Queue())

    def push(self, path: str, event: ChangeEvent) -> None:
        self._queue(path).put_nowait(event)

    def fail(self, path: str, error: BaseException) -> None:
        self._queue(path).put_nowait(error)

    def end(self, path: str) -> None:
        self._queue(path).put_nowait(None)

    async def open_stream(self, path: str) -> AsyncIterator[ChangeEvent]:
        self.opened.append(path)
        queue = self._queue(path)
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.closed.append(path)


class ScriptedStreamSource:
    """
    Change-stream source that replays a fixed script per path.

    After the script, the stream stays open until cancelled, unless the path
    is listed in ``ending``. Safe to use from a TestClient's server thread.
    """

    def __init__(
        self,
        scripts: dict[str, list[ChangeEvent]] | None = None,
        ending: set[str] | None = None,
    ) -> None:
        self.scripts = scripts or {}
        self.ending = ending or set()
        self.opened: list[str] = []

    async def open_stream(self, path: str) -> AsyncIterator[ChangeEvent]:
        self.opened.append(path)
        for event in self.scripts.get(path, []):
            yield event
        if path not in self.ending:
            await asyncio.Event().wait()


@pytest.fixture
def fake_source():
    """Provide a test-driven change-stream source."""
    return FakeStreamSource()


@pytest.fixture
def scripted_source():
    """Provide the scripted source class; call it with per-path scripts."""
    return ScriptedStreamSource


# ==============================================================================
# Config Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep tests away from real config files, .env files and KUBEMIRROR_* vars."""
    for key in list(os.environ):
        if key.startswith("KUBEMIRROR_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def relay_config():
    """Relay config with periodic stats disabled."""
    return RelayConfig(stats_interval=0, queue_capacity=4)


# ==============================================================================
# Async helpers
# ==============================================================================


async def _wait_until(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def wait_until():
    """Yield to the loop until a condition holds; fails after a timeout."""
    return _wait_until
