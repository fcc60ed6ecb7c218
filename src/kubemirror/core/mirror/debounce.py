"""
Trailing-edge debounce for coalescing recomputes.

Every ``trigger()`` restarts the quiescence window; the callback runs once,
after the window passes with no further triggers. A zero window still defers
to the next event-loop iteration, so a burst of synchronous triggers
collapses into one call.

Example:
    >>> debouncer = Debouncer(rebuild, window=0.04)
    >>> for event in burst:
    ...     store.apply_event(kind, event)
    ...     debouncer.trigger()
    >>> await asyncio.sleep(0.05)  # rebuild() ran once
"""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Coalesce bursts of triggers into one callback invocation.

    Attributes:
        window: Quiescence window in seconds
        fire_count: Number of times the callback has run
    """

    def __init__(self, callback: Callable[[], None], window: float = 0.04) -> None:
        if window < 0:
            raise ValueError("window must be >= 0")
        self.callback = callback
        self.window = window
        self.fire_count = 0
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """True while a callback is scheduled."""
        return self._handle is not None

    def trigger(self) -> None:
        """(Re)start the window. Must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.window, self._fire)

    def flush(self) -> bool:
        """
        Run a pending callback now.

        Returns:
            True if a callback was pending
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._fire()
        return True

    def cancel(self) -> None:
        """Drop a pending callback without running it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.fire_count += 1
        try:
            self.callback()
        except Exception:
            # Recompute errors are logged, the timer stays usable
            logger.exception("Debounced callback failed")
