"""Debounce raw StreamTitle events into a stable "Now Playing" title.

Some stations announce a title once per change, others repeat it every few
seconds, and some flap between values while a track changes. A new title is
held as *pending* and shown once it has survived ``window`` seconds: either a
one-shot check fires and finds it still pending, or the same title arrives
again after the window has elapsed.
"""

from __future__ import annotations

import html
import logging
import threading
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

STABLE_WINDOW = 6.0


class Cancellable(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def _start_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.name = "TitleStabilizer"
    timer.daemon = True
    timer.start()
    return timer


class TitleStabilizer:
    """Pending/current title state with generation-checked delayed promotion."""

    def __init__(
        self,
        on_display: Callable[[str], None],
        *,
        window: float = STABLE_WINDOW,
        now: Callable[[], float] = time.monotonic,
        schedule: Scheduler = _start_timer,
    ) -> None:
        self._on_display = on_display
        self._window = max(0.0, window)
        self._now = now
        self._schedule = schedule
        self._lock = threading.Lock()
        self._current = ""
        self._pending = ""
        self._first_seen = 0.0
        self._generation = 0
        self._timer: Optional[Cancellable] = None

    @property
    def current_title(self) -> str:
        with self._lock:
            return self._current

    @property
    def pending_title(self) -> str:
        with self._lock:
            return self._pending

    @property
    def window(self) -> float:
        return self._window

    def submit(self, raw: str) -> None:
        title = html.unescape(raw).strip()
        if not title:
            return
        with self._lock:
            if title == self._current:
                return
            if title != self._pending:
                self._pending = title
                self._first_seen = self._now()
                self._generation += 1
                generation = self._generation
                promote_now = False
            else:
                generation = 0
                promote_now = self._now() - self._first_seen >= self._window
                if promote_now:
                    self._current = title
        if generation:
            timer = self._schedule(self._window, lambda: self._confirm(generation))
            with self._lock:
                if generation == self._generation:
                    self._timer = timer
        elif promote_now:
            self._display(title)

    def reset(self) -> None:
        """Forget all titles; outstanding checks become no-ops."""
        with self._lock:
            self._current = ""
            self._pending = ""
            self._first_seen = 0.0
            self._generation += 1
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def close(self) -> None:
        self.reset()

    def _confirm(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending == self._current:
                return
            title = self._current = self._pending
            self._timer = None
        self._display(title)

    def _display(self, title: str) -> None:
        try:
            self._on_display(title)
        except Exception:
            logger.exception("Title display callback failed")
