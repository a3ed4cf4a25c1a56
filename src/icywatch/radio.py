"""Radio playback with a stabilized "Now Playing" line.

Couples a media engine (audio) with a metadata watch session (titles). The
engine only hears about URLs and transport commands; titles never depend on
it.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

from icywatch.metadata import Info, Provider, StrategyHint, WatchSession
from icywatch.title_stabilizer import STABLE_WINDOW, TitleStabilizer

logger = logging.getLogger(__name__)

STREAMING_PLACEHOLDER = "Streaming…"
# Longer than the direct strategy's read timeout.
SESSION_JOIN_TIMEOUT = 20.0


class MediaEngine(Protocol):
    def load(self, url: str) -> None: ...

    def play(self) -> None: ...

    def stop(self) -> None: ...

    def set_volume(self, volume: int) -> None: ...

    def get_state(self) -> str: ...

    def release(self) -> None: ...


class NullEngine:
    """Engine that plays nothing; used for metadata-only watching."""

    def __init__(self) -> None:
        self.url = ""
        self.state = "stopped"
        self.volume = 100

    def load(self, url: str) -> None:
        self.url = url
        self.state = "stopped"

    def play(self) -> None:
        self.state = "playing"

    def stop(self) -> None:
        self.state = "stopped"

    def set_volume(self, volume: int) -> None:
        self.volume = volume

    def get_state(self) -> str:
        return self.state

    def release(self) -> None:
        self.state = "released"


class RadioPlayer:
    def __init__(
        self,
        engine: MediaEngine,
        provider: Optional[Provider] = None,
        *,
        on_now: Optional[Callable[[str], None]] = None,
        on_station: Optional[Callable[[str], None]] = None,
        on_resolved: Optional[Callable[[StrategyHint], None]] = None,
        stabilizer_window: float = STABLE_WINDOW,
        join_timeout: float = SESSION_JOIN_TIMEOUT,
    ) -> None:
        self._engine = engine
        self._provider = provider or Provider()
        self._on_now = on_now
        self._on_station = on_station
        self._on_resolved = on_resolved
        self._join_timeout = join_timeout
        self._stabilizer = TitleStabilizer(self._emit_now, window=stabilizer_window)
        self._lock = threading.Lock()
        self._session: Optional[WatchSession] = None
        self._stream_url = ""
        self._hint = StrategyHint()
        self._station_sent = False
        self._playing = False

    @property
    def stream_url(self) -> str:
        return self._stream_url

    @property
    def hint(self) -> StrategyHint:
        """Strategy hint for the loaded stream, updated when one resolves."""
        with self._lock:
            return self._hint

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def session(self) -> Optional[WatchSession]:
        return self._session

    @property
    def now_playing(self) -> str:
        return self._stabilizer.current_title

    def load(self, url: str, hint: Optional[StrategyHint] = None) -> None:
        """Load a stream; the previous metadata session is joined first."""
        self._stop_watcher()
        self._stabilizer.reset()
        cleaned = url.strip()
        self._engine.load(cleaned)
        with self._lock:
            self._stream_url = cleaned
            self._hint = hint or StrategyHint()
            self._station_sent = False

    def play(self) -> None:
        self._engine.play()
        self._playing = True
        self._emit_now(STREAMING_PLACEHOLDER)
        self._start_watcher()

    def stop(self) -> None:
        self._stop_watcher()
        self._engine.stop()
        self._playing = False
        self._stabilizer.reset()

    def set_volume(self, volume: int) -> None:
        self._engine.set_volume(max(0, min(100, int(volume))))

    def close(self) -> None:
        """Stop everything and release the engine; the player is unusable after."""
        self.stop()
        self._stabilizer.close()
        self._engine.release()

    def _start_watcher(self) -> None:
        self._stop_watcher()
        with self._lock:
            url = self._stream_url
            hint = self._hint
            self._station_sent = False
        if not url:
            return
        self._session = self._provider.watch(
            url,
            hint,
            on_update=self._handle_info,
            on_strategy=self._handle_strategy,
        )

    def _stop_watcher(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        if not session.stop(self._join_timeout):
            logger.warning(
                "Metadata watcher for %s did not exit within %.0fs",
                session.stream_url,
                self._join_timeout,
            )

    def _handle_info(self, info: Info) -> None:
        station = info.station.strip()
        if station and self._on_station is not None:
            with self._lock:
                send = not self._station_sent
                self._station_sent = True
            if send:
                self._on_station(station)
        if info.title.strip():
            self._stabilizer.submit(info.title)

    def _handle_strategy(self, hint: StrategyHint) -> None:
        with self._lock:
            self._hint = hint
        if self._on_resolved is not None:
            self._on_resolved(hint)

    def _emit_now(self, title: str) -> None:
        if self._on_now is not None:
            self._on_now(title)
