"""Strategy dispatcher and per-watch sessions.

``Provider.watch`` returns immediately with a :class:`WatchSession`; the
strategies run on the session's worker thread. Without a hint the chain is
Direct ICY -> sibling discovery -> status-json, and the first strategy that
completes a handshake is reported once as a :class:`StrategyHint`.
"""

from __future__ import annotations

from functools import partial
import logging
import queue
import threading
from typing import Callable, Iterator, Optional

import requests

from icywatch.metadata.direct_icy import DirectStrategy
from icywatch.metadata.errors import IcyUnavailable, SiblingNotFound, WatchCancelled
from icywatch.metadata.sibling_icy import SiblingCache, SiblingStrategy
from icywatch.metadata.status_json import StatusJsonStrategy
from icywatch.metadata.transport import DEFAULT_USER_AGENT, CancelToken, build_session
from icywatch.metadata.types import (
    METADATA_TYPE_ICY,
    METADATA_TYPE_JSON,
    Info,
    MetadataEvent,
    ReadyCallback,
    StrategyCallback,
    StrategyHint,
    UpdateCallback,
)

logger = logging.getLogger(__name__)

_SIBLING_CACHE = SiblingCache()


def default_sibling_cache() -> SiblingCache:
    """The process-wide sibling cache shared by providers by default."""
    return _SIBLING_CACHE


class WatchSession:
    """One metadata watch: a worker thread, a cancel event and an event stream.

    Events are queued for iteration and, when given, passed to the callbacks
    on the worker thread. Nothing is delivered once :meth:`cancel` returns.
    """

    def __init__(
        self,
        stream_url: str,
        hint: StrategyHint,
        *,
        on_update: Optional[UpdateCallback] = None,
        on_strategy: Optional[StrategyCallback] = None,
        logger: Optional[logging.Logger] = None,
        queue_limit: int = 256,
    ) -> None:
        self.stream_url = stream_url
        self.hint = hint
        self._on_update = on_update
        self._on_strategy = on_strategy
        self._logger = logger or logging.getLogger(__name__)
        self._stop = CancelToken()
        self._done = threading.Event()
        self._emit_lock = threading.RLock()
        self._events: queue.Queue[Optional[MetadataEvent]] = queue.Queue(
            maxsize=max(1, queue_limit)
        )
        self._thread: Optional[threading.Thread] = None
        self._resolved: Optional[StrategyHint] = None
        self._error: Optional[BaseException] = None

    @property
    def stop_event(self) -> CancelToken:
        """Set on cancel; also aborts the strategy's open response."""
        return self._stop

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def resolved(self) -> Optional[StrategyHint]:
        return self._resolved

    @property
    def error(self) -> Optional[BaseException]:
        """Exception that ended the watch; None if cancelled or still running."""
        return self._error

    def cancel(self) -> None:
        with self._emit_lock:
            self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker to exit; return True if it has."""
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        return self._done.is_set()

    def stop(self, timeout: Optional[float] = None) -> bool:
        self.cancel()
        return self.join(timeout)

    def get(self, timeout: Optional[float] = None) -> Optional[MetadataEvent]:
        """Next event; None once the session has finished.

        Raises queue.Empty when ``timeout`` elapses first.
        """
        event = self._events.get(timeout=timeout)
        if event is None:
            self._push(None)
        return event

    def __iter__(self) -> Iterator[MetadataEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def emit_update(self, info: Info) -> None:
        with self._emit_lock:
            if self._stop.is_set():
                return
            self._push(info)
            if self._on_update is not None:
                self._invoke(self._on_update, info)

    def report_strategy(self, hint: StrategyHint) -> None:
        with self._emit_lock:
            if self._stop.is_set() or self._resolved is not None:
                return
            self._resolved = hint
            self._logger.info("Metadata strategy %s resolved: %s", hint.type, hint.url)
            self._push(hint)
            if self._on_strategy is not None:
                self._invoke(self._on_strategy, hint)

    def _invoke(self, callback: Callable[..., None], event: MetadataEvent) -> None:
        try:
            callback(event)
        except Exception:
            self._logger.exception("Metadata callback failed for %s", self.stream_url)

    def _push(self, event: Optional[MetadataEvent]) -> None:
        while True:
            try:
                self._events.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._events.get_nowait()
                except queue.Empty:
                    pass

    def _start(self, target: Callable[[WatchSession], None], name: str) -> None:
        self._thread = threading.Thread(
            target=self._run, args=(target,), name=name, daemon=True
        )
        self._thread.start()

    def _run(self, target: Callable[[WatchSession], None]) -> None:
        try:
            target(self)
        except WatchCancelled:
            self._logger.debug("Metadata watch for %s cancelled", self.stream_url)
        except Exception as exc:
            if self._stop.is_set():
                self._logger.debug(
                    "Metadata watch for %s ended after cancel: %s", self.stream_url, exc
                )
            else:
                self._error = exc
                self._logger.info(
                    "Metadata watch for %s ended: %s", self.stream_url, exc
                )
        finally:
            self._finish()

    def _finish(self) -> None:
        self._done.set()
        self._push(None)


class Provider:
    """Resolve and follow "Now Playing" metadata for stream URLs."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        logger: Optional[logging.Logger] = None,
        cache: Optional[SiblingCache] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        direct: Optional[DirectStrategy] = None,
        sibling: Optional[SiblingStrategy] = None,
        status: Optional[StatusJsonStrategy] = None,
    ) -> None:
        http = session or build_session()
        self._logger = logger or logging.getLogger(__name__)
        self.direct = direct or DirectStrategy(
            http, logger=self._logger, user_agent=user_agent
        )
        self.sibling = sibling or SiblingStrategy(
            http,
            cache=cache if cache is not None else default_sibling_cache(),
            logger=self._logger,
            user_agent=user_agent,
        )
        self.status = status or StatusJsonStrategy(
            http, logger=self._logger, user_agent=user_agent
        )

    def watch(
        self,
        stream_url: str,
        hint: Optional[StrategyHint] = None,
        on_update: Optional[UpdateCallback] = None,
        on_strategy: Optional[StrategyCallback] = None,
    ) -> WatchSession:
        """Start watching ``stream_url`` and return the session immediately."""
        url = stream_url.strip()
        hint = hint or StrategyHint()
        session = WatchSession(
            url,
            hint,
            on_update=on_update,
            on_strategy=on_strategy,
            logger=self._logger,
        )
        if not url:
            session._finish()
            return session
        kind = hint.normalized_type
        if kind == METADATA_TYPE_JSON:
            session._start(
                lambda s: self._run_status(s, hint.url.strip()), "MetaWatch-json"
            )
        elif kind == METADATA_TYPE_ICY:
            target = hint.url.strip() or url
            session._start(lambda s: self._run_direct(s, target), "MetaWatch-icy")
        else:
            session._start(self._auto_watch, "MetaWatch-auto")
        return session

    def _run_direct(self, session: WatchSession, url: str) -> None:
        self.direct.watch(
            url,
            session.stop_event,
            lambda: session.report_strategy(StrategyHint(METADATA_TYPE_ICY, url)),
            session.emit_update,
        )

    def _run_status(self, session: WatchSession, api_url: str) -> None:
        self.status.watch(
            session.stream_url,
            api_url,
            session.stop_event,
            lambda actual: session.report_strategy(
                StrategyHint(METADATA_TYPE_JSON, actual)
            ),
            session.emit_update,
        )

    def _auto_watch(self, session: WatchSession) -> None:
        try:
            self._run_direct(session, session.stream_url)
            return
        except IcyUnavailable as exc:
            self._logger.debug("%s; trying sibling mounts", exc)
        try:
            target, info = self.sibling.discover(session.stream_url, session.stop_event)
        except SiblingNotFound as exc:
            self._logger.debug("%s; trying status-json", exc)
        else:
            resolved = StrategyHint(METADATA_TYPE_ICY, target)
            on_ready: ReadyCallback = None
            if info.title:
                # the sibling check was the handshake
                session.emit_update(info)
                session.report_strategy(resolved)
            else:
                # cache hit: resolve on the Direct handshake
                on_ready = partial(session.report_strategy, resolved)
            self.direct.watch(target, session.stop_event, on_ready, session.emit_update)
            return
        self._run_status(session, "")
