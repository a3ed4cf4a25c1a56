"""Status strategy: poll an Icecast ``status-json.xsl`` endpoint."""

from __future__ import annotations

import json
import logging
import posixpath
import threading
from typing import Any, Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from icywatch.metadata.errors import StatusUnavailable, WatchCancelled
from icywatch.metadata.transport import (
    DEFAULT_USER_AGENT,
    STREAM_ERRORS,
    abort_on_cancel,
)
from icywatch.metadata.types import Info, UpdateCallback

STATUS_JSON_NAME = "status-json.xsl"
STATUS_POLL_INTERVAL = 10.0
STATUS_TIMEOUT = 2.0
MAX_STATUS_BYTES = 1 << 20


def build_status_url(stream_url: str) -> str:
    """``http://host/live/rock`` -> ``http://host/live/status-json.xsl``."""
    parts = urlsplit(stream_url)
    if not parts.scheme or not parts.netloc:
        raise StatusUnavailable(f"invalid stream url {stream_url!r}")
    path = posixpath.join("/", posixpath.dirname(parts.path), STATUS_JSON_NAME)
    return urlunsplit(
        (parts.scheme, parts.netloc, posixpath.normpath(path), parts.query, "")
    )


def extract_sources(value: Any) -> list[dict[str, Any]]:
    """Normalize ``icestats.source``, which is an object for one mount and a
    list for several."""
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def parse_status(payload: Any) -> Optional[Info]:
    """Return the first source with a title, or None."""
    if not isinstance(payload, dict):
        return None
    icestats = payload.get("icestats")
    if not isinstance(icestats, dict):
        return None
    for source in extract_sources(icestats.get("source")):
        title = _text(source.get("title"))
        if not title:
            continue
        station = _text(source.get("server_name")) or _text(source.get("icy-name"))
        return Info(title=title, station=station)
    return None


class StatusJsonStrategy:
    """Poll a status endpoint every ``interval`` seconds."""

    def __init__(
        self,
        session: requests.Session,
        *,
        logger: Optional[logging.Logger] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        interval: float = STATUS_POLL_INTERVAL,
        timeout: float = STATUS_TIMEOUT,
    ) -> None:
        self._session = session
        self._logger = logger or logging.getLogger(__name__)
        self._user_agent = user_agent
        self._interval = interval
        self._timeout = timeout

    def poll_once(
        self, api_url: str, stop: Optional[threading.Event] = None
    ) -> Optional[Info]:
        """One poll, capped at the timeout including the body; None on failure."""
        try:
            response = self._session.get(
                api_url,
                headers={"User-Agent": self._user_agent},
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            self._logger.debug("Status poll %s failed: %s", api_url, exc)
            return None
        with response, abort_on_cancel(response, stop, hard_timeout=self._timeout):
            if not 200 <= response.status_code < 300:
                self._logger.debug(
                    "Status poll %s returned HTTP %d", api_url, response.status_code
                )
                return None
            try:
                body = self._read_body(response)
            except STREAM_ERRORS as exc:
                self._logger.debug("Status poll %s failed: %s", api_url, exc)
                return None
        if body is None:
            self._logger.debug("Status poll %s: body too large", api_url)
            return None
        try:
            payload = json.loads(body)
        except ValueError as exc:
            self._logger.debug("Status poll %s: malformed JSON: %s", api_url, exc)
            return None
        return parse_status(payload)

    def _read_body(self, response: requests.Response) -> Optional[bytes]:
        chunks: list[bytes] = []
        size = 0
        for chunk in response.iter_content(64 * 1024):
            size += len(chunk)
            if size > MAX_STATUS_BYTES:
                return None
            chunks.append(chunk)
        return b"".join(chunks)

    def watch(
        self,
        stream_url: str,
        api_url: str,
        stop: threading.Event,
        on_ready: Optional[Callable[[str], None]],
        on_update: UpdateCallback,
    ) -> None:
        """Poll until ``stop`` is set.

        The first poll decides the strategy: if it fails, StatusUnavailable is
        raised without retrying. Later failed polls are skipped.
        """
        target = api_url.strip() or build_status_url(stream_url)
        info = self.poll_once(target, stop)
        if stop.is_set():
            raise WatchCancelled("status watch cancelled")
        if info is None:
            raise StatusUnavailable(f"status-json unavailable at {target}")
        self._logger.info("Polling %s every %.0fs", target, self._interval)
        if on_ready is not None:
            on_ready(target)
        on_update(info)
        while not stop.wait(self._interval):
            info = self.poll_once(target, stop)
            if info is not None:
                on_update(info)
        raise WatchCancelled("status watch cancelled")
