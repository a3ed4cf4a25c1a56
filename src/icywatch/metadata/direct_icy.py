"""Direct strategy: read ICY blocks interleaved in the stream itself."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import requests

from icywatch.metadata.errors import WatchCancelled
from icywatch.metadata.icy_frame import extract_stream_title, header_text, read_meta_block
from icywatch.metadata.transport import (
    DEFAULT_USER_AGENT,
    MAX_REDIRECTS,
    STREAM_ERRORS,
    Timeout,
    abort_on_cancel,
    icy_headers,
    icy_meta_interval,
    open_stream,
)
from icywatch.metadata.types import Info, ReadyCallback, UpdateCallback

# Connect and idle-read limits; a live stream is otherwise read until stopped.
DIRECT_TIMEOUT: Timeout = (7.0, 15.0)


class DirectStrategy:
    """Connect to the stream URL and follow its StreamTitle changes."""

    def __init__(
        self,
        session: requests.Session,
        *,
        logger: Optional[logging.Logger] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: Timeout = DIRECT_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
    ) -> None:
        self._session = session
        self._logger = logger or logging.getLogger(__name__)
        self._user_agent = user_agent
        self._timeout = timeout
        self._max_redirects = max_redirects

    def watch(
        self,
        stream_url: str,
        stop: threading.Event,
        on_ready: ReadyCallback,
        on_update: UpdateCallback,
    ) -> None:
        """Block until the stream fails or ``stop`` is set.

        Raises IcyUnavailable when the final response has no usable
        icy-metaint; any other exception means the connection broke.
        """
        response = open_stream(
            self._session,
            stream_url,
            headers=icy_headers(self._user_agent),
            timeout=self._timeout,
            stop=stop,
            max_redirects=self._max_redirects,
        )
        with response, abort_on_cancel(response, stop):
            meta_interval = icy_meta_interval(response)
            station = header_text(response.headers.get("icy-name"))
            self._logger.info(
                "ICY metadata every %d bytes on %s", meta_interval, response.url
            )
            if station:
                on_update(Info(station=station))
            if on_ready is not None:
                on_ready()
            try:
                self._follow(response, meta_interval, station, stop, on_update)
            except STREAM_ERRORS:
                if stop.is_set():
                    raise WatchCancelled("direct watch cancelled") from None
                raise

    def _follow(
        self,
        response: requests.Response,
        meta_interval: int,
        station: str,
        stop: threading.Event,
        on_update: UpdateCallback,
    ) -> None:
        stream = response.raw
        while True:
            text = read_meta_block(stream, meta_interval, stop)
            if not text:
                continue
            title = extract_stream_title(text)
            if title:
                self._logger.debug("StreamTitle %r", title)
                on_update(Info(title=title, station=station))
            if stop.is_set():
                raise WatchCancelled("direct watch cancelled")
