"""HTTP plumbing shared by the metadata strategies."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import socket
import threading
from typing import Callable, Iterator, Optional, Union
from urllib.parse import urljoin

import requests
import urllib3

from icywatch.metadata.errors import IcyUnavailable, MetadataError, WatchCancelled

logger = logging.getLogger(__name__)

# Stations sometimes reject exotic agents; look like a desktop browser.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
MAX_REDIRECTS = 5

Timeout = Union[float, tuple[float, float]]

STREAM_ERRORS: tuple[type[BaseException], ...] = (
    requests.RequestException,
    urllib3.exceptions.HTTPError,
    OSError,
    EOFError,
)


class CancelToken(threading.Event):
    """Stop event that also runs abort hooks when set.

    Strategies register a hook per open response so that setting the token
    unblocks a read in progress instead of waiting for the next chunk.
    """

    def __init__(self) -> None:
        super().__init__()
        self._hooks_lock = threading.Lock()
        self._hooks: dict[int, Callable[[], None]] = {}
        self._next_key = 0

    def set(self) -> None:
        with self._hooks_lock:
            super().set()
            hooks = list(self._hooks.values())
            self._hooks.clear()
        for hook in hooks:
            hook()

    def on_cancel(self, hook: Callable[[], None]) -> Callable[[], None]:
        """Run ``hook`` when the token is set; return an unregister function.

        An already set token runs ``hook`` immediately.
        """
        with self._hooks_lock:
            if not self.is_set():
                key = self._next_key
                self._next_key += 1
                self._hooks[key] = hook
                return lambda: self._discard(key)
        hook()
        return lambda: None

    def _discard(self, key: int) -> None:
        with self._hooks_lock:
            self._hooks.pop(key, None)


def _response_socket(response: requests.Response) -> Optional[socket.socket]:
    raw = response.raw
    sock = getattr(getattr(raw, "connection", None), "sock", None)
    if sock is not None:
        return sock
    # http.client drops connection.sock for close-delimited bodies; the
    # socket then lives only behind the body reader.
    reader = getattr(getattr(raw, "_fp", None), "fp", None)
    return getattr(getattr(reader, "raw", None), "_sock", None)


def abort_response(response: requests.Response) -> None:
    """Shut down the socket under ``response`` so a blocked read returns.

    Safe to call from any thread; the owning thread still closes the
    response.
    """
    sock = _response_socket(response)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as exc:
        logger.debug("Socket already closed for %s: %s", response.url, exc)


@contextmanager
def abort_on_cancel(
    response: requests.Response,
    stop: Optional[threading.Event],
    *,
    hard_timeout: Optional[float] = None,
) -> Iterator[None]:
    """Abort ``response`` when ``stop`` is set or ``hard_timeout`` elapses.

    Only a :class:`CancelToken` can interrupt a read in progress; a plain
    event is still honoured between chunks by the readers.
    """
    timer: Optional[threading.Timer] = None
    if hard_timeout is not None:
        timer = threading.Timer(max(0.0, hard_timeout), abort_response, (response,))
        timer.name = "ResponseDeadline"
        timer.daemon = True
        timer.start()
    unregister: Optional[Callable[[], None]] = None
    if isinstance(stop, CancelToken):
        unregister = stop.on_cancel(lambda: abort_response(response))
    try:
        yield
    finally:
        if timer is not None:
            timer.cancel()
        if unregister is not None:
            unregister()


def build_session() -> requests.Session:
    """Return a session for metadata requests."""
    session = requests.Session()
    session.headers["Accept"] = "*/*"
    return session


def icy_headers(user_agent: str) -> dict[str, str]:
    return {"Icy-MetaData": "1", "User-Agent": user_agent}


def open_stream(
    session: requests.Session,
    url: str,
    *,
    headers: dict[str, str],
    timeout: Timeout,
    stop: Optional[threading.Event] = None,
    max_redirects: int = MAX_REDIRECTS,
) -> requests.Response:
    """GET ``url`` following redirects by hand.

    ICY headers must be read from the final response, so redirects are never
    delegated to requests.
    """
    target = url
    for _hop in range(max_redirects + 1):
        if stop is not None and stop.is_set():
            raise WatchCancelled("cancelled before connect")
        response = session.get(
            target,
            headers=headers,
            stream=True,
            timeout=timeout,
            allow_redirects=False,
        )
        if not 300 <= response.status_code < 400:
            return response
        location = response.headers.get("Location", "")
        response.close()
        if not location:
            raise MetadataError(f"redirect without location from {target}")
        target = urljoin(target, location)
        logger.debug("Following redirect to %s", target)
    raise MetadataError(f"more than {max_redirects} redirects for {url}")


def icy_meta_interval(response: requests.Response) -> int:
    """Return the positive icy-metaint of ``response`` or raise IcyUnavailable."""
    raw = response.headers.get("icy-metaint", "").strip()
    if not raw:
        raise IcyUnavailable(f"no icy-metaint header from {response.url}")
    try:
        value = int(raw)
    except ValueError:
        raise IcyUnavailable(f"invalid icy-metaint {raw!r}") from None
    if value <= 0:
        raise IcyUnavailable(f"invalid icy-metaint {raw!r}")
    return value
