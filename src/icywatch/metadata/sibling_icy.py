"""Sibling discovery: find a neighbouring mount point that carries ICY metadata.

Aggregator hosts often serve one program as ``/rock-flac``, ``/rock-320``,
``/rock-128k`` and so on; lossless or high-bitrate mounts frequently lack
inline metadata while their lossy siblings have it.
"""

from __future__ import annotations

import logging
import posixpath
import threading
import time
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from icywatch.metadata.errors import (
    IcyUnavailable,
    NoMetadata,
    SiblingNotFound,
    WatchCancelled,
)
from icywatch.metadata.icy_frame import first_meta_block, header_text
from icywatch.metadata.transport import (
    DEFAULT_USER_AGENT,
    STREAM_ERRORS,
    abort_on_cancel,
    icy_headers,
    icy_meta_interval,
)
from icywatch.metadata.types import Info

SIBLING_LABELS = (
    "320",
    "320k",
    "256",
    "256k",
    "192",
    "192k",
    "128",
    "128k",
    "stream",
    "live",
    "aac",
    "aacp",
    "mp3",
)
CANDIDATE_TIMEOUT = 3.0
CANDIDATE_DELAY = 0.08
_SEPARATORS = "-_."


class SiblingCache:
    """Thread-safe host+basename -> sibling URL map. Positive entries only."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(key)

    def put_if_absent(self, key: str, url: str) -> str:
        """Store ``url`` unless ``key`` is taken; return the stored value."""
        with self._lock:
            return self._entries.setdefault(key, url)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def base_name(path: str) -> str:
    """Lowercase mount name without extension or bitrate/codec suffix."""
    stem = posixpath.splitext(posixpath.basename(path))[0]
    for i, char in enumerate(stem):
        if char in "-_":
            return stem[:i].lower()
    return stem.lower()


def station_cache_key(url: str) -> str:
    parts = urlsplit(url)
    host = parts.netloc.rsplit("@", 1)[-1].lower()
    if not host:
        return ""
    return f"{host}|{base_name(parts.path)}"


def detect_sibling_suffix(path: str) -> str:
    """Return the trailing bitrate/codec token of the last path segment."""
    segment = posixpath.basename(path.rstrip("/"))
    last_sep = max(segment.rfind(sep) for sep in _SEPARATORS)
    if last_sep >= 0 and last_sep + 1 < len(segment):
        return segment[last_sep + 1 :]
    return segment


def build_sibling_candidates(path: str) -> list[str]:
    """Prioritized sibling paths, e.g. ``/rock-flac`` -> ``/rock-320``, ..."""
    if not path:
        return []
    trimmed = ("/" + path.lstrip("/")).rstrip("/")
    suffix = detect_sibling_suffix(trimmed)
    if not suffix:
        return []
    head = trimmed[: len(trimmed) - len(suffix)]
    return [head + label for label in SIBLING_LABELS]


class SiblingStrategy:
    """Try sibling mount points in priority order, one at a time."""

    def __init__(
        self,
        session: requests.Session,
        *,
        cache: SiblingCache,
        logger: Optional[logging.Logger] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        candidate_timeout: float = CANDIDATE_TIMEOUT,
        candidate_delay: float = CANDIDATE_DELAY,
    ) -> None:
        self._session = session
        self._cache = cache
        self._logger = logger or logging.getLogger(__name__)
        self._user_agent = user_agent
        self._candidate_timeout = candidate_timeout
        self._candidate_delay = candidate_delay

    def discover(self, stream_url: str, stop: threading.Event) -> tuple[str, Info]:
        """Return a sibling URL with ICY metadata and its first Info sample.

        Cached hits return an empty Info and touch no network.
        """
        key = station_cache_key(stream_url)
        if key:
            cached = self._cache.get(key)
            if cached:
                self._logger.debug("Sibling cache hit for %s: %s", key, cached)
                return cached, Info()
        target, info = self._scan_candidates(stream_url, stop)
        if key:
            self._cache.put_if_absent(key, target)
        return target, info

    def _scan_candidates(
        self, stream_url: str, stop: threading.Event
    ) -> tuple[str, Info]:
        parts = urlsplit(stream_url)
        if not parts.scheme or not parts.netloc:
            raise SiblingNotFound(f"invalid stream url {stream_url!r}")
        candidates = build_sibling_candidates(parts.path)
        if not candidates:
            raise SiblingNotFound(f"no sibling candidates for {stream_url}")
        last = len(candidates) - 1
        for index, path in enumerate(candidates):
            if stop.is_set():
                raise WatchCancelled("sibling discovery cancelled")
            candidate = urlunsplit((parts.scheme, parts.netloc, path, "", ""))
            info = self._try_candidate(candidate, stop)
            if info is not None:
                self._logger.info("Sibling %s exposes ICY metadata", candidate)
                return candidate, info
            if index < last and stop.wait(self._candidate_delay):
                raise WatchCancelled("sibling discovery cancelled")
        raise SiblingNotFound(f"no sibling metadata for {stream_url}")

    def _try_candidate(self, candidate: str, stop: threading.Event) -> Optional[Info]:
        deadline = time.monotonic() + self._candidate_timeout
        try:
            response = self._session.get(
                candidate,
                headers=icy_headers(self._user_agent),
                stream=True,
                timeout=(self._candidate_timeout, self._candidate_timeout),
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            self._logger.debug("Sibling candidate %s failed: %s", candidate, exc)
            return None
        remaining = deadline - time.monotonic()
        with response, abort_on_cancel(response, stop, hard_timeout=remaining):
            try:
                meta_interval = icy_meta_interval(response)
                title = first_meta_block(
                    response.raw, meta_interval, stop, deadline=deadline
                )
            except (IcyUnavailable, NoMetadata) as exc:
                self._logger.debug("Sibling candidate %s: %s", candidate, exc)
                return None
            except STREAM_ERRORS as exc:
                if stop.is_set():
                    raise WatchCancelled("sibling discovery cancelled") from None
                self._logger.debug("Sibling candidate %s failed: %s", candidate, exc)
                return None
            station = header_text(response.headers.get("icy-name"))
        return Info(title=title, station=station)
