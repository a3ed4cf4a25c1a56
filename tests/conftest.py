"""Pytest configuration for icywatch."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import os
import threading
from typing import Callable, Iterator
from urllib.parse import urlsplit

import pytest


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    del config
    if os.environ.get("ICYWATCH_CI") != "1":
        return
    skip_vlc = pytest.mark.skip(reason="Skipping VLC-dependent tests in CI.")
    for item in items:
        if "vlc" in item.keywords:
            item.add_marker(skip_vlc)


@dataclass
class StubResponse:
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    # seconds between single bytes; 0 sends the body at once
    trickle: float = 0.0


class StubServer:
    """Threaded HTTP server answering GETs from a path -> response table."""

    def __init__(self) -> None:
        self.routes: dict[str, StubResponse] = {}
        self.hits: Counter[str] = Counter()
        self.order: list[str] = []
        self.request_headers: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()
        self._closing = threading.Event()
        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), self._handler_class())
        self._httpd.daemon_threads = True
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="StubServer", daemon=True
        )
        self._thread.start()

    @property
    def url(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def add(
        self,
        path: str,
        body: bytes | str = b"",
        *,
        status: int = 200,
        headers: dict[str, str] | None = None,
        trickle: float = 0.0,
    ) -> None:
        data = body.encode("utf-8") if isinstance(body, str) else body
        self.routes[path] = StubResponse(status, dict(headers or {}), data, trickle)

    def close(self) -> None:
        self._closing.set()
        self._httpd.shutdown()
        self._httpd.server_close()

    def _record(self, path: str, headers: dict[str, str]) -> StubResponse:
        with self._lock:
            self.hits[path] += 1
            self.order.append(path)
            self.request_headers[path] = headers
        return self.routes.get(path, StubResponse(404, {}, b"not found"))

    def _handler_class(self) -> type[BaseHTTPRequestHandler]:
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                path = urlsplit(self.path).path
                response = server._record(path, dict(self.headers.items()))
                self.send_response(response.status)
                for key, value in response.headers.items():
                    self.send_header(key, value)
                if not response.trickle:
                    self.send_header("Content-Length", str(len(response.body)))
                self.send_header("Connection", "close")
                self.end_headers()
                if not response.trickle:
                    self.wfile.write(response.body)
                    return
                self._trickle(response)

            def _trickle(self, response: StubResponse) -> None:
                for index in range(len(response.body)):
                    try:
                        self.wfile.write(response.body[index : index + 1])
                        self.wfile.flush()
                    except OSError:
                        return
                    if server._closing.wait(response.trickle):
                        return

            def log_message(self, format: str, *args: object) -> None:
                del format, args

        return Handler


@pytest.fixture
def stub_server() -> Iterator[StubServer]:
    server = StubServer()
    try:
        yield server
    finally:
        server.close()


def _build_icy_body(
    *titles: str, meta_interval: int = 1, audio: bytes = b"\x00"
) -> bytes:
    """Interleave ``titles`` as ICY blocks; an empty title is an empty block."""
    chunk = (audio * meta_interval)[:meta_interval]
    out = bytearray()
    for title in titles:
        out += chunk
        if not title:
            out.append(0)
            continue
        meta = f"StreamTitle='{title}';".encode("utf-8")
        meta += b"\x00" * (-len(meta) % 16)
        out.append(len(meta) // 16)
        out += meta
    return bytes(out)


@pytest.fixture
def icy_body() -> Callable[..., bytes]:
    return _build_icy_body
