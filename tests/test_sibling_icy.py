"""Tests for sibling mount discovery and its cache."""

from __future__ import annotations

import threading
import time

import pytest

from icywatch.metadata import sibling_icy
from icywatch.metadata.errors import SiblingNotFound, WatchCancelled
from icywatch.metadata.sibling_icy import (
    SIBLING_LABELS,
    SiblingCache,
    SiblingStrategy,
    build_sibling_candidates,
    detect_sibling_suffix,
    station_cache_key,
)
from icywatch.metadata.transport import CancelToken, build_session
from icywatch.metadata.types import Info


def _strategy(cache: SiblingCache | None = None) -> SiblingStrategy:
    return SiblingStrategy(
        build_session(),
        cache=cache if cache is not None else SiblingCache(),
        candidate_timeout=2.0,
        candidate_delay=0.0,
    )


def test_candidates_replace_trailing_token() -> None:
    candidates = build_sibling_candidates("/rock-flac")
    assert candidates[:3] == ["/rock-320", "/rock-320k", "/rock-256"]
    assert len(candidates) == len(SIBLING_LABELS)


def test_candidates_use_last_segment_and_separator() -> None:
    assert build_sibling_candidates("/flac/jazz_hq/")[0] == "/flac/jazz_320"
    assert build_sibling_candidates("/stream/rock.flac")[-1] == "/stream/rock.mp3"
    assert build_sibling_candidates("") == []


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/rock-flac", "flac"),
        ("/a/rock_256/", "256"),
        ("/rock.ogg", "ogg"),
        ("/rock", "rock"),
        ("/rock-", "rock-"),
    ],
)
def test_detect_sibling_suffix(path: str, expected: str) -> None:
    assert detect_sibling_suffix(path) == expected


def test_station_cache_key_normalizes_host_and_mount() -> None:
    key = station_cache_key("http://user:pw@Radio.Example.com:8000/Rock-FLAC.ogg")
    assert key == "radio.example.com:8000|rock"
    assert station_cache_key("http://radio.example.com:8000/rock_320") == key
    assert station_cache_key("not a url") == ""


def test_cache_put_if_absent_keeps_first() -> None:
    cache = SiblingCache()
    assert cache.put_if_absent("k", "http://a/1") == "http://a/1"
    assert cache.put_if_absent("k", "http://a/2") == "http://a/1"
    assert cache.get("k") == "http://a/1"
    assert "k" in cache
    assert len(cache) == 1
    cache.clear()
    assert cache.get("k") is None


def test_discover_scans_in_priority_order(stub_server, icy_body) -> None:
    stub_server.add(
        "/rock-128",
        icy_body("Sibling Song", meta_interval=16),
        headers={"icy-metaint": "16", "icy-name": "Rock FM"},
    )
    cache = SiblingCache()
    target, info = _strategy(cache).discover(
        f"{stub_server.url}/rock-flac", threading.Event()
    )
    assert target == f"{stub_server.url}/rock-128"
    assert info == Info(title="Sibling Song", station="Rock FM")
    assert stub_server.order == [
        "/rock-320",
        "/rock-320k",
        "/rock-256",
        "/rock-256k",
        "/rock-192",
        "/rock-192k",
        "/rock-128",
    ]
    assert cache.get(station_cache_key(target)) == target


def test_discover_cache_hit_skips_network(stub_server) -> None:
    cache = SiblingCache()
    url = f"{stub_server.url}/rock-flac"
    cached = f"{stub_server.url}/rock-aac"
    cache.put_if_absent(station_cache_key(url), cached)
    target, info = _strategy(cache).discover(url, threading.Event())
    assert target == cached
    assert info == Info()
    assert stub_server.order == []


def test_second_discover_for_same_station_uses_cache(stub_server, icy_body) -> None:
    stub_server.add(
        "/rock-320", icy_body("Cached", meta_interval=8), headers={"icy-metaint": "8"}
    )
    strategy = _strategy()
    first, _info = strategy.discover(f"{stub_server.url}/rock-flac", threading.Event())
    hits = sum(stub_server.hits.values())
    second, info = strategy.discover(f"{stub_server.url}/rock_aac", threading.Event())
    assert second == first == f"{stub_server.url}/rock-320"
    assert info == Info()
    assert sum(stub_server.hits.values()) == hits == 1


def test_trickling_sibling_is_abandoned_at_deadline(monkeypatch, stub_server) -> None:
    stub_server.add(
        "/rock-320", b"\x00" * 200, headers={"icy-metaint": "16000"}, trickle=0.1
    )
    monkeypatch.setattr(sibling_icy, "SIBLING_LABELS", ("320",))
    strategy = SiblingStrategy(
        build_session(), cache=SiblingCache(), candidate_timeout=1.0, candidate_delay=0.0
    )
    started = time.monotonic()
    with pytest.raises(SiblingNotFound):
        strategy.discover(f"{stub_server.url}/rock-flac", threading.Event())
    assert time.monotonic() - started < 4.0


def test_cancel_interrupts_trickling_sibling(monkeypatch, stub_server) -> None:
    stub_server.add(
        "/rock-320", b"\x00" * 200, headers={"icy-metaint": "16000"}, trickle=0.1
    )
    monkeypatch.setattr(sibling_icy, "SIBLING_LABELS", ("320",))
    strategy = SiblingStrategy(
        build_session(), cache=SiblingCache(), candidate_timeout=30.0, candidate_delay=0.0
    )
    stop = CancelToken()
    timer = threading.Timer(0.3, stop.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(WatchCancelled):
            strategy.discover(f"{stub_server.url}/rock-flac", stop)
    finally:
        timer.cancel()
    assert time.monotonic() - started < 3.0


def test_discover_skips_siblings_without_titles(stub_server, icy_body) -> None:
    stub_server.add("/rock-320", icy_body("", meta_interval=4), headers={"icy-metaint": "4"})
    stub_server.add("/rock-320k", b"no metadata here")
    stub_server.add(
        "/rock-256", icy_body("Found", meta_interval=4), headers={"icy-metaint": "4"}
    )
    target, info = _strategy().discover(
        f"{stub_server.url}/rock-flac", threading.Event()
    )
    assert target.endswith("/rock-256")
    assert info.title == "Found"


def test_discover_not_found_is_not_cached(stub_server) -> None:
    cache = SiblingCache()
    with pytest.raises(SiblingNotFound):
        _strategy(cache).discover(f"{stub_server.url}/rock-flac", threading.Event())
    assert len(cache) == 0
    assert sum(stub_server.hits.values()) == len(SIBLING_LABELS)


def test_discover_rejects_invalid_url() -> None:
    with pytest.raises(SiblingNotFound):
        _strategy().discover("rock-flac", threading.Event())


def test_discover_honours_stop(stub_server) -> None:
    stop = threading.Event()
    stop.set()
    with pytest.raises(WatchCancelled):
        _strategy().discover(f"{stub_server.url}/rock-flac", stop)
    assert stub_server.order == []


def test_discover_waits_between_candidates(monkeypatch, stub_server) -> None:
    waits: list[float] = []

    class RecordingEvent(threading.Event):
        def wait(self, timeout: float | None = None) -> bool:
            waits.append(timeout or 0.0)
            return False

    strategy = SiblingStrategy(
        build_session(), cache=SiblingCache(), candidate_timeout=2.0, candidate_delay=0.5
    )
    monkeypatch.setattr(sibling_icy, "SIBLING_LABELS", ("320", "128"))
    with pytest.raises(SiblingNotFound):
        strategy.discover(f"{stub_server.url}/rock-flac", RecordingEvent())
    assert waits == [0.5]
