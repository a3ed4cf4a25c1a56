"""Tests for the VLC engine wrapper using fakes."""

from __future__ import annotations


import pytest

from icywatch import player_vlc


class FakeState:
    def __init__(self, name: str) -> None:
        self.name = name


class FakeMedia:
    def __init__(self, url: str) -> None:
        self.url = url
        self.options: list[str] = []

    def add_option(self, option: str) -> None:
        self.options.append(option)


class FakeMediaPlayer:
    def __init__(self) -> None:
        self.media: FakeMedia | None = None
        self.volume: int | None = None
        self.play_result = 0
        self.stopped = 0
        self.released = False

    def set_media(self, media: FakeMedia) -> None:
        self.media = media

    def play(self) -> int:
        return self.play_result

    def stop(self) -> None:
        self.stopped += 1

    def release(self) -> None:
        self.released = True

    def audio_set_volume(self, volume: int) -> None:
        self.volume = volume

    def get_state(self) -> FakeState:
        return FakeState("Playing")


class FakeInstance:
    def __init__(self) -> None:
        self.player = FakeMediaPlayer()
        self.released = False

    def release(self) -> None:
        self.released = True

    def media_player_new(self) -> FakeMediaPlayer:
        return self.player

    def media_new(self, url: str) -> FakeMedia:
        return FakeMedia(url)


class FakeVlc:
    @staticmethod
    def Instance() -> FakeInstance:
        return FakeInstance()


@pytest.fixture
def fake_vlc(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(player_vlc, "vlc", FakeVlc)
    monkeypatch.setattr(player_vlc, "_VLC_IMPORT_ERROR", None)


def test_load_applies_stream_options(fake_vlc) -> None:
    engine = player_vlc.VlcEngine(user_agent="TestAgent/1.0")
    engine.load("http://radio.example/rock")
    media = engine._player.media
    assert media is not None
    assert media.url == "http://radio.example/rock"
    assert ":http-user-agent=TestAgent/1.0" in media.options
    assert ":icy-metadata=1" in media.options
    assert engine.current_url == "http://radio.example/rock"
    assert engine.get_state() == "playing"


def test_play_failure_raises(fake_vlc) -> None:
    engine = player_vlc.VlcEngine()
    engine.load("http://radio.example/rock")
    engine._player.play_result = -1
    with pytest.raises(RuntimeError, match="radio.example/rock"):
        engine.play()


def test_volume_is_clamped_and_release_stops(fake_vlc) -> None:
    engine = player_vlc.VlcEngine()
    engine.set_volume(140)
    assert engine._player.volume == 100
    engine.set_volume(-1)
    assert engine._player.volume == 0
    engine.release()
    assert engine._player.stopped == 1
    assert engine._player.released
    assert engine._instance.released


def test_media_options_include_caching() -> None:
    options = player_vlc.media_options("UA")
    assert f":network-caching={player_vlc.NETWORK_CACHING_MS}" in options
    assert ":http-reconnect" in options


def test_missing_vlc_raises_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(player_vlc, "vlc", None)
    monkeypatch.setattr(player_vlc, "_VLC_IMPORT_ERROR", RuntimeError("missing"))
    with pytest.raises(RuntimeError):
        player_vlc.VlcEngine()


def test_load_vlc_import_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    import builtins

    original_import = builtins.__import__

    def fake_import(name, *args, **kwargs):
        if name == "vlc":
            raise ModuleNotFoundError("vlc")
        return original_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", fake_import)
    monkeypatch.setattr(player_vlc, "vlc", None)
    monkeypatch.setattr(player_vlc, "_VLC_IMPORT_ERROR", None)
    player_vlc._load_vlc()
    assert player_vlc.vlc is None
    assert isinstance(player_vlc._VLC_IMPORT_ERROR, ModuleNotFoundError)


def test_load_vlc_success(monkeypatch: pytest.MonkeyPatch) -> None:
    import sys

    class DummyVlc:
        pass

    monkeypatch.setitem(sys.modules, "vlc", DummyVlc)
    monkeypatch.setattr(player_vlc, "vlc", None)
    monkeypatch.setattr(player_vlc, "_VLC_IMPORT_ERROR", None)
    player_vlc._load_vlc()
    assert player_vlc.vlc is DummyVlc
    assert player_vlc._VLC_IMPORT_ERROR is None


def test_state_unknown_on_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    class ErrorPlayer(FakeMediaPlayer):
        def get_state(self):  # type: ignore[override]
            raise RuntimeError("bad")

    class ErrorInstance(FakeInstance):
        def media_player_new(self) -> ErrorPlayer:  # type: ignore[override]
            return ErrorPlayer()

    class ErrorVlc:
        @staticmethod
        def Instance() -> ErrorInstance:
            return ErrorInstance()

    monkeypatch.setattr(player_vlc, "vlc", ErrorVlc)
    monkeypatch.setattr(player_vlc, "_VLC_IMPORT_ERROR", None)
    engine = player_vlc.VlcEngine()
    assert engine.get_state() == "unknown"


@pytest.mark.vlc
def test_real_vlc_engine_constructs() -> None:
    try:
        engine = player_vlc.VlcEngine()
    except Exception as exc:  # python-vlc or libVLC missing on the host
        pytest.skip(f"libVLC unavailable: {exc}")
    engine.set_volume(10)
    engine.release()
