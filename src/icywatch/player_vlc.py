"""VLC-backed stream playback."""

from __future__ import annotations

from typing import Any, Optional, cast

from icywatch.metadata.transport import DEFAULT_USER_AGENT

vlc: Any | None = None
_VLC_IMPORT_ERROR: Optional[Exception] = None

NETWORK_CACHING_MS = 1500


def _load_vlc() -> None:
    global vlc
    global _VLC_IMPORT_ERROR
    if vlc is not None or _VLC_IMPORT_ERROR is not None:
        return
    try:
        import vlc as vlc_module  # type: ignore
    except Exception as exc:  # pragma: no cover - platform-dependent import
        vlc = None
        _VLC_IMPORT_ERROR = exc
    else:
        vlc = cast(Any, vlc_module)
        _VLC_IMPORT_ERROR = None


def media_options(user_agent: str) -> list[str]:
    """libVLC options for robust playback of internet radio."""
    return [
        ":icy-metadata=1",
        ":metadata-network-access=1",
        ":demux=any",
        f":http-user-agent={user_agent}",
        f":network-caching={NETWORK_CACHING_MS}",
        f":live-caching={NETWORK_CACHING_MS}",
        ":http-reconnect",
    ]


class VlcEngine:
    """Thin media engine over python-vlc's MediaPlayer."""

    def __init__(self, *, user_agent: str = DEFAULT_USER_AGENT) -> None:
        _load_vlc()
        if vlc is None:
            raise RuntimeError(
                "VLC backend is unavailable. Install VLC and the python-vlc package."
            ) from _VLC_IMPORT_ERROR
        self._user_agent = user_agent
        self._instance = cast(Any, vlc).Instance()
        self._player = self._instance.media_player_new()
        self._current_url: Optional[str] = None

    @property
    def current_url(self) -> Optional[str]:
        return self._current_url

    def load(self, url: str) -> None:
        """Load a stream URL without starting playback."""
        media = self._instance.media_new(url)
        for option in media_options(self._user_agent):
            media.add_option(option)
        self._player.set_media(media)
        self._current_url = url

    def play(self) -> None:
        if self._player.play() == -1:
            raise RuntimeError(f"VLC failed to play {self._current_url}")

    def stop(self) -> None:
        self._player.stop()

    def set_volume(self, volume: int) -> None:
        """Set volume (0-100)."""
        self._player.audio_set_volume(max(0, min(100, int(volume))))

    def get_state(self) -> str:
        """Return a best-effort playback state string."""
        try:
            state = self._player.get_state()
        except Exception:
            return "unknown"
        if state is None:
            return "unknown"
        name = getattr(state, "name", None)
        if isinstance(name, str):
            return name.lower()
        return str(state).lower()

    def release(self) -> None:
        """Free the media player and the libVLC instance."""
        self._player.stop()
        self._player.release()
        self._instance.release()
