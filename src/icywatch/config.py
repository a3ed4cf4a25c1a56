"""Configuration persistence for icywatch."""

from __future__ import annotations

from dataclasses import dataclass, replace
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from icywatch.metadata.transport import DEFAULT_USER_AGENT
from icywatch.metadata.types import METADATA_TYPES, StrategyHint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Station:
    """A known stream and the metadata strategy last resolved for it."""

    url: str
    name: str = ""
    metadata_type: str = ""
    metadata_url: str = ""

    @property
    def hint(self) -> Optional[StrategyHint]:
        if not self.metadata_type:
            return None
        return StrategyHint(self.metadata_type, self.metadata_url)


@dataclass(frozen=True)
class AppConfig:
    """Immutable user configuration loaded from disk."""

    last_url: Optional[str] = None
    volume: int = 70
    user_agent: str = DEFAULT_USER_AGENT
    stations: tuple[Station, ...] = ()


def get_config_dir(app_name: str = "icywatch") -> Path:
    """Return the per-user config directory for the current platform."""
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            root = Path(base)
        else:
            root = Path.home() / "AppData" / "Roaming"
        return _ensure_dir(root / app_name)
    elif os.name == "posix":
        if _is_macos():
            return _ensure_dir(
                Path.home() / "Library" / "Application Support" / app_name
            )
        base = os.environ.get("XDG_CONFIG_HOME")
        root = Path(base) if base else Path.home() / ".config"
        return _ensure_dir(root / app_name)
    else:
        return _ensure_dir(Path.home() / ".config" / app_name)


def get_config_path() -> Path:
    """Return the full config file path."""
    return get_config_dir() / "config.json"


def load_config() -> AppConfig:
    """Load configuration from disk, falling back to defaults on error."""
    path = get_config_path()
    if not path.exists():
        return AppConfig()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.exception("Failed to load config from %s", path)
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()
    return _config_from_mapping(raw)


def save_config(cfg: AppConfig) -> None:
    """Persist configuration to disk atomically."""
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    data = {
        "last_url": cfg.last_url,
        "volume": cfg.volume,
        "user_agent": cfg.user_agent,
        "stations": [
            {
                "url": station.url,
                "name": station.name,
                "metadata_type": station.metadata_type,
                "metadata_url": station.metadata_url,
            }
            for station in cfg.stations
        ],
    }
    temp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(temp_path, path)


def find_station(cfg: AppConfig, url: str) -> Optional[Station]:
    target = url.strip()
    for station in cfg.stations:
        if station.url == target:
            return station
    return None


def hint_for(cfg: AppConfig, url: str) -> Optional[StrategyHint]:
    """Return the stored strategy hint for ``url``, if any."""
    station = find_station(cfg, url)
    return station.hint if station else None


def remember_hint(cfg: AppConfig, url: str, hint: StrategyHint) -> AppConfig:
    """Return a config whose entry for ``url`` carries ``hint``."""
    target = url.strip()
    metadata_type = hint.normalized_type
    if metadata_type not in METADATA_TYPES:
        return cfg
    updated = Station(
        url=target, metadata_type=metadata_type, metadata_url=hint.url.strip()
    )
    stations = list(cfg.stations)
    for index, station in enumerate(stations):
        if station.url == target:
            if station.hint == updated.hint:
                return cfg
            stations[index] = replace(
                station,
                metadata_type=updated.metadata_type,
                metadata_url=updated.metadata_url,
            )
            break
    else:
        stations.append(updated)
    return replace(cfg, stations=tuple(stations))


def _ensure_dir(path: Path) -> Path:
    """Create the directory if needed and return the path."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def _is_macos() -> bool:
    """Return True when running on macOS."""
    return os.uname().sysname == "Darwin" if hasattr(os, "uname") else False  # pyright: ignore[reportAttributeAccessIssue]


def _get_int(
    raw: dict[str, Any],
    key: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Fetch an integer value with optional clamping."""
    value = raw.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool):
        value = default
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def _get_str(raw: dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key, default)
    if not isinstance(value, str) or not value.strip():
        return default
    return value.strip()


def _station_from_mapping(raw: Any) -> Optional[Station]:
    if not isinstance(raw, dict):
        return None
    url = _get_str(raw, "url", "")
    if not url:
        return None
    metadata_type = _get_str(raw, "metadata_type", "").upper()
    metadata_url = _get_str(raw, "metadata_url", "")
    if metadata_type not in METADATA_TYPES:
        metadata_type = ""
        metadata_url = ""
    return Station(
        url=url,
        name=_get_str(raw, "name", ""),
        metadata_type=metadata_type,
        metadata_url=metadata_url,
    )


def _config_from_mapping(raw: dict[str, Any]) -> AppConfig:
    """Normalize raw JSON data into an AppConfig."""
    last_url = raw.get("last_url")
    if last_url is not None and not isinstance(last_url, str):
        last_url = None
    stations_raw = raw.get("stations", [])
    if not isinstance(stations_raw, list):
        stations_raw = []
    stations = tuple(
        station
        for station in (_station_from_mapping(item) for item in stations_raw)
        if station is not None
    )
    return AppConfig(
        last_url=last_url,
        volume=_get_int(raw, "volume", 70, min_value=0, max_value=100),
        user_agent=_get_str(raw, "user_agent", DEFAULT_USER_AGENT),
        stations=stations,
    )
