"""Value types shared by the metadata strategies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

METADATA_TYPE_ICY = "ICY"
METADATA_TYPE_JSON = "JSON"
METADATA_TYPES = (METADATA_TYPE_ICY, METADATA_TYPE_JSON)


@dataclass(frozen=True)
class Info:
    """Snapshot of the currently known stream metadata."""

    title: str = ""
    description: str = ""
    station: str = ""


@dataclass(frozen=True)
class StrategyHint:
    """A previously resolved strategy and its endpoint."""

    type: str = ""
    url: str = ""

    @property
    def normalized_type(self) -> str:
        return self.type.strip().upper()


MetadataEvent = Union[Info, StrategyHint]
UpdateCallback = Callable[[Info], None]
StrategyCallback = Callable[[StrategyHint], None]
ReadyCallback = Optional[Callable[[], None]]
