"""Metadata strategies (ICY, sibling mounts, status-json) and their dispatcher."""

from icywatch.metadata.errors import (
    IcyUnavailable,
    MetadataError,
    NoMetadata,
    SiblingNotFound,
    StatusUnavailable,
    WatchCancelled,
)
from icywatch.metadata.provider import Provider, WatchSession, default_sibling_cache
from icywatch.metadata.sibling_icy import SiblingCache
from icywatch.metadata.types import (
    METADATA_TYPE_ICY,
    METADATA_TYPE_JSON,
    METADATA_TYPES,
    Info,
    MetadataEvent,
    StrategyHint,
)

__all__ = [
    "IcyUnavailable",
    "Info",
    "METADATA_TYPES",
    "METADATA_TYPE_ICY",
    "METADATA_TYPE_JSON",
    "MetadataError",
    "MetadataEvent",
    "NoMetadata",
    "Provider",
    "SiblingCache",
    "SiblingNotFound",
    "StatusUnavailable",
    "StrategyHint",
    "WatchCancelled",
    "WatchSession",
    "default_sibling_cache",
]
