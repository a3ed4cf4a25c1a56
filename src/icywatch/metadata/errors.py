"""Exceptions raised by metadata strategies."""

from __future__ import annotations


class MetadataError(Exception):
    """Base class for metadata resolution failures."""


class IcyUnavailable(MetadataError):
    """The stream does not interleave ICY metadata (no usable icy-metaint)."""


class NoMetadata(MetadataError):
    """A metadata block was empty or carried no StreamTitle."""


class SiblingNotFound(MetadataError):
    """No sibling mount point exposed ICY metadata."""


class StatusUnavailable(MetadataError):
    """The status-json endpoint could not be polled."""


class WatchCancelled(MetadataError):
    """The watch session was cancelled."""
