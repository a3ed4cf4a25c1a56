"""icywatch: "Now Playing" metadata for internet radio streams."""

__all__ = ["__version__"]

__version__ = "0.1.0"
