"""ICY metadata framing: interleaved blocks and StreamTitle extraction."""

from __future__ import annotations

import html
import threading
import time
from typing import Optional, Protocol

from icywatch.metadata.errors import NoMetadata, WatchCancelled

STREAM_TITLE_KEY = "StreamTitle="
META_BLOCK_UNIT = 16
_READ_CHUNK = 16 * 1024
_QUOTES = ("'", '"')


class ByteStream(Protocol):
    def read(self, amt: int) -> bytes: ...


def extract_stream_title(meta: str) -> str:
    """Return the StreamTitle value of a decoded metadata block.

    Quoted values end at the matching quote that is followed by the end of
    the block or by ``;`` and another ``key=value`` pair, so titles such as
    ``JANE'S ADDICTION - ...`` keep their inner apostrophe.
    """
    if not meta:
        return ""
    idx = meta.find(STREAM_TITLE_KEY)
    if idx < 0:
        return ""
    value = meta[idx + len(STREAM_TITLE_KEY) :].strip()
    if not value:
        return ""
    quote = value[0]
    if quote in _QUOTES:
        value = value[1:]
        end = _closing_quote(value, quote)
        if end >= 0:
            value = value[:end]
    else:
        value = value.split(";", 1)[0]
    return html.unescape(value.strip())


def _closing_quote(value: str, quote: str) -> int:
    for i, char in enumerate(value):
        if char != quote:
            continue
        j = i + 1
        while j < len(value) and value[j] in " \t":
            j += 1
        if j >= len(value):
            return i
        if value[j] == ";" and "=" in value[j + 1 :]:
            return i
    return value.rfind(quote)


def decode_meta(raw: bytes) -> str:
    """Decode a raw metadata block, dropping its NUL padding."""
    data = raw.rstrip(b"\x00")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def header_text(value: Optional[str]) -> str:
    """Undo the latin-1 decoding HTTP clients apply to UTF-8 header values."""
    if not value:
        return ""
    try:
        value = value.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        pass
    return html.unescape(value.strip()).strip()


def _check(stop: Optional[threading.Event], deadline: Optional[float]) -> None:
    if stop is not None and stop.is_set():
        raise WatchCancelled("read cancelled")
    if deadline is not None and time.monotonic() > deadline:
        raise TimeoutError("metadata read deadline exceeded")


def read_exact(
    stream: ByteStream,
    size: int,
    stop: Optional[threading.Event] = None,
    *,
    deadline: Optional[float] = None,
) -> bytes:
    """Read exactly ``size`` bytes, raising EOFError if the stream ends early."""
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        _check(stop, deadline)
        chunk = stream.read(min(remaining, _READ_CHUNK))
        if not chunk:
            raise EOFError(f"stream ended with {remaining} of {size} bytes unread")
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def skip_exact(
    stream: ByteStream,
    size: int,
    stop: Optional[threading.Event] = None,
    *,
    deadline: Optional[float] = None,
) -> None:
    """Discard exactly ``size`` bytes of audio payload."""
    remaining = size
    while remaining > 0:
        _check(stop, deadline)
        chunk = stream.read(min(remaining, _READ_CHUNK))
        if not chunk:
            raise EOFError(f"stream ended with {remaining} of {size} bytes unread")
        remaining -= len(chunk)


def read_meta_block(
    stream: ByteStream,
    meta_interval: int,
    stop: Optional[threading.Event] = None,
    *,
    deadline: Optional[float] = None,
) -> str:
    """Skip one audio interval and return the following metadata text.

    Returns an empty string when the length byte announces no metadata.
    """
    skip_exact(stream, meta_interval, stop, deadline=deadline)
    length = read_exact(stream, 1, stop, deadline=deadline)[0] * META_BLOCK_UNIT
    if length == 0:
        return ""
    return decode_meta(read_exact(stream, length, stop, deadline=deadline))


def first_meta_block(
    stream: ByteStream,
    meta_interval: int,
    stop: Optional[threading.Event] = None,
    *,
    deadline: Optional[float] = None,
) -> str:
    """Return the StreamTitle of the first metadata block.

    Raises NoMetadata when the block is empty or carries no title.
    """
    if meta_interval <= 0:
        raise NoMetadata("invalid metadata interval")
    text = read_meta_block(stream, meta_interval, stop, deadline=deadline)
    if not text:
        raise NoMetadata("empty metadata block")
    title = extract_stream_title(text)
    if not title:
        raise NoMetadata("metadata block without StreamTitle")
    return title
