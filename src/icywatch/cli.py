"""Command-line interface for icywatch."""

from __future__ import annotations

import argparse
from dataclasses import replace
import logging
import sys
import threading
import time
from types import TracebackType
from typing import Iterable, Optional, Tuple

from rich.console import Console
from rich.text import Text

from icywatch.config import AppConfig, hint_for, load_config, remember_hint, save_config
from icywatch.logging_setup import init_logging, set_console_level
from icywatch.metadata import METADATA_TYPES, Provider, StrategyHint
from icywatch.player_vlc import VlcEngine
from icywatch.radio import MediaEngine, NullEngine, RadioPlayer

logger = logging.getLogger(__name__)

_WAIT_STEP = 0.25


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="icywatch",
        description="Show what an internet radio stream is playing",
    )
    parser.add_argument("url", help="Stream URL")
    parser.add_argument(
        "--hint-type",
        type=str.upper,
        choices=METADATA_TYPES,
        default=None,
        help="Skip strategy discovery and use this metadata source",
    )
    parser.add_argument(
        "--hint-url",
        default="",
        help="Endpoint for --hint-type (sibling stream or status-json URL)",
    )
    parser.add_argument(
        "--raw",
        action="store_true",
        help="Print titles as they arrive instead of stabilizing them",
    )
    parser.add_argument(
        "--play",
        action="store_true",
        help="Play the stream through VLC while watching",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


class _Printer:
    def __init__(self, console: Console) -> None:
        self._console = console
        self._lock = threading.Lock()

    def title(self, title: str) -> None:
        self._print(Text.assemble(("♪ ", "bold green"), title))

    def station(self, name: str) -> None:
        self._print(Text.assemble(("Station: ", "bold"), name))

    def strategy(self, hint: StrategyHint) -> None:
        self._print(Text(f"Metadata via {hint.type}: {hint.url}", style="dim"))

    def _print(self, text: Text) -> None:
        with self._lock:
            self._console.print(text)


def _resolve_hint(args: argparse.Namespace, cfg: AppConfig) -> StrategyHint:
    if args.hint_type:
        return StrategyHint(args.hint_type, args.hint_url)
    return hint_for(cfg, args.url) or StrategyHint()


def _build_engine(play: bool, cfg: AppConfig) -> MediaEngine:
    if not play:
        return NullEngine()
    engine = VlcEngine(user_agent=cfg.user_agent)
    engine.set_volume(cfg.volume)
    return engine


def _wait(player: RadioPlayer, duration: Optional[float], keep_playing: bool) -> bool:
    """Block until the duration elapses or metadata ends; False if it ended.

    While audio is playing, a finished metadata session does not end the wait.
    """
    deadline = None if duration is None else time.monotonic() + duration
    session = player.session
    while deadline is None or time.monotonic() < deadline:
        if session is None or session.done:
            if not keep_playing:
                return session is not None and session.error is None
            time.sleep(_WAIT_STEP)
        else:
            session.join(_WAIT_STEP)
    return True


def watch(args: argparse.Namespace, console: Console) -> int:
    cfg = load_config()
    hint = _resolve_hint(args, cfg)
    try:
        engine = _build_engine(args.play, cfg)
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    printer = _Printer(console)
    resolved: list[StrategyHint] = []

    def on_resolved(found: StrategyHint) -> None:
        resolved.append(found)
        printer.strategy(found)

    player = RadioPlayer(
        engine,
        Provider(user_agent=cfg.user_agent),
        on_now=printer.title,
        on_station=printer.station,
        on_resolved=on_resolved,
        stabilizer_window=0.0 if args.raw else 6.0,
    )
    player.load(args.url, hint)
    ok = True
    session = None
    try:
        player.play()
        session = player.session
        ok = _wait(player, args.duration, keep_playing=args.play)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        player.close()

    if not ok:
        reason = session.error if session is not None else "no stream URL"
        console.print(Text(f"No metadata available: {reason}", style="yellow"))

    updated = replace(cfg, last_url=args.url.strip())
    if resolved:
        updated = remember_hint(updated, args.url, resolved[-1])
    if updated != cfg:
        try:
            save_config(updated)
        except OSError:
            logger.exception("Failed to save config")
    return 0 if ok else 1


def main(argv: Optional[Iterable[str]] = None) -> int:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    init_logging()
    if args.verbose:
        set_console_level(logging.DEBUG)
    logger.info("App start")

    if hasattr(threading, "excepthook"):

        def thread_hook(hook_args: threading.ExceptHookArgs) -> None:
            exc_value = hook_args.exc_value or RuntimeError("unknown")
            exc_info: Tuple[
                type[BaseException], BaseException, Optional[TracebackType]
            ] = (
                hook_args.exc_type,
                exc_value,
                hook_args.exc_traceback,
            )
            thread_name = hook_args.thread.name if hook_args.thread else "thread"
            logger.exception("Thread exception in %s", thread_name, exc_info=exc_info)

        threading.excepthook = thread_hook

    exit_code = watch(args, Console())
    logger.info("App exit code=%s", exit_code)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
