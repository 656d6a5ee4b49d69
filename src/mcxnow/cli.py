"""Terminal watcher for live quotes."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from mcxnow.config import SupervisorConfig
from mcxnow.formatting import format_change, format_expiry, format_indian_number
from mcxnow.models import ChangeType, ErrorRaised, QuotesUpdated, ReconnectScheduled, StateChanged
from mcxnow.preferences import PreferenceStore, Watchlist
from mcxnow.supervisor import ConnectionSupervisor

DEFAULT_PREFERENCES = Path.home() / ".config" / "mcxnow" / "preferences.json"


def format_row(symbol: str, row: Mapping[str, Any], direction: ChangeType) -> str:
    ltp = format_indian_number(row.get("Last Traded Price") or "")
    change = format_change(
        row.get("Net Change In Rs"),
        row.get("% Net Change In Rs"),
        up=direction is ChangeType.INCREASE,
    )
    expiry = row.get("Ser/Exp")
    label = f"{symbol} {format_expiry(expiry)}" if expiry else symbol
    return f"{label:<28} {ltp:>14}  {change}"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcxnow-watch", description="Watch live commodity quotes.")
    parser.add_argument("--base-url", default=None)
    parser.add_argument("--allow-http", action="store_true")
    parser.add_argument("--idle-timeout", type=float, default=None)
    parser.add_argument("--symbol", default="", help="only show symbols or exchanges containing this text")
    parser.add_argument("--watchlist-only", action="store_true")
    parser.add_argument("--watch", action="append", default=[], metavar="SYMBOL", help="add SYMBOL to the watchlist")
    parser.add_argument("--preferences", type=Path, default=DEFAULT_PREFERENCES)
    parser.add_argument("--duration", type=float, default=None, help="stop after this many seconds")
    parser.add_argument("--log-level", default="WARNING")
    return parser


async def _watch(supervisor: ConnectionSupervisor, watchlist: Watchlist, query: str, duration: float | None) -> None:
    def visible(symbols: Sequence[str]) -> list[str]:
        selected = supervisor.book.select(query, watchlist=watchlist, watchlist_only=watchlist.show_only)
        wanted = set(symbols)
        return [symbol for symbol, _ in selected if symbol in wanted]

    def render(notification: object) -> None:
        if isinstance(notification, StateChanged):
            print(f"[{notification.state.label}]")
        elif isinstance(notification, ErrorRaised):
            print(f"! {notification.message}")
        elif isinstance(notification, ReconnectScheduled):
            print(f"[retrying in {notification.delay:.0f}s]")
        elif isinstance(notification, QuotesUpdated):
            for symbol in visible(notification.symbols):
                row = supervisor.book.get(symbol) or {}
                marker = "*" if symbol in watchlist else " "
                print(f"{marker} {format_row(symbol, row, supervisor.book.direction(symbol))}")

    with supervisor.subscribe(render):
        async with supervisor:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)


def _main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = SupervisorConfig.from_env(
            base_url=args.base_url,
            idle_timeout=args.idle_timeout,
            allow_http=True if args.allow_http else None,
        )
    except ValueError as exc:
        print(f"Invalid configuration: {exc}")
        return 2

    watchlist = Watchlist(PreferenceStore(args.preferences))
    if args.watch:
        watchlist.extend(args.watch)
    if args.watchlist_only and not watchlist.show_only:
        watchlist.toggle_filter()

    try:
        asyncio.run(_watch(ConnectionSupervisor(config), watchlist, args.symbol, args.duration))
    except KeyboardInterrupt:
        pass
    return 0


def main() -> None:
    raise SystemExit(_main())
