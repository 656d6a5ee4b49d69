"""Supervisor-owned symbol table."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .formatting import to_float
from .models import ChangeType

logger = logging.getLogger(__name__)

SYMBOL_FIELD = "Symbol"
EXCHANGE_FIELD = "Exchange"
NET_CHANGE_FIELD = "Net Change In Rs"
CHANGE_TYPE_FIELD = "changeType"

FLASH_DURATION = timedelta(milliseconds=1800)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteBook:
    """Rows keyed by symbol, plus when and in which direction each last changed.

    Only the supervisor's dispatch path writes to a book. Readers get
    read-only views from ``view()`` and ``select()``.
    """

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}
        self._changed_at: dict[str, datetime] = {}
        self._change_type: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._rows

    @property
    def symbols(self) -> list[str]:
        return sorted(self._rows)

    def get(self, symbol: str) -> Mapping[str, Any] | None:
        row = self._rows.get(symbol)
        return None if row is None else MappingProxyType(dict(row))

    def view(self) -> Mapping[str, Mapping[str, Any]]:
        return MappingProxyType({symbol: MappingProxyType(dict(row)) for symbol, row in self._rows.items()})

    def changed_at(self, symbol: str) -> datetime | None:
        return self._changed_at.get(symbol)

    def change_type(self, symbol: str) -> str | None:
        return self._change_type.get(symbol)

    def replace_all(self, rows: Iterable[Any]) -> tuple[str, ...]:
        """Swap in a fresh snapshot. Rows without a usable ``Symbol`` are skipped."""
        fresh: dict[str, dict[str, Any]] = {}
        for row in rows:
            if not isinstance(row, Mapping):
                continue
            symbol = str(row.get(SYMBOL_FIELD) or "").strip()
            if not symbol:
                continue
            fresh[symbol] = dict(row)
        self._rows = fresh
        return tuple(sorted(fresh))

    def merge(self, updates: Mapping[str, Any], *, now: datetime | None = None) -> tuple[str, ...]:
        """Merge partial rows into the book and return the touched symbols.

        Known fields absent from an update are kept. The new rows are built
        first and swapped in together, so no reader sees half an update.
        """
        stamp = now or _utcnow()
        staged: dict[str, dict[str, Any]] = {}
        changes: dict[str, str] = {}
        for raw_symbol, fields in updates.items():
            if not isinstance(fields, Mapping):
                logger.debug("Skipping non-mapping update for %r", raw_symbol)
                continue
            symbol = str(raw_symbol).strip()
            if not symbol:
                continue
            row = dict(staged.get(symbol) or self._rows.get(symbol) or {})
            row.update(fields)
            staged[symbol] = row
            change = str(fields.get(CHANGE_TYPE_FIELD) or "")
            if change:
                changes[symbol] = change

        for symbol, row in staged.items():
            self._rows[symbol] = row
            self._changed_at[symbol] = stamp
        self._change_type.update(changes)
        return tuple(staged)

    def select(
        self,
        query: str = "",
        *,
        watchlist: Iterable[str] = (),
        watchlist_only: bool = False,
    ) -> list[tuple[str, Mapping[str, Any]]]:
        """Rows whose symbol or exchange contains ``query``, sorted by symbol."""
        needle = query.strip().lower()
        allowed = set(watchlist) if watchlist_only else None
        selected: list[tuple[str, Mapping[str, Any]]] = []
        for symbol in sorted(self._rows):
            row = self._rows[symbol]
            if allowed is not None and symbol not in allowed:
                continue
            if needle:
                exchange = str(row.get(EXCHANGE_FIELD) or "").lower()
                if needle not in symbol.lower() and needle not in exchange:
                    continue
            selected.append((symbol, MappingProxyType(dict(row))))
        return selected

    def flash_intensity(self, symbol: str, *, now: datetime | None = None) -> float:
        """Highlight strength for a recent change: 1.0 at the change, 0.0 after ``FLASH_DURATION``."""
        changed = self._changed_at.get(symbol)
        if changed is None:
            return 0.0
        elapsed = (now or _utcnow()) - changed
        if elapsed >= FLASH_DURATION:
            return 0.0
        return 1.0 - min(max(elapsed / FLASH_DURATION, 0.0), 1.0)

    def direction(self, symbol: str) -> ChangeType:
        recorded = self._change_type.get(symbol)
        if recorded == ChangeType.INCREASE.value:
            return ChangeType.INCREASE
        if recorded == ChangeType.DECREASE.value:
            return ChangeType.DECREASE
        row = self._rows.get(symbol) or {}
        net_change = to_float(row.get(NET_CHANGE_FIELD))
        return ChangeType.INCREASE if (net_change or 0) >= 0 else ChangeType.DECREASE
