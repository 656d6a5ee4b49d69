"""Flat key-value preference storage for the watchlist view."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

WATCHLIST_KEY = "watchlist"
WATCHLIST_ONLY_KEY = "showWatchlistOnly"


class PreferenceStore:
    """JSON object on disk holding scalar and list values."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences at %s: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Mapping[str, Any]) -> None:
        """Write several keys in one replace of the file."""
        payload = self.load()
        payload.update(values)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)


class Watchlist:
    def __init__(self, store: PreferenceStore) -> None:
        self._store = store
        symbols = store.get(WATCHLIST_KEY, [])
        self._symbols: set[str] = {str(s) for s in symbols} if isinstance(symbols, list) else set()
        self.show_only = store.get(WATCHLIST_ONLY_KEY, False) is True

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._symbols

    def __iter__(self):
        return iter(sorted(self._symbols))

    def __len__(self) -> int:
        return len(self._symbols)

    def toggle(self, symbol: str) -> bool:
        """Add or remove ``symbol``; return whether it is now watched."""
        if symbol in self._symbols:
            self._symbols.remove(symbol)
        else:
            self._symbols.add(symbol)
        self._save()
        return symbol in self._symbols

    def extend(self, symbols: Iterable[str]) -> None:
        self._symbols.update(symbols)
        self._save()

    def toggle_filter(self) -> bool:
        self.show_only = not self.show_only
        self._save()
        return self.show_only

    def _save(self) -> None:
        self._store.update({WATCHLIST_KEY: sorted(self._symbols), WATCHLIST_ONLY_KEY: self.show_only})
