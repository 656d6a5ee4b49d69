from __future__ import annotations

import json
from pathlib import Path

from mcxnow.preferences import PreferenceStore, Watchlist


def test_watchlist_toggle_persists(tmp_path) -> None:
    store = PreferenceStore(tmp_path / "prefs" / "preferences.json")
    watchlist = Watchlist(store)

    assert watchlist.toggle("SILVER") is True
    assert watchlist.toggle("GOLD") is True
    assert watchlist.toggle("SILVER") is False
    assert watchlist.toggle_filter() is True

    payload = json.loads(store.path.read_text())
    assert payload == {"showWatchlistOnly": True, "watchlist": ["GOLD"]}

    reloaded = Watchlist(PreferenceStore(store.path))
    assert list(reloaded) == ["GOLD"]
    assert reloaded.show_only is True


def test_missing_or_corrupt_preferences_use_defaults(tmp_path) -> None:
    path = tmp_path / "preferences.json"
    assert Watchlist(PreferenceStore(path)).show_only is False

    path.write_text("{not json")
    watchlist = Watchlist(PreferenceStore(path))
    assert len(watchlist) == 0
    assert watchlist.show_only is False

    path.write_text(json.dumps({"watchlist": "GOLD", "showWatchlistOnly": "yes"}))
    watchlist = Watchlist(PreferenceStore(path))
    assert len(watchlist) == 0
    assert watchlist.show_only is False


def test_store_keeps_unrelated_keys(tmp_path) -> None:
    store = PreferenceStore(tmp_path / "preferences.json")
    store.set("theme", "dark")
    Watchlist(store).extend(["ZINC", "COPPER"])
    assert store.get("theme") == "dark"
    assert store.get("watchlist") == ["COPPER", "ZINC"]


def test_each_watchlist_change_is_one_file_replace(tmp_path, monkeypatch) -> None:
    store = PreferenceStore(tmp_path / "preferences.json")
    watchlist = Watchlist(store)
    replaced: list[Path] = []
    real_replace = Path.replace

    def counting_replace(self: Path, target: Path) -> Path:
        replaced.append(Path(target))
        return real_replace(self, target)

    monkeypatch.setattr(Path, "replace", counting_replace)

    watchlist.toggle("CRUDEOIL")
    assert json.loads(store.path.read_text()) == {"showWatchlistOnly": False, "watchlist": ["CRUDEOIL"]}
    watchlist.toggle_filter()

    assert replaced == [store.path, store.path]
    assert json.loads(store.path.read_text()) == {"showWatchlistOnly": True, "watchlist": ["CRUDEOIL"]}
