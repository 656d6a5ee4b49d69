from __future__ import annotations

import asyncio

import httpx

import mcxnow.cli as cli
from mcxnow.config import SupervisorConfig
from mcxnow.models import ChangeType
from mcxnow.preferences import PreferenceStore, Watchlist
from mcxnow.supervisor import ConnectionSupervisor


def test_format_row_renders_price_and_change() -> None:
    row = {
        "Last Traded Price": "7105012.5",
        "Net Change In Rs": "-120.25",
        "% Net Change In Rs": "-0.169",
        "Ser/Exp": "05OCT2025",
    }
    line = cli.format_row("GOLD", row, ChangeType.DECREASE)
    assert line.startswith("GOLD 05 OCT'25 FUT")
    assert "71,05,012.5" in line
    assert line.endswith("▼ -120.25 (-0.169%)")


def test_format_row_keeps_trailing_zeros_and_small_changes() -> None:
    row = {"Last Traded Price": "61500.00", "Net Change In Rs": "0.00001", "% Net Change In Rs": "0.10"}
    line = cli.format_row("ZINC", row, ChangeType.INCREASE)
    assert "61,500.00" in line
    assert line.endswith("▲ 0.00001 (0.10%)")


def test_main_rejects_invalid_base_url(monkeypatch, capsys) -> None:
    monkeypatch.delenv("MCXNOW_BASE_URL", raising=False)
    assert cli._main(["--base-url", "ftp://quotes.example.com"]) == 2
    assert "Invalid configuration" in capsys.readouterr().out


def test_watch_prints_state_and_watched_rows(tmp_path, capsys) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/rate":
            return httpx.Response(
                200,
                json={"data": [{"Symbol": "GOLD", "Last Traded Price": "71000"}, {"Symbol": "ZINC"}]},
            )

        async def body():
            yield b"event: connected\ndata: {}\n\n"
            yield b'event: rateUpdate\ndata: {"GOLD": {"Last Traded Price": "71050", "changeType": "increase"}}\n\n'
            await asyncio.Event().wait()

        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    watchlist = Watchlist(PreferenceStore(tmp_path / "preferences.json"))
    watchlist.toggle("GOLD")
    watchlist.toggle_filter()

    async def scenario() -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            supervisor = ConnectionSupervisor(
                SupervisorConfig(base_url="https://quotes.example.com"),
                httpx_client=client,
            )
            await cli._watch(supervisor, watchlist, "", duration=0.1)

    asyncio.run(scenario())

    out = capsys.readouterr().out
    assert "[Live updates active]" in out
    assert "* GOLD" in out
    assert "71,050" in out
    assert "ZINC" not in out
