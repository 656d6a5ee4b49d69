#!/usr/bin/env python3
"""Integration check: snapshot, stream and reconnect against a live quote server."""

from __future__ import annotations

import asyncio
import sys

from mcxnow import ConnectionPhase, ConnectionSupervisor, InitializationError, SupervisorConfig

passed: list[str] = []
failed: list[tuple[str, str]] = []


def ok(name: str, detail: object = None) -> None:
    print(f"  PASS  {name}  -> {detail}")
    passed.append(name)


def fail(name: str, err: object) -> None:
    msg = str(err)[:200]
    print(f"  FAIL  {name}  -> {msg}")
    failed.append((name, msg))


async def wait_for_phase(supervisor: ConnectionSupervisor, phase: ConnectionPhase, timeout: float) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while supervisor.state.phase is not phase:
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.1)
    return True


async def run() -> None:
    config = SupervisorConfig.from_env()
    print(f"Target: {config.base_url}")

    async with ConnectionSupervisor(config) as probe:
        try:
            symbols = await probe.fetch_snapshot()
            ok("fetch_snapshot", f"{len(symbols)} symbols")
        except InitializationError as exc:
            fail("fetch_snapshot", exc)

        if await wait_for_phase(probe, ConnectionPhase.LIVE_ACTIVE, timeout=30):
            ok("stream", probe.state.label)
        else:
            fail("stream", f"{probe.state.label} / {probe.error}")
            return

        if probe.reconnect() and await wait_for_phase(probe, ConnectionPhase.LIVE_ACTIVE, timeout=30):
            ok("reconnect", probe.state.label)
        else:
            fail("reconnect", f"{probe.state.label} / {probe.error}")


def main() -> int:
    asyncio.run(run())
    print(f"\n{len(passed)} passed, {len(failed)} failed")
    for name, msg in failed:
        print(f"  - {name}: {msg}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
