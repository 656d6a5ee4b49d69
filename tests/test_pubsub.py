from __future__ import annotations

import asyncio

from mcxnow.pubsub import Broadcaster


def test_publish_reaches_subscribers_in_order() -> None:
    channel: Broadcaster[int] = Broadcaster()
    first: list[int] = []
    second: list[int] = []
    channel.subscribe(first.append)
    subscription = channel.subscribe(second.append)

    channel.publish(1)
    subscription.unsubscribe()
    subscription.unsubscribe()
    channel.publish(2)

    assert first == [1, 2]
    assert second == [1]
    assert len(channel) == 1


def test_failing_subscriber_does_not_block_others() -> None:
    channel: Broadcaster[str] = Broadcaster()
    received: list[str] = []

    def broken(item: str) -> None:
        raise RuntimeError("view crashed")

    channel.subscribe(broken)
    channel.subscribe(received.append)
    channel.publish("tick")

    assert received == ["tick"]


def test_subscription_context_manager_unsubscribes() -> None:
    channel: Broadcaster[int] = Broadcaster()
    with channel.subscribe(lambda item: None) as subscription:
        assert subscription.active
    assert not subscription.active
    assert len(channel) == 0


def test_listen_yields_published_items() -> None:
    async def scenario() -> tuple[list[int], int]:
        channel: Broadcaster[int] = Broadcaster()
        received: list[int] = []

        async def consume() -> None:
            stream = channel.listen()
            try:
                async for item in stream:
                    received.append(item)
                    if item == 3:
                        break
            finally:
                await stream.aclose()

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        for item in (1, 2, 3, 4):
            channel.publish(item)
        await task
        return received, len(channel)

    received, remaining = asyncio.run(scenario())
    assert received == [1, 2, 3]
    assert remaining == 0
