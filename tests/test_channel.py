from __future__ import annotations

import asyncio

import pytest

from kube_balance.channel import (
    ChannelClosedError,
    EndpointTable,
    Insert,
    Remove,
    balance_channel,
)


def test_changes_arrive_in_order_and_end_after_sender_closes() -> None:
    async def scenario() -> list[object]:
        sender, receiver = balance_channel(4)
        await sender.send(Insert("a", 1))
        await sender.send(Remove("a"))
        await sender.aclose()
        return [change async for change in receiver]

    assert asyncio.run(scenario()) == [Insert("a", 1), Remove("a")]


def test_send_waits_for_capacity() -> None:
    async def scenario() -> tuple[bool, bool, object]:
        sender, receiver = balance_channel(1)
        await sender.send(Insert("a", 1))
        pending = asyncio.create_task(sender.send(Insert("b", 2)))
        await asyncio.sleep(0)
        blocked = not pending.done()

        first = await receiver.recv()
        await asyncio.wait_for(pending, timeout=1)
        return blocked, first == Insert("a", 1), await receiver.recv()

    blocked, first_ok, second = asyncio.run(scenario())

    assert blocked
    assert first_ok
    assert second == Insert("b", 2)


def test_send_fails_once_receiver_closes() -> None:
    async def scenario() -> None:
        sender, receiver = balance_channel(1)
        await sender.send(Insert("a", 1))
        pending = asyncio.create_task(sender.send(Insert("b", 2)))
        await asyncio.sleep(0)

        await receiver.aclose()

        assert sender.is_closed
        with pytest.raises(ChannelClosedError):
            await pending
        with pytest.raises(ChannelClosedError):
            await sender.send(Remove("a"))

    asyncio.run(scenario())


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError, match="capacity"):
        balance_channel(0)


def test_endpoint_table_applies_changes() -> None:
    table: EndpointTable[str, int] = EndpointTable()

    table.apply(Insert("a", 1))
    table.apply(Insert("b", 2))
    table.apply(Insert("a", 3))
    table.apply(Remove("b"))
    table.apply(Remove("unknown"))

    assert table.endpoints == {"a": 3}
    assert "a" in table
    assert len(table) == 1


def test_endpoint_table_consumes_until_end_of_stream() -> None:
    async def scenario() -> dict[str, int]:
        sender, receiver = balance_channel(2)
        table: EndpointTable[str, int] = EndpointTable()
        consumer = asyncio.create_task(table.consume(receiver))
        for change in (Insert("a", 1), Insert("b", 2), Remove("a")):
            await sender.send(change)
        await sender.aclose()
        await asyncio.wait_for(consumer, timeout=1)
        return dict(table.endpoints)

    assert asyncio.run(scenario()) == {"b": 2}
