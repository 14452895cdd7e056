"""Bounded channel carrying endpoint changes to a load-balancing consumer.

The discovery loop is the single producer. Consumers either iterate the
receiver directly or hand it to :class:`EndpointTable`, which keeps the
current ``key -> endpoint`` membership that a balancer picks from.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Insert[K, D]:
    """Add (or replace) the endpoint registered under ``key``."""

    key: K
    endpoint: D


@dataclass(frozen=True, slots=True)
class Remove[K]:
    """Withdraw the endpoint registered under ``key``."""

    key: K


type Change[K, D] = Insert[K, D] | Remove[K]


class ChannelClosedError(RuntimeError):
    """Raised by ``send`` once the receiving side has gone away."""


class _ChannelState[K, D]:
    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.buffer: deque[Change[K, D]] = deque()
        self.condition = asyncio.Condition()
        self.sender_closed = False
        self.receiver_closed = False


class ChangeSender[K, D]:
    """Producer half of a balance channel."""

    def __init__(self, state: _ChannelState[K, D]) -> None:
        self._state = state

    @property
    def is_closed(self) -> bool:
        return self._state.receiver_closed

    async def send(self, change: Change[K, D]) -> None:
        """Queue ``change``, waiting while the buffer is full.

        Raises :class:`ChannelClosedError` if the receiver is (or becomes)
        closed before the change could be queued.
        """

        state = self._state
        async with state.condition:
            await state.condition.wait_for(
                lambda: state.receiver_closed or len(state.buffer) < state.capacity
            )
            if state.receiver_closed:
                raise ChannelClosedError("balance channel receiver is closed")
            state.buffer.append(change)
            state.condition.notify_all()

    async def aclose(self) -> None:
        """Signal end-of-stream; buffered changes stay readable."""

        state = self._state
        async with state.condition:
            state.sender_closed = True
            state.condition.notify_all()


class ChangeReceiver[K, D]:
    """Consumer half of a balance channel."""

    def __init__(self, state: _ChannelState[K, D]) -> None:
        self._state = state

    def __aiter__(self) -> ChangeReceiver[K, D]:
        return self

    async def __anext__(self) -> Change[K, D]:
        change = await self.recv()
        if change is None:
            raise StopAsyncIteration
        return change

    async def recv(self) -> Change[K, D] | None:
        """Return the next change, or ``None`` after the sender closed and the buffer drained."""

        state = self._state
        async with state.condition:
            await state.condition.wait_for(lambda: bool(state.buffer) or state.sender_closed)
            if not state.buffer:
                return None
            change = state.buffer.popleft()
            state.condition.notify_all()
            return change

    async def aclose(self) -> None:
        """Stop accepting changes; pending and future sends fail."""

        state = self._state
        async with state.condition:
            state.receiver_closed = True
            state.buffer.clear()
            state.condition.notify_all()


def balance_channel[K, D](capacity: int) -> tuple[ChangeSender[K, D], ChangeReceiver[K, D]]:
    """Create a bounded channel holding at most ``capacity`` pending changes."""

    if capacity < 1:
        raise ValueError("Channel capacity must be positive")
    state: _ChannelState[K, D] = _ChannelState(capacity)
    return ChangeSender(state), ChangeReceiver(state)


class EndpointTable[K, D]:
    """Live membership built from a change stream.

    This only tracks which endpoints are available; choosing between them is
    left to the caller.
    """

    def __init__(self) -> None:
        self._endpoints: dict[K, D] = {}

    def __len__(self) -> int:
        return len(self._endpoints)

    def __contains__(self, key: object) -> bool:
        return key in self._endpoints

    @property
    def endpoints(self) -> Mapping[K, D]:
        return dict(self._endpoints)

    def apply(self, change: Change[K, D]) -> None:
        if isinstance(change, Insert):
            self._endpoints[change.key] = change.endpoint
        elif isinstance(change, Remove):
            if change.key not in self._endpoints:
                log.debug("Ignoring removal of unknown endpoint %s", change.key)
                return
            del self._endpoints[change.key]
        else:
            raise TypeError(f"Unsupported change: {change!r}")

    async def consume(self, receiver: ChangeReceiver[K, D]) -> None:
        """Apply every change from ``receiver`` until the sender closes."""

        async for change in receiver:
            self.apply(change)


__all__ = [
    "Change",
    "ChangeReceiver",
    "ChangeSender",
    "ChannelClosedError",
    "EndpointTable",
    "Insert",
    "Remove",
    "balance_channel",
]
