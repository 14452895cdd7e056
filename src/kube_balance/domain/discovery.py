"""Discovery loop: watch subscription -> reconciler -> balance channel.

The loop owns the known-endpoint state for its whole lifetime and is the only
producer on the channel. Its lifecycle is an explicit state machine::

    CONNECTING -> STREAMING <-> BACKOFF -> CONNECTING
    STREAMING -> TERMINATED   (channel closed or task cancelled)

Every fresh subscription starts with a ``Resync``, so whatever happened while
the watch was down is reconciled as soon as it comes back.
"""

from __future__ import annotations

import asyncio
import random
from contextlib import aclosing
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from kube_balance.channel import ChannelClosedError, Insert, Remove

from .events import InsertEndpoint
from .reconcile import KnownEndpoints, process_event

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from kube_balance.channel import Change, ChangeSender
    from kube_balance.config.backoff import BackoffPolicy

    from .events import EndpointAction
    from .ports import WatchSource
    from .types import Port, SocketAddress

type Sleeper = Callable[[float], Awaitable[None]]

log = getLogger(__name__)


class LoopState(StrEnum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    BACKOFF = "backoff"
    TERMINATED = "terminated"


class ExponentialBackoff:
    """Delay schedule for reconnect attempts, driven by a ``BackoffPolicy``."""

    def __init__(self, policy: BackoffPolicy, *, rand: Callable[[], float] = random.random) -> None:
        self.policy = policy
        self._rand = rand
        self._current = policy.initial_wait
        self.attempts = 0

    def next_delay(self) -> float:
        """Return the delay before the next attempt and advance the schedule."""

        base = self._current
        self._current = min(base * self.policy.backoff_factor, self.policy.max_backoff_wait)
        self.attempts += 1
        return base * (1.0 - self.policy.backoff_jitter * self._rand())

    def reset(self) -> None:
        self._current = self.policy.initial_wait
        self.attempts = 0


class DiscoveryLoop[D]:
    """Keep a balance channel in step with the slices reported by ``source``.

    ``build`` turns a socket address into whatever descriptor the consumer
    connects with; it is called once per inserted address.
    """

    def __init__(
        self,
        *,
        source: WatchSource,
        sender: ChangeSender[SocketAddress, D],
        build: Callable[[SocketAddress], D],
        port: Port,
        backoff: ExponentialBackoff,
        sleep: Sleeper = asyncio.sleep,
        name: str = "service",
    ) -> None:
        self.source = source
        self.sender = sender
        self.build = build
        self.port = port
        self.backoff = backoff
        self.sleep = sleep
        self.name = name
        self.known = KnownEndpoints()
        self.state = LoopState.CONNECTING

    async def run(self) -> None:
        """Run until the channel closes or the task is cancelled."""

        log.debug("Starting endpoint discovery for %s on port %s", self.name, self.port)
        try:
            while self.state is not LoopState.TERMINATED:
                await self._run_subscription()
        finally:
            self.state = LoopState.TERMINATED
            log.debug("Endpoint discovery for %s stopped", self.name)

    async def _run_subscription(self) -> None:
        self.state = LoopState.CONNECTING
        failure: Exception | None = None

        async with aclosing(self.source.subscribe()) as events:
            while True:
                if self.sender.is_closed:
                    self._stop_on_closed_channel()
                    return
                try:
                    event = await anext(events)
                except StopAsyncIteration:
                    break
                except Exception as exc:  # noqa: BLE001
                    failure = exc
                    break

                self.state = LoopState.STREAMING
                self.backoff.reset()
                actions = process_event(event, self.known, self.port)
                if not await self._publish(actions):
                    return
                log.debug("Endpoint discovery: %d endpoints for %s", len(self.known), self.name)

        await self._back_off(failure)

    async def _publish(self, actions: list[EndpointAction]) -> bool:
        if not actions:
            return True
        changes = [self._to_change(action) for action in actions]

        # The batch for one event is delivered whole even if cancellation
        # arrives part-way through (repeatedly); it is re-raised afterwards.
        batch = asyncio.ensure_future(self._send_all(changes))
        try:
            return await asyncio.shield(batch)
        except asyncio.CancelledError:
            while not batch.done():
                try:
                    await asyncio.shield(batch)
                except asyncio.CancelledError:
                    log.debug("Repeated cancellation while delivering a batch for %s", self.name)
            raise

    async def _send_all(self, changes: list[Change[SocketAddress, D]]) -> bool:
        for change in changes:
            try:
                await self.sender.send(change)
            except ChannelClosedError:
                self._stop_on_closed_channel()
                return False
        return True

    def _to_change(self, action: EndpointAction) -> Change[SocketAddress, D]:
        if isinstance(action, InsertEndpoint):
            return Insert(action.address, self.build(action.address))
        return Remove(action.address)

    def _stop_on_closed_channel(self) -> None:
        log.warning("Balance channel closed, stopping endpoint discovery for %s", self.name)
        self.state = LoopState.TERMINATED

    async def _back_off(self, failure: Exception | None) -> None:
        self.state = LoopState.BACKOFF
        delay = self.backoff.next_delay()
        if failure is None:
            log.warning("Watch for %s ended; reconnecting in %.2fs", self.name, delay)
        else:
            log.warning(
                "Watch for %s failed (%s: %s); reconnecting in %.2fs",
                self.name,
                type(failure).__name__,
                failure,
                delay,
            )
        await self.sleep(delay)


__all__ = ["DiscoveryLoop", "ExponentialBackoff", "LoopState", "Sleeper"]
