"""Incremental reconciliation of change events into endpoint actions.

``KnownEndpoints`` records, for every address currently handed to the
balancer, which slices contribute it. An address is only withdrawn once no
slice lists it as ready any more, so endpoints shared between slices (for
example during a slice split or migration) survive the removal of one owner.

``process_event`` is a pure state transition: given one event and the known
state it returns the insert/remove actions, mutating the state in place. Within
one event inserts are ordered before removes, each in ascending address order.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from .events import Delete, InsertEndpoint, RemoveEndpoint, Resync, Upsert
from .extract import extract_ready_endpoints, resolve_port

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .events import ChangeEvent, EndpointAction
    from .types import EndpointSlice, ObjectKey, Port, SocketAddress

log = getLogger(__name__)


class KnownEndpoints:
    """Address -> contributing slices, with the reverse index kept in step."""

    __slots__ = ("_contributions", "_owners")

    def __init__(self) -> None:
        self._owners: dict[SocketAddress, set[ObjectKey]] = {}
        self._contributions: dict[ObjectKey, frozenset[SocketAddress]] = {}

    def __len__(self) -> int:
        return len(self._owners)

    def __contains__(self, address: object) -> bool:
        return address in self._owners

    def __iter__(self) -> Iterator[SocketAddress]:
        return iter(sorted(self._owners))

    def addresses(self) -> frozenset[SocketAddress]:
        return frozenset(self._owners)

    def owners(self, address: SocketAddress) -> frozenset[ObjectKey]:
        return frozenset(self._owners.get(address, ()))

    def objects(self) -> frozenset[ObjectKey]:
        return frozenset(self._contributions)

    def contributed_by(self, key: ObjectKey) -> frozenset[SocketAddress]:
        return self._contributions.get(key, frozenset())

    def assign(
        self,
        key: ObjectKey,
        addresses: Iterable[SocketAddress],
    ) -> tuple[list[SocketAddress], list[SocketAddress]]:
        """Make ``key`` contribute exactly ``addresses``.

        Returns ``(appeared, vanished)``: addresses that gained their first
        contributor and addresses that lost their last one, both sorted.
        """

        current = frozenset(addresses)
        previous = self.contributed_by(key)

        appeared: list[SocketAddress] = []
        for address in sorted(current - previous):
            owners = self._owners.setdefault(address, set())
            if not owners:
                appeared.append(address)
            owners.add(key)

        vanished: list[SocketAddress] = []
        for address in sorted(previous - current):
            owners = self._owners.get(address)
            if owners is None:
                continue
            owners.discard(key)
            if not owners:
                del self._owners[address]
                vanished.append(address)

        if current:
            self._contributions[key] = current
        else:
            self._contributions.pop(key, None)
        return appeared, vanished

    def forget(self, key: ObjectKey) -> list[SocketAddress]:
        """Drop every contribution of ``key``; return addresses left unowned."""

        _, vanished = self.assign(key, ())
        return vanished

    def replace_with(self, other: KnownEndpoints) -> None:
        self._owners = {address: set(keys) for address, keys in other._owners.items()}  # noqa: SLF001
        self._contributions = dict(other._contributions)  # noqa: SLF001


def process_event(
    event: ChangeEvent,
    known: KnownEndpoints,
    port: Port,
) -> list[EndpointAction]:
    """Apply ``event`` to ``known`` and return the resulting endpoint actions."""

    if isinstance(event, Upsert):
        return _apply_upsert(event.slice, known, port)
    if isinstance(event, Delete):
        return _apply_delete(event.key, known)
    if isinstance(event, Resync):
        return _apply_resync(event.slices, known, port)
    raise TypeError(f"Unsupported change event: {event!r}")


def _apply_upsert(slice_: EndpointSlice, known: KnownEndpoints, port: Port) -> list[EndpointAction]:
    if slice_.endpoints and resolve_port(slice_, port) is None:
        log.debug("Slice %s does not declare port %s; contributing no endpoints", slice_.key, port)
    ready = extract_ready_endpoints(slice_, port)
    appeared, vanished = known.assign(slice_.key, ready)
    return _actions(appeared, vanished)


def _apply_delete(key: ObjectKey, known: KnownEndpoints) -> list[EndpointAction]:
    return _actions([], known.forget(key))


def _apply_resync(
    slices: Iterable[EndpointSlice],
    known: KnownEndpoints,
    port: Port,
) -> list[EndpointAction]:
    desired = KnownEndpoints()
    latest: dict[ObjectKey, EndpointSlice] = {}
    for slice_ in slices:
        latest[slice_.key] = slice_
    for key, slice_ in latest.items():
        desired.assign(key, extract_ready_endpoints(slice_, port))

    before = known.addresses()
    after = desired.addresses()
    known.replace_with(desired)
    return _actions(sorted(after - before), sorted(before - after))


def _actions(
    inserted: Iterable[SocketAddress],
    removed: Iterable[SocketAddress],
) -> list[EndpointAction]:
    actions: list[EndpointAction] = []
    for address in inserted:
        log.debug("adding endpoint: %s", address)
        actions.append(InsertEndpoint(address))
    for address in removed:
        log.debug("removing endpoint: %s", address)
        actions.append(RemoveEndpoint(address))
    return actions


__all__ = ["KnownEndpoints", "process_event"]
