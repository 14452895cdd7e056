"""Randomised event sequences checked against a from-scratch recomputation."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from kube_balance.domain.events import Delete, InsertEndpoint, RemoveEndpoint, Resync, Upsert
from kube_balance.domain.extract import extract_ready_endpoints
from kube_balance.domain.reconcile import KnownEndpoints, process_event
from kube_balance.domain.types import PortName, PortNumber

from tests.helpers.slices import make_slice

if TYPE_CHECKING:
    from kube_balance.domain.events import ChangeEvent
    from kube_balance.domain.types import EndpointSlice, ObjectKey, Port, SocketAddress

NAMES = ("a", "b", "c", "d")
IPS = tuple(f"10.0.0.{i}" for i in range(1, 9)) + ("not-an-ip", "fd00::1")


def _random_slice(rng: random.Random) -> EndpointSlice:
    chosen = rng.sample(IPS, rng.randint(0, 5))
    split = rng.randint(0, len(chosen))
    ports = rng.choice(((("grpc", 50051),), (("http", 8080),), (("grpc", 50052), ("grpc", 1))))
    return make_slice(
        rng.choice(NAMES),
        ready=chosen[:split],
        not_ready=chosen[split:],
        ports=ports,
    )


def _random_event(rng: random.Random, live: dict[ObjectKey, EndpointSlice]) -> ChangeEvent:
    roll = rng.random()
    if roll < 0.6:
        return Upsert(_random_slice(rng))
    if roll < 0.85 and live:
        return Delete(rng.choice(sorted(live)))
    return Resync(tuple(_random_slice(rng) for _ in range(rng.randint(0, 4))))


def _track(event: ChangeEvent, live: dict[ObjectKey, EndpointSlice]) -> None:
    if isinstance(event, Upsert):
        live[event.slice.key] = event.slice
    elif isinstance(event, Delete):
        live.pop(event.key, None)
    else:
        live.clear()
        for slice_ in event.slices:
            live[slice_.key] = slice_


def _expected(live: dict[ObjectKey, EndpointSlice], port: Port) -> set[SocketAddress]:
    expected: set[SocketAddress] = set()
    for slice_ in live.values():
        expected |= extract_ready_endpoints(slice_, port)
    return expected


@pytest.mark.parametrize("seed", range(25))
@pytest.mark.parametrize("port", [PortNumber(50051), PortName("grpc")], ids=["number", "name"])
def test_known_state_matches_union_of_live_slices(seed: int, port: Port) -> None:
    rng = random.Random(seed)
    known = KnownEndpoints()
    live: dict[ObjectKey, EndpointSlice] = {}
    delivered: set[SocketAddress] = set()

    for _ in range(60):
        event = _random_event(rng, live)
        actions = process_event(event, known, port)
        _track(event, live)

        for action in actions:
            if isinstance(action, InsertEndpoint):
                assert action.address not in delivered
                delivered.add(action.address)
            else:
                assert isinstance(action, RemoveEndpoint)
                assert action.address in delivered
                delivered.remove(action.address)

        expected = _expected(live, port)
        assert known.addresses() == expected
        assert delivered == expected
        for address in known:
            owners = known.owners(address)
            assert owners
            assert all(address in extract_ready_endpoints(live[owner], port) for owner in owners)
