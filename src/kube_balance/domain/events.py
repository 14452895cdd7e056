"""Change events consumed by the reconciler and the actions it produces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import EndpointSlice, ObjectKey, SocketAddress


@dataclass(frozen=True, slots=True)
class Upsert:
    """A slice was created or changed."""

    slice: EndpointSlice


@dataclass(frozen=True, slots=True)
class Delete:
    """A slice was removed."""

    key: ObjectKey


@dataclass(frozen=True, slots=True)
class Resync:
    """Complete listing of the slices that currently exist.

    Emitted as the first event of every fresh subscription so that anything
    missed while disconnected is reconciled.
    """

    slices: tuple[EndpointSlice, ...]


type ChangeEvent = Upsert | Delete | Resync


@dataclass(frozen=True, slots=True)
class InsertEndpoint:
    address: SocketAddress


@dataclass(frozen=True, slots=True)
class RemoveEndpoint:
    address: SocketAddress


type EndpointAction = InsertEndpoint | RemoveEndpoint


__all__ = [
    "ChangeEvent",
    "Delete",
    "EndpointAction",
    "InsertEndpoint",
    "RemoveEndpoint",
    "Resync",
    "Upsert",
]
