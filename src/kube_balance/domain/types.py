"""Value types shared by the extractor, reconciler and discovery loop."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Final

type IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

MAX_PORT: Final[int] = 65535


def _check_port_number(value: int) -> None:
    if not 0 <= value <= MAX_PORT:
        raise ValueError(f"Port number out of range: {value}")


@dataclass(frozen=True, slots=True)
class SocketAddress:
    """An IP address and port; the identity key of a backend."""

    ip: IPAddress
    port: int

    def __post_init__(self) -> None:
        _check_port_number(self.port)

    @classmethod
    def parse(cls, value: str) -> SocketAddress:
        """Parse ``"10.0.0.1:80"`` or ``"[::1]:80"``."""

        host, sep, port = value.rpartition(":")
        if not sep or not host:
            raise ValueError(f"Invalid socket address: {value!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        try:
            return cls(ipaddress.ip_address(host), int(port))
        except ValueError as exc:
            raise ValueError(f"Invalid socket address: {value!r}") from exc

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.ip.version, int(self.ip), self.port)

    def __lt__(self, other: SocketAddress) -> bool:
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        if self.ip.version == 6:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True, slots=True)
class PortNumber:
    number: int

    def __post_init__(self) -> None:
        _check_port_number(self.number)

    def __str__(self) -> str:
        return str(self.number)


@dataclass(frozen=True, slots=True)
class PortName:
    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Port name must not be empty")

    def __str__(self) -> str:
        return self.name


type Port = PortNumber | PortName


def port_from(value: int | str | Port) -> Port:
    """Build a port specifier from a number, a name, or an existing specifier.

    Strings are always treated as port names; use ``int`` for numeric ports.
    """

    if isinstance(value, PortNumber | PortName):
        return value
    if isinstance(value, bool):
        raise TypeError("Port must be an int or str, not bool")
    if isinstance(value, int):
        return PortNumber(value)
    return PortName(value)


@dataclass(frozen=True, slots=True, order=True)
class ObjectKey:
    """Stable identity of a backing object (namespace + name)."""

    namespace: str | None
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True, slots=True)
class EndpointEntry:
    """One endpoint of a slice.

    ``ready`` mirrors the optional readiness condition: ``None`` means the
    condition was not reported, which counts as ready.
    """

    addresses: tuple[str, ...] = ()
    ready: bool | None = None

    @property
    def is_ready(self) -> bool:
        return self.ready is not False


@dataclass(frozen=True, slots=True)
class DeclaredPort:
    name: str | None = None
    port: int | None = None


@dataclass(frozen=True, slots=True)
class EndpointSlice:
    """Snapshot of one backing object: its endpoints and declared ports."""

    key: ObjectKey
    endpoints: tuple[EndpointEntry, ...] = ()
    ports: tuple[DeclaredPort, ...] = field(default_factory=tuple)


__all__ = [
    "MAX_PORT",
    "DeclaredPort",
    "EndpointEntry",
    "EndpointSlice",
    "IPAddress",
    "ObjectKey",
    "Port",
    "PortName",
    "PortNumber",
    "SocketAddress",
    "port_from",
]
