"""Ready-endpoint extraction from a single EndpointSlice snapshot."""

from __future__ import annotations

import ipaddress
from typing import TYPE_CHECKING

from .types import MAX_PORT, PortName, PortNumber, SocketAddress

if TYPE_CHECKING:
    from .types import EndpointSlice, Port


def resolve_port(slice_: EndpointSlice, port: Port) -> int | None:
    """Return the port number ``port`` denotes for ``slice_``.

    Numeric specifiers resolve to themselves. Named specifiers resolve against
    the first declared port with that name; ``None`` is returned when the name
    is not declared, has no number, or the number is not a valid port.
    """

    if isinstance(port, PortNumber):
        return port.number
    if not isinstance(port, PortName):
        raise TypeError(f"Unsupported port specifier: {port!r}")

    for declared in slice_.ports:
        if declared.name != port.name:
            continue
        if declared.port is None or not 0 <= declared.port <= MAX_PORT:
            return None
        return declared.port
    return None


def extract_ready_endpoints(slice_: EndpointSlice, port: Port) -> frozenset[SocketAddress]:
    """Collect the socket addresses of every ready endpoint in ``slice_``.

    Entries explicitly marked not ready are skipped, as are address strings that
    do not parse as IPv4/IPv6. A slice whose named port cannot be resolved
    contributes nothing.
    """

    port_number = resolve_port(slice_, port)
    if port_number is None:
        return frozenset()

    addresses: set[SocketAddress] = set()
    for entry in slice_.endpoints:
        if not entry.is_ready:
            continue
        for raw in entry.addresses:
            try:
                ip = ipaddress.ip_address(raw)
            except ValueError:
                continue
            addresses.add(SocketAddress(ip, port_number))
    return frozenset(addresses)


__all__ = ["extract_ready_endpoints", "resolve_port"]
