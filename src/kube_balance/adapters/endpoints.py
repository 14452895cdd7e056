"""Connection descriptors for balanced HTTP backends.

``http_endpoint_builder`` returns the pure ``build`` function handed to
discovery: it turns each discovered socket address into an :class:`HttpEndpoint`
carrying everything needed to open an ``httpx`` client to that backend.
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

import httpx

if TYPE_CHECKING:
    from collections.abc import Callable

    from kube_balance.domain.types import SocketAddress

DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0

type Scheme = Literal["http", "https"]
type VerifyTypes = bool | ssl.SSLContext


@dataclass(frozen=True, slots=True)
class HttpEndpoint:
    """Where and how to reach one backend."""

    address: SocketAddress
    url: httpx.URL
    timeout: httpx.Timeout
    verify: VerifyTypes = True

    def client(self, **kwargs: Any) -> httpx.AsyncClient:
        """Open an ``httpx.AsyncClient`` whose base URL is this backend."""

        kwargs.setdefault("timeout", self.timeout)
        kwargs.setdefault("verify", self.verify)
        return httpx.AsyncClient(base_url=self.url, **kwargs)


def http_endpoint_builder(
    *,
    scheme: Scheme = "http",
    connect_timeout: float | None = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    timeout: float | None = None,
    verify: VerifyTypes = True,
) -> Callable[[SocketAddress], HttpEndpoint]:
    """Create a builder producing :class:`HttpEndpoint` values.

    ``timeout`` applies to reads, writes and pool acquisition; ``None`` disables
    it. ``connect_timeout`` bounds connection establishment separately.
    """

    if scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported scheme: {scheme}")
    http_timeout = httpx.Timeout(timeout, connect=connect_timeout)

    def build(address: SocketAddress) -> HttpEndpoint:
        return HttpEndpoint(
            address=address,
            url=httpx.URL(f"{scheme}://{address}"),
            timeout=http_timeout,
            verify=verify,
        )

    return build


__all__ = ["HttpEndpoint", "Scheme", "http_endpoint_builder"]
