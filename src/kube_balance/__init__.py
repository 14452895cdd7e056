"""Kubernetes EndpointSlice discovery feeding client-side load balancing."""

from __future__ import annotations

from importlib import metadata

from .app import discover
from .channel import (
    Change,
    ChangeReceiver,
    ChangeSender,
    ChannelClosedError,
    EndpointTable,
    Insert,
    Remove,
    balance_channel,
)
from .config import BackoffPolicy, DiscoveryConfig
from .domain.types import PortName, PortNumber, SocketAddress, port_from

try:
    __version__ = metadata.version("kube-balance")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"

__all__ = [
    "BackoffPolicy",
    "Change",
    "ChangeReceiver",
    "ChangeSender",
    "ChannelClosedError",
    "DiscoveryConfig",
    "EndpointTable",
    "Insert",
    "PortName",
    "PortNumber",
    "Remove",
    "SocketAddress",
    "__version__",
    "balance_channel",
    "discover",
    "port_from",
]
