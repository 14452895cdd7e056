"""Ports implemented by watch-subscription adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from .events import ChangeEvent


class WatchError(RuntimeError):
    """Raised by a watch source when its subscription broke.

    The discovery loop treats every subscription failure as transient; this
    type exists so adapters can attach the server-reported status ``code``.
    """

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class WatchExpiredError(WatchError):
    """The resource version the watch resumed from is no longer available."""


@runtime_checkable
class WatchSource(Protocol):
    """Subscription to change events for the slices of one service.

    Every call to ``subscribe`` starts a fresh subscription whose first event
    is a ``Resync`` carrying the complete current listing. The generator raises
    when the subscription fails; it is closed by the consumer on shutdown.
    """

    def subscribe(self) -> AsyncGenerator[ChangeEvent, None]: ...


__all__ = ["WatchError", "WatchExpiredError", "WatchSource"]
