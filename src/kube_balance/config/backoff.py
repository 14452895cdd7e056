"""Backoff policy for re-establishing watch subscriptions."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_INITIAL_WAIT = 0.8
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MAX_BACKOFF_WAIT = 30.0
DEFAULT_BACKOFF_JITTER = 0.5


@dataclass(slots=True, frozen=True)
class BackoffPolicy:
    """Exponential backoff with a ceiling and proportional jitter.

    The n-th consecutive failure waits ``initial_wait * backoff_factor ** (n - 1)``
    seconds, capped at ``max_backoff_wait``. ``backoff_jitter`` is the fraction of
    that delay that may be randomly shaved off (``0`` disables jitter, ``1`` is
    full jitter).
    """

    initial_wait: float = DEFAULT_INITIAL_WAIT
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    max_backoff_wait: float = DEFAULT_MAX_BACKOFF_WAIT
    backoff_jitter: float = DEFAULT_BACKOFF_JITTER

    def __post_init__(self) -> None:
        if self.initial_wait <= 0:
            raise ValueError("initial_wait must be positive")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")
        if self.max_backoff_wait < self.initial_wait:
            raise ValueError("max_backoff_wait must not be below initial_wait")
        if not 0 <= self.backoff_jitter <= 1:
            raise ValueError("backoff_jitter must be between 0 and 1")
