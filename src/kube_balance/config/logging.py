"""Shared logging helpers for kube-balance."""

from __future__ import annotations

import logging

# Client libraries that log every request at DEBUG/INFO.
_NOISY_LOGGERS = ("kubernetes", "urllib3")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once with sensible defaults.

    Parameters mirror ``logging.basicConfig`` with a simplified contract: we default
    to INFO level and a terse format suitable for CLI output. Pass ``force=True`` to
    reconfigure during tests or specialised entry points.

    The Kubernetes client and its HTTP pool are kept at WARNING regardless of
    ``level`` so debug output stays focused on endpoint changes.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
