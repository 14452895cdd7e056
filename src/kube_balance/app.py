"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from kube_balance.adapters.kubernetes import KubernetesWatchSource, load_cluster_context
from kube_balance.config.errors import ConfigurationError
from kube_balance.domain.discovery import DiscoveryLoop, ExponentialBackoff

if TYPE_CHECKING:
    from collections.abc import Callable

    from kube_balance.channel import ChangeSender
    from kube_balance.config import DiscoveryConfig
    from kube_balance.domain.discovery import Sleeper
    from kube_balance.domain.ports import WatchSource
    from kube_balance.domain.types import SocketAddress

log = getLogger(__name__)


def discover[D](
    config: DiscoveryConfig,
    sender: ChangeSender[SocketAddress, D],
    build: Callable[[SocketAddress], D],
    *,
    source: WatchSource | None = None,
    backoff: ExponentialBackoff | None = None,
    sleep: Sleeper = asyncio.sleep,
) -> asyncio.Task[None]:
    """Start keeping ``sender``'s channel in step with the service's endpoints.

    Spawns the discovery loop on the running event loop and returns its task
    immediately. The task runs until the channel's receiver is closed or the
    task is cancelled; watch failures are retried, never raised. Without an
    explicit ``source`` the Kubernetes cluster context is loaded inside the
    task, and the task ends (after logging) if no configuration is available.
    An exception raised by ``build`` ends the task and is logged when it does,
    so awaiting the task is optional.
    """

    effective_backoff = backoff or ExponentialBackoff(config.backoff)
    task = asyncio.create_task(
        _run_discovery(config, sender, build, source, effective_backoff, sleep),
        name=f"kube-balance:{config.service_name}",
    )
    task.add_done_callback(_log_task_failure)
    return task


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("Endpoint discovery task %s failed", task.get_name(), exc_info=exc)


async def _run_discovery[D](
    config: DiscoveryConfig,
    sender: ChangeSender[SocketAddress, D],
    build: Callable[[SocketAddress], D],
    source: WatchSource | None,
    backoff: ExponentialBackoff,
    sleep: Sleeper,
) -> None:
    name = config.service_name
    try:
        if source is None:
            try:
                kubernetes_source = await asyncio.to_thread(_build_kubernetes_source, config)
            except ConfigurationError:
                log.exception("Kubernetes endpoint discovery for %s could not start", name)
                return
            name = f"{kubernetes_source.namespace}/{config.service_name}"
            source = kubernetes_source

        log.info("Starting endpoint discovery for %s on port %s", name, config.port)
        loop = DiscoveryLoop(
            source=source,
            sender=sender,
            build=build,
            port=config.port,
            backoff=backoff,
            sleep=sleep,
            name=name,
        )
        await loop.run()
    finally:
        # Receivers see end-of-stream once discovery is gone.
        await sender.aclose()


def _build_kubernetes_source(config: DiscoveryConfig) -> KubernetesWatchSource:
    cluster = load_cluster_context(config.namespace)
    return KubernetesWatchSource(
        cluster,
        config.service_name,
        watch_timeout_seconds=config.watch_timeout_seconds,
    )
