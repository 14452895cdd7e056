"""EndpointSlice watch subscription backed by the Kubernetes API.

Blocking client calls run off the event loop: the listing in a worker thread,
the watch stream on a daemon thread that hands events over through a queue, so
closing a subscription never waits for the stream to produce its next line.
Each subscription lists the service's slices (yielded as one ``Resync``), then
watches from the listing's resource version, renewing the watch whenever the
server-side timeout ends it. Errors are raised to the caller, which decides
when to subscribe again.
"""

from __future__ import annotations

import asyncio
import functools
import threading
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from kube_balance.config.discovery import DEFAULT_WATCH_TIMEOUT_SECONDS
from kube_balance.config.errors import ConfigurationError
from kube_balance.domain.events import Delete, Resync, Upsert
from kube_balance.domain.ports import WatchError, WatchExpiredError

from .schema import ListMetaPayload, StatusPayload
from .translator import parse_endpoint_slice, parse_object_key

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Iterator, Mapping

    from kube_balance.domain.events import ChangeEvent
    from kube_balance.domain.ports import WatchSource
    from kube_balance.domain.types import EndpointSlice

log = getLogger(__name__)

SERVICE_NAME_LABEL: Final[str] = "kubernetes.io/service-name"
SERVICE_ACCOUNT_NAMESPACE_PATH: Final[Path] = Path(
    "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
)
DEFAULT_NAMESPACE: Final[str] = "default"
_HTTP_GONE: Final[int] = 410
_ACCESS_DENIED: Final[frozenset[int]] = frozenset({401, 403})


@dataclass(frozen=True, slots=True)
class ClusterContext:
    """A configured API client plus the namespace discovery should use."""

    api_client: client.ApiClient
    namespace: str


def load_cluster_context(
    namespace: str | None = None,
    *,
    kubeconfig: str | None = None,
    context: str | None = None,
    namespace_file: Path = SERVICE_ACCOUNT_NAMESPACE_PATH,
) -> ClusterContext:
    """Load cluster credentials into a dedicated client configuration.

    In-cluster service-account credentials are tried first unless a kubeconfig
    file or context was requested explicitly. ``namespace`` overrides the
    namespace implied by the credentials.
    """

    configuration = client.Configuration()
    default_namespace: str | None = None
    loaded = False

    if kubeconfig is None and context is None:
        try:
            config.load_incluster_config(client_configuration=configuration)
        except config.ConfigException:
            log.debug("No in-cluster Kubernetes config; falling back to kubeconfig")
        else:
            log.info("Loaded in-cluster Kubernetes config")
            default_namespace = _read_namespace_file(namespace_file)
            loaded = True

    if not loaded:
        try:
            config.load_kube_config(
                config_file=kubeconfig,
                context=context,
                client_configuration=configuration,
                persist_config=False,
            )
        except (config.ConfigException, OSError) as exc:
            raise ConfigurationError(f"No usable Kubernetes configuration: {exc}") from exc
        log.info("Loaded kubeconfig")
        default_namespace = _kubeconfig_namespace(kubeconfig, context)

    return ClusterContext(
        api_client=client.ApiClient(configuration),
        namespace=namespace or default_namespace or DEFAULT_NAMESPACE,
    )


def _read_namespace_file(path: Path) -> str | None:
    try:
        value = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return value or None


def _kubeconfig_namespace(kubeconfig: str | None, context: str | None) -> str | None:
    contexts, active = config.list_kube_config_contexts(config_file=kubeconfig)
    selected = active
    if context is not None:
        selected = next((item for item in contexts if item.get("name") == context), None)
    if not selected:
        return None
    return selected.get("context", {}).get("namespace")


class KubernetesWatchSource:
    """Watch the EndpointSlices labelled with one service's name."""

    def __init__(
        self,
        cluster: ClusterContext,
        service_name: str,
        *,
        watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT_SECONDS,
        api: Any | None = None,
        watch_factory: Callable[[], Any] = watch.Watch,
    ) -> None:
        self.namespace = cluster.namespace
        self.service_name = service_name
        self.label_selector = f"{SERVICE_NAME_LABEL}={service_name}"
        self.watch_timeout_seconds = watch_timeout_seconds
        self._api_client = cluster.api_client
        self._api = api or client.DiscoveryV1Api(cluster.api_client)
        self._watch_factory = watch_factory

    async def subscribe(self) -> AsyncGenerator[ChangeEvent, None]:
        resource_version, slices = await self._list_slices()
        log.debug(
            "Listed %d EndpointSlices for %s/%s at resourceVersion %s",
            len(slices),
            self.namespace,
            self.service_name,
            resource_version,
        )
        yield Resync(slices)

        while True:
            pump = _WatchPump(self._watch_factory(), asyncio.get_running_loop())
            pump.start(
                self._api.list_namespaced_endpoint_slice,
                self.namespace,
                label_selector=self.label_selector,
                resource_version=resource_version,
                timeout_seconds=self.watch_timeout_seconds,
                allow_watch_bookmarks=True,
            )
            try:
                while (raw_event := await pump.next_event()) is not None:
                    resource_version = _event_resource_version(raw_event) or resource_version
                    change = self._translate_event(raw_event)
                    if change is not None:
                        yield change
            except ApiException as exc:
                raise self._api_failure("watch", exc) from exc
            finally:
                pump.stop()
            log.debug("Renewing EndpointSlice watch at resourceVersion %s", resource_version)

    async def _list_slices(self) -> tuple[str | None, tuple[EndpointSlice, ...]]:
        try:
            listing = await asyncio.to_thread(
                self._api.list_namespaced_endpoint_slice,
                self.namespace,
                label_selector=self.label_selector,
            )
        except ApiException as exc:
            raise self._api_failure("list", exc) from exc

        payload = self._api_client.sanitize_for_serialization(listing)
        metadata = ListMetaPayload.model_validate(payload.get("metadata") or {})
        slices: list[EndpointSlice] = []
        for item in payload.get("items") or ():
            slice_ = self._parse_slice(item)
            if slice_ is not None:
                slices.append(slice_)
        return metadata.resource_version, tuple(slices)

    def _translate_event(self, raw_event: Mapping[str, Any]) -> ChangeEvent | None:
        event_type = raw_event.get("type")
        raw_object = raw_event.get("raw_object") or {}

        if event_type in {"ADDED", "MODIFIED"}:
            slice_ = self._parse_slice(raw_object)
            return Upsert(slice_) if slice_ is not None else None
        if event_type == "DELETED":
            try:
                return Delete(parse_object_key(raw_object))
            except ValidationError as exc:
                log.warning("Ignoring DELETED event without usable metadata: %s", exc)
                return None
        if event_type == "BOOKMARK":
            return None
        if event_type == "ERROR":
            status = StatusPayload.model_validate(raw_object)
            message = f"EndpointSlice watch error: {status.reason}: {status.message}"
            if status.code == _HTTP_GONE:
                raise WatchExpiredError(message, code=status.code)
            raise WatchError(message, code=status.code)

        log.debug("Ignoring watch event of type %s", event_type)
        return None

    def _parse_slice(self, payload: Mapping[str, Any]) -> EndpointSlice | None:
        try:
            return parse_endpoint_slice(payload)
        except ValidationError as exc:
            log.warning("Skipping malformed EndpointSlice in %s: %s", self.namespace, exc)
            return None

    def _api_failure(self, action: str, exc: ApiException) -> WatchError:
        if exc.status in _ACCESS_DENIED:
            log.error(
                "Kubernetes API denied EndpointSlice %s in namespace %s (status=%s). "
                "The service account needs list and watch on discovery.k8s.io/endpointslices.",
                action,
                self.namespace,
                exc.status,
            )
        message = f"EndpointSlice {action} failed: {exc.status} {exc.reason}"
        if exc.status == _HTTP_GONE:
            return WatchExpiredError(message, code=exc.status)
        return WatchError(message, code=exc.status)


_END_OF_STREAM: Final = object()


class _WatchPump:
    """Drive one blocking watch stream on a daemon thread.

    Events (and the exception ending the stream, if any) are handed to the
    event loop through an unbounded queue. ``stop`` returns immediately: it
    flags the watch, closes the in-flight HTTP response and leaves the thread
    to exit on its own, which never holds up interpreter or loop shutdown.
    """

    def __init__(self, watcher: Any, loop: asyncio.AbstractEventLoop) -> None:
        self._watcher = watcher
        self._loop = loop
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._stopped = threading.Event()
        self._response: Any | None = None

    def start(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        # The watch helper reads the return type from the wrapped docstring.
        @functools.wraps(func)
        def request(*call_args: Any, **call_kwargs: Any) -> Any:
            self._response = func(*call_args, **call_kwargs)
            return self._response

        stream = self._watcher.stream(request, *args, **kwargs)
        thread = threading.Thread(
            target=self._run,
            args=(stream,),
            name="kube-balance-watch",
            daemon=True,
        )
        thread.start()

    async def next_event(self) -> Mapping[str, Any] | None:
        """Return the next raw event, ``None`` at end of stream, or raise its error."""

        item = await self._queue.get()
        if item is _END_OF_STREAM:
            return None
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._watcher.stop()
        response = self._response
        if response is not None:
            response.close()

    def _run(self, stream: Iterator[Mapping[str, Any]]) -> None:
        try:
            for raw_event in stream:
                if self._stopped.is_set():
                    return
                self._deliver(raw_event)
        except Exception as exc:  # noqa: BLE001
            self._deliver(exc)
            return
        self._deliver(_END_OF_STREAM)

    def _deliver(self, item: object) -> None:
        if self._stopped.is_set():
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            log.debug("Event loop closed; dropping EndpointSlice watch output")


def _event_resource_version(raw_event: Mapping[str, Any]) -> str | None:
    raw_object = raw_event.get("raw_object")
    if not isinstance(raw_object, dict):
        return None
    metadata = raw_object.get("metadata")
    if not isinstance(metadata, dict):
        return None
    return metadata.get("resourceVersion")


if TYPE_CHECKING:
    _source_check: WatchSource = KubernetesWatchSource(
        ClusterContext(api_client=client.ApiClient(), namespace=DEFAULT_NAMESPACE),
        "example",
    )
