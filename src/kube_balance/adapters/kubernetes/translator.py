"""Translate EndpointSlice payloads into domain slices."""

from __future__ import annotations

from typing import TYPE_CHECKING

from kube_balance.domain.types import DeclaredPort, EndpointEntry, EndpointSlice, ObjectKey

from .schema import EndpointSlicePayload, ObjectMetaPayload

if TYPE_CHECKING:
    from collections.abc import Mapping


def parse_endpoint_slice(payload: Mapping[str, object] | EndpointSlicePayload) -> EndpointSlice:
    """Validate a raw EndpointSlice payload and convert it to the domain type."""

    model = (
        payload
        if isinstance(payload, EndpointSlicePayload)
        else EndpointSlicePayload.model_validate(payload)
    )
    return parse_endpoint_slice_model(model)


def parse_endpoint_slice_model(model: EndpointSlicePayload) -> EndpointSlice:
    endpoints = tuple(
        EndpointEntry(
            addresses=tuple(endpoint.addresses),
            ready=endpoint.conditions.ready if endpoint.conditions is not None else None,
        )
        for endpoint in model.endpoints
    )
    ports = tuple(DeclaredPort(name=port.name, port=port.port) for port in model.ports)
    return EndpointSlice(key=object_key(model.metadata), endpoints=endpoints, ports=ports)


def parse_object_key(payload: Mapping[str, object]) -> ObjectKey:
    """Read just the identity of an object, e.g. from a ``DELETED`` event."""

    return object_key(ObjectMetaPayload.model_validate(payload.get("metadata")))


def object_key(metadata: ObjectMetaPayload) -> ObjectKey:
    return ObjectKey(namespace=metadata.namespace, name=metadata.name)


__all__ = [
    "object_key",
    "parse_endpoint_slice",
    "parse_endpoint_slice_model",
    "parse_object_key",
]
