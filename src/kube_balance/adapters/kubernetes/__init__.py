"""Public interface for the Kubernetes adapter."""

from __future__ import annotations

from .client import (
    SERVICE_NAME_LABEL,
    ClusterContext,
    KubernetesWatchSource,
    load_cluster_context,
)
from .schema import EndpointSlicePayload, StatusPayload
from .translator import parse_endpoint_slice, parse_object_key

__all__ = [
    "SERVICE_NAME_LABEL",
    "ClusterContext",
    "EndpointSlicePayload",
    "KubernetesWatchSource",
    "StatusPayload",
    "load_cluster_context",
    "parse_endpoint_slice",
    "parse_object_key",
]
