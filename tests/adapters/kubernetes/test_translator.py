from __future__ import annotations

import pytest
from pydantic import ValidationError

from kube_balance.adapters.kubernetes import EndpointSlicePayload, parse_endpoint_slice, parse_object_key
from kube_balance.domain.types import DeclaredPort, EndpointEntry, ObjectKey

from tests.helpers.slices import slice_payload


def test_parse_endpoint_slice_maps_payload_to_domain() -> None:
    payload = slice_payload("svc-abc", ready=["10.0.0.1"], not_ready=["10.0.0.2"], namespace="prod")

    slice_ = parse_endpoint_slice(payload)

    assert slice_.key == ObjectKey("prod", "svc-abc")
    assert slice_.endpoints == (
        EndpointEntry(addresses=("10.0.0.1",), ready=True),
        EndpointEntry(addresses=("10.0.0.2",), ready=False),
    )
    assert slice_.ports == (DeclaredPort(name="grpc", port=50051),)


def test_parse_endpoint_slice_accepts_validated_model() -> None:
    model = EndpointSlicePayload.model_validate(slice_payload(ready=["10.0.0.1"]))

    assert parse_endpoint_slice(model) == parse_endpoint_slice(slice_payload(ready=["10.0.0.1"]))


def test_missing_optional_fields_use_defaults() -> None:
    payload = {
        "metadata": {"name": "svc-xyz", "namespace": "default", "labels": None},
        "addressType": "IPv4",
        "endpoints": [
            {"addresses": ["10.0.0.1"]},
            {"addresses": ["10.0.0.2"], "conditions": {}},
            {"addresses": None, "conditions": {"ready": True}},
        ],
        "ports": None,
    }

    slice_ = parse_endpoint_slice(payload)

    assert slice_.endpoints == (
        EndpointEntry(addresses=("10.0.0.1",), ready=None),
        EndpointEntry(addresses=("10.0.0.2",), ready=None),
        EndpointEntry(addresses=(), ready=True),
    )
    assert slice_.ports == ()


def test_null_endpoints_and_unnamed_ports() -> None:
    payload = slice_payload(port_name=None)
    payload["endpoints"] = None

    slice_ = parse_endpoint_slice(payload)

    assert slice_.endpoints == ()
    assert slice_.ports == (DeclaredPort(name=None, port=50051),)


def test_payload_without_metadata_name_is_rejected() -> None:
    with pytest.raises(ValidationError):
        parse_endpoint_slice({"metadata": {"namespace": "default"}, "endpoints": []})


def test_parse_object_key_reads_metadata_only() -> None:
    assert parse_object_key({"metadata": {"name": "svc-abc", "namespace": "prod"}}) == ObjectKey(
        "prod", "svc-abc"
    )
