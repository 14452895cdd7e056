"""Pydantic models describing the discovery.k8s.io/v1 EndpointSlice payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _none_to_empty(value: object) -> object:
    return [] if value is None else value


def _none_to_mapping(value: object) -> object:
    return {} if value is None else value


class KubernetesBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ObjectMetaPayload(KubernetesBaseModel):
    name: str
    namespace: str | None = None
    resource_version: str | None = Field(default=None, alias="resourceVersion")
    labels: dict[str, str] = Field(default_factory=dict)

    _normalize_labels = field_validator("labels", mode="before")(_none_to_mapping)


class ListMetaPayload(KubernetesBaseModel):
    resource_version: str | None = Field(default=None, alias="resourceVersion")


class EndpointConditionsPayload(KubernetesBaseModel):
    ready: bool | None = None
    serving: bool | None = None
    terminating: bool | None = None


class EndpointPayload(KubernetesBaseModel):
    addresses: list[str] = Field(default_factory=list)
    conditions: EndpointConditionsPayload | None = None
    hostname: str | None = None
    node_name: str | None = Field(default=None, alias="nodeName")

    _normalize_addresses = field_validator("addresses", mode="before")(_none_to_empty)


class EndpointPortPayload(KubernetesBaseModel):
    name: str | None = None
    port: int | None = None
    protocol: str | None = None
    app_protocol: str | None = Field(default=None, alias="appProtocol")


class EndpointSlicePayload(KubernetesBaseModel):
    metadata: ObjectMetaPayload
    address_type: str | None = Field(default=None, alias="addressType")
    endpoints: list[EndpointPayload] = Field(default_factory=list)
    ports: list[EndpointPortPayload] = Field(default_factory=list)

    _normalize_lists = field_validator("endpoints", "ports", mode="before")(_none_to_empty)


class StatusPayload(KubernetesBaseModel):
    """Body of an ``ERROR`` watch event."""

    code: int | None = None
    reason: str | None = None
    message: str | None = None
