from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from kubernetes import config as kube_config

from kube_balance.adapters.kubernetes import client as client_module
from kube_balance.adapters.kubernetes import load_cluster_context
from kube_balance.config import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path


def _in_cluster_unavailable(**_: Any) -> None:
    raise kube_config.ConfigException("Service host/port is not set.")


def test_in_cluster_config_uses_service_account_namespace(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    calls: list[str] = []
    namespace_file = tmp_path / "namespace"
    namespace_file.write_text("payments\n", encoding="utf-8")

    def load_incluster(**kwargs: Any) -> None:
        assert kwargs["client_configuration"] is not None
        calls.append("incluster")

    def load_kube(**_: Any) -> None:
        calls.append("kubeconfig")

    monkeypatch.setattr(client_module.config, "load_incluster_config", load_incluster)
    monkeypatch.setattr(client_module.config, "load_kube_config", load_kube)

    cluster = load_cluster_context(namespace_file=namespace_file)

    assert calls == ["incluster"]
    assert cluster.namespace == "payments"


def test_explicit_namespace_overrides_credentials(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    namespace_file = tmp_path / "namespace"
    namespace_file.write_text("payments", encoding="utf-8")
    monkeypatch.setattr(client_module.config, "load_incluster_config", lambda **_: None)

    cluster = load_cluster_context("checkout", namespace_file=namespace_file)

    assert cluster.namespace == "checkout"


def test_falls_back_to_kubeconfig_context_namespace(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    seen: dict[str, Any] = {}

    def load_kube(**kwargs: Any) -> None:
        seen.update(kwargs)

    monkeypatch.setattr(client_module.config, "load_incluster_config", _in_cluster_unavailable)
    monkeypatch.setattr(client_module.config, "load_kube_config", load_kube)
    monkeypatch.setattr(
        client_module.config,
        "list_kube_config_contexts",
        lambda **_: ([], {"name": "dev", "context": {"namespace": "team-a"}}),
    )

    cluster = load_cluster_context(namespace_file=tmp_path / "missing")

    assert cluster.namespace == "team-a"
    assert seen["persist_config"] is False
    assert seen["client_configuration"] is not None


def test_named_context_selects_its_namespace(monkeypatch: pytest.MonkeyPatch) -> None:
    def load_incluster(**_: Any) -> None:
        raise AssertionError("in-cluster config must not be tried for an explicit context")

    contexts = [
        {"name": "dev", "context": {"namespace": "team-a"}},
        {"name": "staging", "context": {"cluster": "staging"}},
    ]
    monkeypatch.setattr(client_module.config, "load_incluster_config", load_incluster)
    monkeypatch.setattr(client_module.config, "load_kube_config", lambda **_: None)
    monkeypatch.setattr(
        client_module.config,
        "list_kube_config_contexts",
        lambda **_: (contexts, contexts[0]),
    )

    assert load_cluster_context(context="dev").namespace == "team-a"
    assert load_cluster_context(context="staging").namespace == "default"


def test_missing_configuration_raises_configuration_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def load_kube(**_: Any) -> None:
        raise kube_config.ConfigException("Invalid kube-config file. No configuration found.")

    monkeypatch.setattr(client_module.config, "load_incluster_config", _in_cluster_unavailable)
    monkeypatch.setattr(client_module.config, "load_kube_config", load_kube)

    with pytest.raises(ConfigurationError, match="No usable Kubernetes configuration"):
        load_cluster_context()
