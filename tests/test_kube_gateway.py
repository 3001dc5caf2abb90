from __future__ import annotations

import base64
from typing import Any

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

import vault_sa_patcher.services.kube as kube_module
from vault_sa_patcher.config import Settings
from vault_sa_patcher.models import (
    DOCKER_CONFIG_JSON_KEY,
    DOCKER_CONFIG_JSON_TYPE,
    PullSecretRecord,
    ServiceAccountBinding,
)
from vault_sa_patcher.services.kube import KubeGateway


def _secret(name: str, namespace: str, payload: bytes, **meta: Any) -> client.V1Secret:
    return client.V1Secret(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, **meta),
        type=DOCKER_CONFIG_JSON_TYPE,
        data={DOCKER_CONFIG_JSON_KEY: base64.b64encode(payload).decode()},
    )


def _service_account(name: str, namespace: str, pull_secrets: list[str]) -> client.V1ServiceAccount:
    return client.V1ServiceAccount(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            annotations={"vault-sa-patcher/sync": "true"},
            resource_version="42",
        ),
        image_pull_secrets=[client.V1LocalObjectReference(name=n) for n in pull_secrets],
    )


class _FakeCoreV1:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.errors: dict[str, Exception] = {}

    def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((method, args, kwargs))
        if method in self.errors:
            raise self.errors[method]

    def list_namespace(self, **kwargs: Any) -> client.V1NamespaceList:
        self._record("list_namespace", **kwargs)
        return client.V1NamespaceList(
            items=[
                client.V1Namespace(metadata=client.V1ObjectMeta(name="default")),
                client.V1Namespace(metadata=client.V1ObjectMeta(name="apps")),
            ]
        )

    def list_namespaced_service_account(self, namespace: str, **kwargs: Any) -> client.V1ServiceAccountList:
        self._record("list_namespaced_service_account", namespace, **kwargs)
        return client.V1ServiceAccountList(
            items=[_service_account("sa1", namespace, ["a", "b"])]
        )

    def read_namespaced_secret(self, name: str, namespace: str, **kwargs: Any) -> client.V1Secret:
        self._record("read_namespaced_secret", name, namespace, **kwargs)
        return _secret(
            name,
            namespace,
            b'{"auths": {}}',
            labels={"vault-sa-patcher/sync": "true"},
            resource_version="9",
        )

    def create_namespaced_secret(self, namespace: str, body: client.V1Secret, **kwargs: Any) -> client.V1Secret:
        self._record("create_namespaced_secret", namespace, body, **kwargs)
        return body

    def patch_namespaced_secret(self, name: str, namespace: str, body: dict[str, Any], **kwargs: Any) -> client.V1Secret:
        self._record("patch_namespaced_secret", name, namespace, body, **kwargs)
        payload = base64.b64decode(body["data"][DOCKER_CONFIG_JSON_KEY])
        return _secret(name, namespace, payload, resource_version="10")

    def patch_namespaced_service_account(self, name: str, namespace: str, body: dict[str, Any], **kwargs: Any) -> client.V1ServiceAccount:
        self._record("patch_namespaced_service_account", name, namespace, body, **kwargs)
        return _service_account(
            name, namespace, [ref["name"] for ref in body["imagePullSecrets"]]
        )


@pytest.fixture
def core() -> _FakeCoreV1:
    return _FakeCoreV1()


@pytest.mark.asyncio
async def test_list_namespaces_returns_names(core) -> None:
    gateway = KubeGateway(core, request_timeout=5)

    assert await gateway.list_namespaces() == ["default", "apps"]
    assert core.calls[0][2] == {"_request_timeout": 5}


@pytest.mark.asyncio
async def test_list_service_accounts_passes_selector_and_converts(core) -> None:
    gateway = KubeGateway(core)

    accounts = await gateway.list_service_accounts("apps", "vault-sa-patcher/sync=true")

    assert accounts == [
        ServiceAccountBinding(
            name="sa1",
            namespace="apps",
            annotations={"vault-sa-patcher/sync": "true"},
            pull_secret_names=["a", "b"],
            resource_version="42",
        )
    ]
    assert core.calls[0][2]["label_selector"] == "vault-sa-patcher/sync=true"


@pytest.mark.asyncio
async def test_empty_selector_lists_all_accounts(core) -> None:
    await KubeGateway(core).list_service_accounts("apps", "")

    assert "label_selector" not in core.calls[0][2]


@pytest.mark.asyncio
async def test_listing_failures_become_empty_lists(core, caplog) -> None:
    core.errors["list_namespace"] = ApiException(status=403, reason="Forbidden")
    core.errors["list_namespaced_service_account"] = ConnectionError("refused")
    gateway = KubeGateway(core)

    with caplog.at_level("ERROR"):
        assert await gateway.list_namespaces() == []
        assert await gateway.list_service_accounts("apps", "x=y") == []

    assert "403 Forbidden" in caplog.text


@pytest.mark.asyncio
async def test_get_secret_decodes_payload(core) -> None:
    record = await KubeGateway(core).get_secret("s", "apps")

    assert record is not None
    assert record.docker_config_json == b'{"auths": {}}'
    assert record.resource_version == "9"
    assert record.labels == {"vault-sa-patcher/sync": "true"}


@pytest.mark.parametrize(
    ("error", "level"),
    [
        (ApiException(status=404, reason="Not Found"), "DEBUG"),
        (ApiException(status=500, reason="Internal"), "ERROR"),
        (TimeoutError("timed out"), "ERROR"),
    ],
)
@pytest.mark.asyncio
async def test_get_secret_failures_return_none(core, caplog, error, level) -> None:
    core.errors["read_namespaced_secret"] = error

    with caplog.at_level("DEBUG", logger="vault_sa_patcher.services.kube"):
        assert await KubeGateway(core).get_secret("s", "apps") is None

    assert [r.levelname for r in caplog.records if "s(apps)" in r.getMessage()] == [level]


@pytest.mark.asyncio
async def test_create_secret_builds_dockerconfigjson_body(core) -> None:
    record = PullSecretRecord(
        name="prefix-reg",
        namespace="apps",
        docker_config_json=b"{}",
        labels={"vault-sa-patcher/sync": "true"},
        annotations={"vault-sa-patcher/sync": "true"},
    )

    created = await KubeGateway(core).create_secret(record)

    method, args, _ = core.calls[0]
    body = args[1]
    assert method == "create_namespaced_secret"
    assert args[0] == "apps"
    assert body.type == "kubernetes.io/dockerconfigjson"
    assert body.metadata.labels == {"vault-sa-patcher/sync": "true"}
    assert body.data == {".dockerconfigjson": base64.b64encode(b"{}").decode()}
    assert created is not None and created.docker_config_json == b"{}"


@pytest.mark.asyncio
async def test_update_secret_patches_only_payload(core) -> None:
    record = PullSecretRecord(
        name="prefix-reg",
        namespace="apps",
        docker_config_json=b"new",
        labels={"ignored": "yes"},
        resource_version="9",
    )

    updated = await KubeGateway(core).update_secret(record)

    _, args, _ = core.calls[0]
    assert args[2] == {
        "data": {".dockerconfigjson": base64.b64encode(b"new").decode()},
        "metadata": {"resourceVersion": "9"},
    }
    assert updated is not None and updated.resource_version == "10"


@pytest.mark.asyncio
async def test_update_service_account_replaces_pull_secrets(core) -> None:
    binding = ServiceAccountBinding(
        name="sa1",
        namespace="apps",
        pull_secret_names=["x", "y"],
        resource_version="42",
    )

    updated = await KubeGateway(core).update_service_account(binding)

    _, args, _ = core.calls[0]
    assert args[2] == {
        "imagePullSecrets": [{"name": "x"}, {"name": "y"}],
        "metadata": {"resourceVersion": "42"},
    }
    assert updated is not None and updated.pull_secret_names == ["x", "y"]


@pytest.mark.asyncio
async def test_write_conflicts_return_none(core) -> None:
    core.errors["patch_namespaced_service_account"] = ApiException(status=409, reason="Conflict")
    core.errors["create_namespaced_secret"] = ApiException(status=409, reason="AlreadyExists")
    gateway = KubeGateway(core)

    assert await gateway.update_service_account(ServiceAccountBinding(name="sa", namespace="n")) is None
    assert await gateway.create_secret(PullSecretRecord(name="s", namespace="n", docker_config_json=b"")) is None


def test_bearer_token_strips_prefix() -> None:
    configuration = client.Configuration()
    configuration.api_key = {"authorization": "Bearer abc.def"}

    assert KubeGateway(object(), configuration=configuration).bearer_token() == "abc.def"
    assert KubeGateway(object()).bearer_token() == ""


def test_from_settings_loads_kubeconfig(monkeypatch) -> None:
    loaded: dict[str, Any] = {}

    def fake_load_kube_config(config_file=None, client_configuration=None):
        loaded["config_file"] = config_file
        client_configuration.host = "https://cluster.example:6443"

    monkeypatch.setattr(kube_module.config, "load_kube_config", fake_load_kube_config)

    gateway = KubeGateway.from_settings(Settings(in_cluster=False, kubeconfig="/tmp/kc"))

    assert loaded == {"config_file": "/tmp/kc"}
    assert gateway._core_v1.api_client.configuration.host == "https://cluster.example:6443"  # noqa: SLF001


def test_from_settings_propagates_incluster_failure(monkeypatch) -> None:
    def fail(client_configuration=None):
        raise kube_module.config.ConfigException("Service host/port is not set.")

    monkeypatch.setattr(kube_module.config, "load_incluster_config", fail)

    with pytest.raises(kube_module.config.ConfigException):
        KubeGateway.from_settings(Settings(in_cluster=True))
