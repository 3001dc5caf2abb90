from __future__ import annotations

import copy
from dataclasses import dataclass, field

import pytest

from vault_sa_patcher.config import Settings
from vault_sa_patcher.models import (
    Credential,
    PullSecretRecord,
    ServiceAccountBinding,
)

SYNC_KEY = "vault-sa-patcher/sync"
PREFIX = "image-poll-secret-from-vault-"


@dataclass
class FakeGateway:
    """In-memory ClusterGateway that records every call."""

    namespaces: list[str] = field(default_factory=list)
    service_accounts: dict[str, list[ServiceAccountBinding]] = field(
        default_factory=dict
    )
    secrets: dict[tuple[str, str], PullSecretRecord] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    fail_writes: bool = False
    fail_reads: bool = False
    selectors: list[str] = field(default_factory=list)

    def add_account(
        self,
        namespace: str,
        name: str,
        *,
        opted_in: bool | str = True,
        pull_secret_names: list[str] | None = None,
    ) -> ServiceAccountBinding:
        annotations: dict[str, str] = {}
        if opted_in is True:
            annotations[SYNC_KEY] = "true"
        elif isinstance(opted_in, str):
            annotations[SYNC_KEY] = opted_in
        account = ServiceAccountBinding(
            name=name,
            namespace=namespace,
            annotations=annotations,
            pull_secret_names=list(pull_secret_names or []),
            resource_version="1",
        )
        if namespace not in self.namespaces:
            self.namespaces.append(namespace)
        self.service_accounts.setdefault(namespace, []).append(account)
        return account

    def account(self, namespace: str, name: str) -> ServiceAccountBinding:
        for account in self.service_accounts.get(namespace, []):
            if account.name == name:
                return account
        raise KeyError(name)

    def writes(self) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] in {"create_secret", "update_secret", "update_service_account"}]

    async def list_namespaces(self) -> list[str]:
        self.calls.append(("list_namespaces",))
        return list(self.namespaces)

    async def list_service_accounts(
        self, namespace: str, selector: str
    ) -> list[ServiceAccountBinding]:
        self.calls.append(("list_service_accounts", namespace))
        self.selectors.append(selector)
        # Hand out copies, like a real API server would.
        return [copy.deepcopy(sa) for sa in self.service_accounts.get(namespace, [])]

    async def get_secret(self, name: str, namespace: str) -> PullSecretRecord | None:
        self.calls.append(("get_secret", namespace, name))
        if self.fail_reads:
            return None
        record = self.secrets.get((namespace, name))
        return copy.deepcopy(record) if record else None

    async def create_secret(self, record: PullSecretRecord) -> PullSecretRecord | None:
        self.calls.append(("create_secret", record.namespace, record.name))
        if self.fail_writes:
            return None
        stored = copy.deepcopy(record)
        stored.resource_version = "1"
        self.secrets[(record.namespace, record.name)] = stored
        return copy.deepcopy(stored)

    async def update_secret(self, record: PullSecretRecord) -> PullSecretRecord | None:
        self.calls.append(("update_secret", record.namespace, record.name))
        if self.fail_writes:
            return None
        stored = self.secrets[(record.namespace, record.name)]
        stored.docker_config_json = record.docker_config_json
        return copy.deepcopy(stored)

    async def update_service_account(
        self, binding: ServiceAccountBinding
    ) -> ServiceAccountBinding | None:
        self.calls.append(("update_service_account", binding.namespace, binding.name))
        if self.fail_writes:
            return None
        stored = self.account(binding.namespace, binding.name)
        stored.pull_secret_names = list(binding.pull_secret_names)
        return copy.deepcopy(stored)


class FakeStore:
    """SecretStore serving a fixed credential set."""

    def __init__(self, credentials: dict[str, Credential] | None = None) -> None:
        self.credentials = dict(credentials or {})
        self.fetches = 0

    async def fetch(self) -> dict[str, Credential]:
        self.fetches += 1
        return dict(self.credentials)

    def snapshot(self) -> dict[str, bytes]:
        return {key: cred.payload for key, cred in self.credentials.items()}


def make_credential(key: str, host: str = "h", username: str = "u", password: str = "p") -> Credential:
    return Credential(registry_key=key, host=host, username=username, password=password)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings(monkeypatch) -> Settings:
    for name in ("VSP_INTERVAL", "VSP_SECRET_NAME_PREFIX", "VSP_SYNC_KEY"):
        monkeypatch.delenv(name, raising=False)
    return Settings(interval=1, in_cluster=False, shutdown_warning_seconds=5)
