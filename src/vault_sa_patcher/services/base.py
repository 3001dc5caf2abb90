"""Capabilities the reconciler consumes."""

from typing import Protocol

from vault_sa_patcher.models import (
    Credential,
    PullSecretRecord,
    ServiceAccountBinding,
)


class SecretStore(Protocol):
    """
    Protocol for the registry credential source.

    Implementations cache the last successful fetch; failures leave the
    cache untouched.
    """

    async def fetch(self) -> dict[str, Credential]:
        """Reload credentials, replacing the cached mapping on success."""
        ...

    def snapshot(self) -> dict[str, bytes]:
        """Return a copy of the cached ``registry_key -> payload`` mapping."""
        ...


class ClusterGateway(Protocol):
    """
    Protocol for the Kubernetes operations the reconciler performs.

    Failures are logged by the implementation and surface as ``[]`` for
    listings and ``None`` for single-object calls.
    """

    async def list_namespaces(self) -> list[str]:
        """List every namespace name."""
        ...

    async def list_service_accounts(
        self, namespace: str, selector: str
    ) -> list[ServiceAccountBinding]:
        """List service accounts in a namespace matching a label selector."""
        ...

    async def get_secret(self, name: str, namespace: str) -> PullSecretRecord | None:
        """Read one secret; ``None`` when absent or unreadable."""
        ...

    async def create_secret(self, record: PullSecretRecord) -> PullSecretRecord | None:
        """Create a pull secret."""
        ...

    async def update_secret(self, record: PullSecretRecord) -> PullSecretRecord | None:
        """Overwrite the payload of an existing pull secret."""
        ...

    async def update_service_account(
        self, binding: ServiceAccountBinding
    ) -> ServiceAccountBinding | None:
        """Replace the image pull secret references of a service account."""
        ...
