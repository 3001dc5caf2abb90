"""Materialize registry credentials as pull secrets in one namespace."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from vault_sa_patcher.models import PullSecretRecord
from vault_sa_patcher.services.base import ClusterGateway

logger = logging.getLogger(__name__)


class SecretSynchronizer:
    """
    Creates or updates one pull secret per registry key in a namespace.

    Keys are processed in sorted order, so an unchanged snapshot always
    yields the same name list.  Secrets are never deleted.  A failed read
    is indistinguishable from "not found" and leads to a create attempt.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        *,
        secret_name_prefix: str,
        sync_key: str,
    ) -> None:
        self._gateway = gateway
        self._prefix = secret_name_prefix
        self._sync_key = sync_key

    def secret_name(self, registry_key: str) -> str:
        return f"{self._prefix}{registry_key}"

    async def sync(self, namespace: str, credentials: Mapping[str, bytes]) -> list[str]:
        """Converge secrets in ``namespace`` and return the canonical name list."""
        if not credentials:
            logger.warning("Vault returned no image pull secrets for %s", namespace)

        names: list[str] = []
        for key in sorted(credentials):
            payload = credentials[key]
            name = self.secret_name(key)
            names.append(name)

            existing = await self._gateway.get_secret(name, namespace)
            if existing is None:
                await self._gateway.create_secret(
                    PullSecretRecord(
                        name=name,
                        namespace=namespace,
                        docker_config_json=payload,
                        labels={self._sync_key: "true"},
                        annotations={self._sync_key: "true"},
                    )
                )
                continue

            if existing.docker_config_json == payload:
                logger.debug("%s(%s) - imagePullSecret not changed", name, namespace)
                continue

            existing.docker_config_json = payload
            await self._gateway.update_secret(existing)

        return names
