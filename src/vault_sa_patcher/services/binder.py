"""Point a service account at the canonical pull secret list."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from vault_sa_patcher.models import ServiceAccountBinding
from vault_sa_patcher.services.base import ClusterGateway

logger = logging.getLogger(__name__)


class ServiceAccountBinder:
    """Replaces ``imagePullSecrets`` wholesale when it differs from the list."""

    def __init__(self, gateway: ClusterGateway) -> None:
        self._gateway = gateway

    async def bind(
        self, service_account: ServiceAccountBinding, secret_names: Sequence[str]
    ) -> bool:
        """Return True when an update was issued."""
        desired = list(secret_names)
        # Order matters: the same names in a different order is a change.
        if service_account.pull_secret_names == desired:
            logger.debug(
                "%s(%s) - serviceAccount not changed",
                service_account.name,
                service_account.namespace,
            )
            return False

        service_account.pull_secret_names = desired
        updated = await self._gateway.update_service_account(service_account)
        if updated is None:
            logger.warning(
                "%s(%s) - serviceAccount update failed, retrying next cycle",
                service_account.name,
                service_account.namespace,
            )
        else:
            logger.info(
                "%s(%s) - imagePullSecrets set to %s",
                service_account.name,
                service_account.namespace,
                desired,
            )
        return True
