"""Kubernetes access for namespaces, service accounts and pull secrets.

Wraps the blocking ``kubernetes`` client.  Calls run in a worker thread and
are serialized behind one lock, so a cycle never overlaps its own cluster
traffic.  Every failure is logged here and reported to callers as ``[]`` or
``None``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from vault_sa_patcher.config import Settings
from vault_sa_patcher.models import (
    DOCKER_CONFIG_JSON_KEY,
    DOCKER_CONFIG_JSON_TYPE,
    PullSecretRecord,
    ServiceAccountBinding,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BEARER_PREFIX = "Bearer "


def load_client_configuration(settings: Settings) -> client.Configuration:
    """Load in-cluster or kubeconfig credentials; failures propagate."""
    configuration = client.Configuration()
    if settings.in_cluster:
        config.load_incluster_config(client_configuration=configuration)
        logger.info("Using in-cluster Kubernetes config")
    else:
        config.load_kube_config(
            config_file=settings.kubeconfig or None,
            client_configuration=configuration,
        )
        logger.info(
            "Using kubeconfig %s", settings.kubeconfig or "(default location)"
        )
    return configuration


def _describe(exc: Exception) -> str:
    if isinstance(exc, ApiException):
        return f"{exc.status} {exc.reason}"
    return str(exc)


def _secret_to_record(secret: Any) -> PullSecretRecord:
    metadata = secret.metadata
    encoded = (secret.data or {}).get(DOCKER_CONFIG_JSON_KEY) or ""
    return PullSecretRecord(
        name=metadata.name,
        namespace=metadata.namespace,
        docker_config_json=base64.b64decode(encoded),
        labels=dict(metadata.labels or {}),
        annotations=dict(metadata.annotations or {}),
        resource_version=metadata.resource_version,
    )


def _service_account_to_binding(service_account: Any) -> ServiceAccountBinding:
    metadata = service_account.metadata
    return ServiceAccountBinding(
        name=metadata.name,
        namespace=metadata.namespace,
        annotations=dict(metadata.annotations or {}),
        pull_secret_names=[
            ref.name for ref in (service_account.image_pull_secrets or [])
        ],
        resource_version=metadata.resource_version,
    )


def _encode(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


class KubeGateway:
    """ClusterGateway backed by ``CoreV1Api``."""

    def __init__(
        self,
        core_v1: Any,
        *,
        configuration: client.Configuration | None = None,
        request_timeout: float | None = 30.0,
    ) -> None:
        self._core_v1 = core_v1
        self._configuration = configuration
        self._request_timeout = request_timeout
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> KubeGateway:
        """Build a gateway from configuration; cluster config errors are fatal."""
        configuration = load_client_configuration(settings)
        core_v1 = client.CoreV1Api(client.ApiClient(configuration))
        return cls(
            core_v1,
            configuration=configuration,
            request_timeout=settings.kube_request_timeout_seconds,
        )

    def bearer_token(self) -> str:
        """Token of the loaded client configuration, empty when unavailable."""
        if self._configuration is None:
            return ""
        token = (self._configuration.api_key or {}).get("authorization") or ""
        if token.startswith(_BEARER_PREFIX):
            token = token[len(_BEARER_PREFIX):]
        return token

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        if self._request_timeout is not None:
            kwargs.setdefault("_request_timeout", self._request_timeout)
        async with self._lock:
            return await asyncio.to_thread(fn, *args, **kwargs)

    async def list_namespaces(self) -> list[str]:
        try:
            result = await self._call(self._core_v1.list_namespace)
        except Exception as exc:
            logger.error("Failed to list namespaces: %s", _describe(exc))
            return []
        return [ns.metadata.name for ns in result.items or []]

    async def list_service_accounts(
        self, namespace: str, selector: str
    ) -> list[ServiceAccountBinding]:
        kwargs: dict[str, Any] = {}
        if selector:
            kwargs["label_selector"] = selector
        try:
            result = await self._call(
                self._core_v1.list_namespaced_service_account, namespace, **kwargs
            )
        except Exception as exc:
            logger.error(
                "Failed to list service accounts in %s: %s", namespace, _describe(exc)
            )
            return []
        return [_service_account_to_binding(sa) for sa in result.items or []]

    async def get_secret(self, name: str, namespace: str) -> PullSecretRecord | None:
        try:
            secret = await self._call(
                self._core_v1.read_namespaced_secret, name, namespace
            )
        except ApiException as exc:
            if exc.status == 404:
                logger.debug("%s(%s) - secret not found", name, namespace)
            else:
                logger.error(
                    "Failed to read secret %s(%s): %s", name, namespace, _describe(exc)
                )
            return None
        except Exception as exc:
            logger.error(
                "Failed to read secret %s(%s): %s", name, namespace, _describe(exc)
            )
            return None
        return _secret_to_record(secret)

    async def create_secret(self, record: PullSecretRecord) -> PullSecretRecord | None:
        logger.debug("%s(%s) create imagePullSecret", record.name, record.namespace)
        body = client.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=client.V1ObjectMeta(
                name=record.name,
                namespace=record.namespace,
                labels=dict(record.labels),
                annotations=dict(record.annotations),
            ),
            type=DOCKER_CONFIG_JSON_TYPE,
            data={DOCKER_CONFIG_JSON_KEY: _encode(record.docker_config_json)},
        )
        try:
            created = await self._call(
                self._core_v1.create_namespaced_secret, record.namespace, body
            )
        except Exception as exc:
            logger.error(
                "Failed to create secret %s(%s): %s",
                record.name,
                record.namespace,
                _describe(exc),
            )
            return None
        return _secret_to_record(created)

    async def update_secret(self, record: PullSecretRecord) -> PullSecretRecord | None:
        logger.debug("%s(%s) update imagePullSecret", record.name, record.namespace)
        # Only the payload key is sent; labels and annotations stay as they are.
        body: dict[str, Any] = {
            "data": {DOCKER_CONFIG_JSON_KEY: _encode(record.docker_config_json)}
        }
        if record.resource_version:
            body["metadata"] = {"resourceVersion": record.resource_version}
        try:
            updated = await self._call(
                self._core_v1.patch_namespaced_secret,
                record.name,
                record.namespace,
                body,
            )
        except Exception as exc:
            logger.error(
                "Failed to update secret %s(%s): %s",
                record.name,
                record.namespace,
                _describe(exc),
            )
            return None
        return _secret_to_record(updated)

    async def update_service_account(
        self, binding: ServiceAccountBinding
    ) -> ServiceAccountBinding | None:
        logger.debug("%s(%s) update serviceAccount", binding.name, binding.namespace)
        # imagePullSecrets has no merge key, so a patch replaces the whole list.
        body: dict[str, Any] = {
            "imagePullSecrets": [{"name": name} for name in binding.pull_secret_names]
        }
        if binding.resource_version:
            body["metadata"] = {"resourceVersion": binding.resource_version}
        try:
            updated = await self._call(
                self._core_v1.patch_namespaced_service_account,
                binding.name,
                binding.namespace,
                body,
            )
        except Exception as exc:
            logger.error(
                "Failed to update service account %s(%s): %s",
                binding.name,
                binding.namespace,
                _describe(exc),
            )
            return None
        return _service_account_to_binding(updated)
