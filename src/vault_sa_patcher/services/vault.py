"""Registry credentials read from Vault.

The secret at ``<mount>/<path>`` (KV v2) is a flat map whose keys look like
``<registry>/host``, ``<registry>/username`` and ``<registry>/password``.
Each registry becomes one :class:`Credential`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import hvac

from vault_sa_patcher.config import Settings
from vault_sa_patcher.models import Credential

logger = logging.getLogger(__name__)

_FIELDS = ("host", "username", "password")


def parse_registry_credentials(data: Mapping[str, Any]) -> dict[str, Credential]:
    """Group flat ``<registry>/<field>`` entries into credentials."""
    parts: dict[str, dict[str, str]] = {}
    for key, value in data.items():
        registry, sep, field = str(key).partition("/")
        if not sep or not registry or field not in _FIELDS:
            logger.warning("Skipping unexpected vault key %r", key)
            continue
        parts.setdefault(registry, {})[field] = "" if value is None else str(value)

    credentials: dict[str, Credential] = {}
    for registry, values in parts.items():
        missing = [field for field in _FIELDS if field not in values]
        if missing:
            logger.warning(
                "Registry %s is missing %s in vault", registry, ", ".join(missing)
            )
        credentials[registry] = Credential(
            registry_key=registry,
            host=values.get("host", ""),
            username=values.get("username", ""),
            password=values.get("password", ""),
        )
    return credentials


def build_jwt_provider(
    settings: Settings, fallback: Callable[[], str]
) -> Callable[[], str]:
    """Pick the token used for Vault Kubernetes auth.

    In-cluster deployments read the projected service account token on every
    login so rotated tokens are picked up.
    """
    if settings.in_cluster:
        token_path = Path(settings.token_path)
        return lambda: token_path.read_text(encoding="utf-8").strip()

    token = settings.token.get_secret_value()
    if token:
        return lambda: token
    return fallback


class VaultSecretStore:
    """SecretStore that logs into Vault with Kubernetes auth and reads KV v2."""

    def __init__(
        self,
        *,
        address: str,
        role: str,
        mount_path: str,
        secret_path: str,
        jwt_provider: Callable[[], str],
        auth_mount: str = "kubernetes",
        timeout: float = 60.0,
        verify: bool | str = True,
        client_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._address = address
        self._role = role
        self._mount_path = mount_path
        self._secret_path = secret_path
        self._jwt_provider = jwt_provider
        self._auth_mount = auth_mount
        self._timeout = timeout
        self._verify = verify
        self._client_factory = client_factory
        self._lock = threading.Lock()
        self._credentials: dict[str, Credential] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, *, fallback_token: Callable[[], str]
    ) -> VaultSecretStore:
        return cls(
            address=settings.vault_address,
            role=settings.vault_role,
            mount_path=settings.vault_mount_path,
            secret_path=settings.vault_secret_path,
            jwt_provider=build_jwt_provider(settings, fallback_token),
            auth_mount=settings.vault_auth_mount,
            timeout=settings.vault_timeout_seconds,
            verify=settings.vault_ca_cert or True,
        )

    def _read_secret_data(self) -> dict[str, Any]:
        factory = self._client_factory or hvac.Client
        vault = factory(url=self._address, timeout=self._timeout, verify=self._verify)
        try:
            auth_info = vault.auth.kubernetes.login(
                role=self._role,
                jwt=self._jwt_provider(),
                mount_point=self._auth_mount,
            )
            if not auth_info:
                raise RuntimeError("no auth info was returned after login")

            response = vault.secrets.kv.v2.read_secret_version(
                path=self._secret_path,
                mount_point=self._mount_path,
                raise_on_deleted_version=True,
            )
        finally:
            vault.adapter.close()
        return ((response or {}).get("data") or {}).get("data") or {}

    async def fetch(self) -> dict[str, Credential]:
        """Reload credentials from Vault.

        On any failure the error is logged and the previous cache is kept
        and returned.
        """
        try:
            data = await asyncio.to_thread(self._read_secret_data)
        except Exception as exc:
            logger.error(
                "Unable to read image pull secrets from %s: %s", self._address, exc
            )
            with self._lock:
                return dict(self._credentials)

        credentials = parse_registry_credentials(data)
        with self._lock:
            self._credentials = credentials

        for key in sorted(credentials):
            logger.info("imagePullSecret: %s", credentials[key].masked())
        return dict(credentials)

    def snapshot(self) -> dict[str, bytes]:
        with self._lock:
            return {key: cred.payload for key, cred in self._credentials.items()}
