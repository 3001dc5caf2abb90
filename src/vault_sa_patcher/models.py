"""Domain records shared by the store, the gateway and the reconciler."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field

DOCKER_CONFIG_JSON_KEY = ".dockerconfigjson"
DOCKER_CONFIG_JSON_TYPE = "kubernetes.io/dockerconfigjson"


def build_docker_config_json(host: str, username: str, password: str) -> bytes:
    """Render a ``.dockerconfigjson`` payload for a single registry."""
    auth = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return json.dumps({"auths": {host: {"auth": auth}}}).encode("utf-8")


@dataclass(frozen=True)
class Credential:
    """One registry credential read from Vault."""

    registry_key: str
    host: str
    username: str
    password: str

    @property
    def payload(self) -> bytes:
        return build_docker_config_json(self.host, self.username, self.password)

    def masked(self) -> str:
        """Loggable form with the password reduced to its first character."""
        return f"{self.registry_key}({self.username}/{self.password[:1]}***@{self.host})"


@dataclass
class PullSecretRecord:
    """Cluster-side ``kubernetes.io/dockerconfigjson`` secret."""

    name: str
    namespace: str
    docker_config_json: bytes
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str | None = None


@dataclass
class ServiceAccountBinding:
    """The part of a ServiceAccount the binder reads and writes."""

    name: str
    namespace: str
    annotations: dict[str, str] = field(default_factory=dict)
    pull_secret_names: list[str] = field(default_factory=list)
    resource_version: str | None = None

    def is_opted_in(self, sync_key: str) -> bool:
        return self.annotations.get(sync_key) == "true"
