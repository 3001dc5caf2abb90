import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"
DEFAULT_SYNC_KEY = "vault-sa-patcher/sync"


class Settings(BaseSettings):
    """Patcher configuration.

    Values are layered: field defaults, then the YAML config file, then
    environment variables with the VSP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="VSP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "info"
    log_format: Literal["text", "json"] = "text"

    # Cluster access
    in_cluster: bool = True
    token_path: str = DEFAULT_TOKEN_PATH
    token: SecretStr = SecretStr("")
    kubeconfig: str = ""
    kube_request_timeout_seconds: float = 30.0

    # Reconciliation
    interval: int = Field(default=300, ge=1)
    vault_refresh_multiplier: int = Field(default=12, ge=1)
    shutdown_warning_seconds: float | None = 30.0
    secret_name_prefix: str = "image-poll-secret-from-vault-"
    sync_key: str = DEFAULT_SYNC_KEY
    # Label selector for service account listing. None means "<sync_key>=true",
    # an empty string lists every account.
    service_account_selector: str | None = None

    # Vault
    vault_scheme: str = "https"
    vault_server: str = "vault-active"
    vault_port: int = 8200
    vault_role: str = "image_pool_secret"
    vault_auth_mount: str = "kubernetes"
    vault_mount_path: str = "projects"
    vault_secret_path: str = "share/docker/registries"
    vault_timeout_seconds: float = 60.0
    vault_ca_cert: str | None = None

    # HTTP probes
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    http_route_prefix: str = ""

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized not in logging.getLevelNamesMapping():
                raise ValueError(f"unknown log level: {value}")
            return normalized.lower()
        return value

    @field_validator("http_route_prefix")
    @classmethod
    def _normalize_route_prefix(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if value and not value.startswith("/"):
            value = f"/{value}"
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over init kwargs so the YAML file (passed as init
        # kwargs by load_settings) sits between defaults and env.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def vault_address(self) -> str:
        return f"{self.vault_scheme}://{self.vault_server}:{self.vault_port}"

    @property
    def effective_service_account_selector(self) -> str:
        if self.service_account_selector is None:
            return f"{self.sync_key}=true"
        return self.service_account_selector

    @property
    def vault_refresh_interval(self) -> int:
        """Seconds between credential refreshes."""
        return self.interval * self.vault_refresh_multiplier

    @property
    def log_level_number(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level.upper()]


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Read the YAML config file; a missing or empty file yields no overrides."""
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("Config file %s not found, using defaults and environment", path)
        return {}

    data = yaml.safe_load(raw)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def load_settings(config_file: str | Path | None = DEFAULT_CONFIG_FILE) -> Settings:
    """Build settings from defaults, the optional YAML file and the environment."""
    overrides = read_config_file(config_file) if config_file else {}
    return Settings(**overrides)
