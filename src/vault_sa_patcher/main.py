"""vault-sa-patcher service: component wiring and probe server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from vault_sa_patcher import __version__
from vault_sa_patcher.config import Settings
from vault_sa_patcher.middleware import AccessLogMiddleware
from vault_sa_patcher.routes import health_router
from vault_sa_patcher.services import (
    CredentialRefresher,
    KubeGateway,
    ReconciliationLoop,
    SecretSynchronizer,
    ServiceAccountBinder,
    VaultSecretStore,
)
from vault_sa_patcher.services.base import ClusterGateway, SecretStore

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """The wired component graph: store -> gateway -> synchronizer/binder -> loop."""

    gateway: ClusterGateway
    store: SecretStore
    refresher: CredentialRefresher
    loop: ReconciliationLoop


def assemble(
    settings: Settings, *, gateway: ClusterGateway, store: SecretStore
) -> Components:
    """Compose the reconciliation components around the given collaborators."""
    synchronizer = SecretSynchronizer(
        gateway,
        secret_name_prefix=settings.secret_name_prefix,
        sync_key=settings.sync_key,
    )
    binder = ServiceAccountBinder(gateway)
    loop = ReconciliationLoop(
        gateway,
        store,
        synchronizer,
        binder,
        sync_key=settings.sync_key,
        selector=settings.effective_service_account_selector,
        interval_seconds=settings.interval,
        shutdown_warning_seconds=settings.shutdown_warning_seconds,
    )
    refresher = CredentialRefresher(store, settings.vault_refresh_interval)
    return Components(gateway=gateway, store=store, refresher=refresher, loop=loop)


def build_components(settings: Settings) -> Components:
    """Build the production graph; cluster client errors propagate."""
    gateway = KubeGateway.from_settings(settings)
    store = VaultSecretStore.from_settings(settings, fallback_token=gateway.bearer_token)
    return assemble(settings, gateway=gateway, store=store)


def create_app(settings: Settings, components: Components | None = None) -> FastAPI:
    """Create the probe server; its lifespan runs the refresher and the loop."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("vault-sa-patcher starting. Version: %s", __version__)
        wired = components or build_components(settings)
        _app.state.components = wired

        await wired.refresher.start()
        await wired.loop.start()

        yield

        logger.info("Shutting down vault-sa-patcher...")
        await wired.loop.stop()
        await wired.refresher.stop()

    app = FastAPI(
        title="vault-sa-patcher",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(AccessLogMiddleware)
    app.include_router(health_router, prefix=settings.http_route_prefix)
    return app


def serve(settings: Settings, components: Components | None = None) -> None:
    """Run the service until SIGTERM/SIGINT."""
    import uvicorn

    app = create_app(settings, components)
    logger.info("starting server at %s:%s", settings.http_host, settings.http_port)
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        log_config=None,
    )
