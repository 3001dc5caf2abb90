"""Sync command: one reconciliation cycle, then exit."""

import asyncio

import typer

from vault_sa_patcher.cli._common import prepare_components, prepare_settings
from vault_sa_patcher.cli._console import error, info, nl, success, warning
from vault_sa_patcher.config import DEFAULT_CONFIG_FILE
from vault_sa_patcher.main import Components
from vault_sa_patcher.services import CycleReport


async def _sync_once(components: Components) -> tuple[int, CycleReport]:
    registries = await components.refresher.refresh()
    report = await components.loop.run_cycle()
    return registries, report


def sync(
    config: str = typer.Option(
        DEFAULT_CONFIG_FILE,
        "--config",
        "-c",
        envvar="VSP_CONFIG_FILE",
        help="Configuration file path",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
) -> None:
    """Fetch credentials and run a single reconciliation cycle."""
    settings = prepare_settings(config, verbose=verbose)
    components = prepare_components(settings)

    registries, report = asyncio.run(_sync_once(components))

    nl()
    if registries == 0:
        warning("Vault returned no registry credentials")
    else:
        info(f"{registries} registries loaded from vault")
    info(
        f"{report.namespaces} namespaces, {report.namespaces_synced} synced, "
        f"{report.accounts_updated}/{report.accounts_bound} service accounts updated "
        f"in {report.duration_seconds:.2f}s"
    )
    if not report.ok:
        error(f"Cycle failed: {report.error}")
        nl()
        raise typer.Exit(1)
    if registries == 0:
        nl()
        raise typer.Exit(1)
    success("Cycle complete")
    nl()
