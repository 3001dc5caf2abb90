"""Run command: serve probes and reconcile until terminated."""

import typer

from vault_sa_patcher.cli._common import prepare_components, prepare_settings
from vault_sa_patcher.config import DEFAULT_CONFIG_FILE
from vault_sa_patcher.main import serve


def run(
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
    """
    Run the patcher service.

    Examples:
        vault-sa-patcher run                       # reads ./config.yaml
        vault-sa-patcher run -c /etc/patcher.yaml  # explicit config file
    """
    settings = prepare_settings(config, verbose=verbose)
    components = prepare_components(settings)
    serve(settings, components)
