"""vault-sa-patcher CLI."""

import typer

from vault_sa_patcher.cli._console import console
from vault_sa_patcher.cli.run import run
from vault_sa_patcher.cli.sync import sync

app = typer.Typer(
    name="vault-sa-patcher",
    help="Attach Vault registry credentials to Kubernetes service accounts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from vault_sa_patcher import __version__

        console.print(f"[bold]vault-sa-patcher[/bold] [dim]{__version__}[/dim]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version",
    ),
) -> None:
    """Sync image pull secrets from Vault into Kubernetes."""


# Register commands
app.command()(run)
app.command()(sync)
