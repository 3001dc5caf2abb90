"""Startup helpers shared by CLI commands."""

import logging

import typer
import yaml
from pydantic import ValidationError

from vault_sa_patcher.cli._console import error_panel
from vault_sa_patcher.config import Settings, load_settings
from vault_sa_patcher.logging import configure_logging
from vault_sa_patcher.main import Components, build_components

logger = logging.getLogger(__name__)


def prepare_settings(config_file: str, *, verbose: bool) -> Settings:
    """Load configuration and configure logging, exiting on invalid config."""
    try:
        settings = load_settings(config_file)
    except (ValidationError, ValueError, yaml.YAMLError) as e:
        error_panel(str(e), title="Configuration error")
        raise typer.Exit(1)

    level = logging.DEBUG if verbose else settings.log_level_number
    configure_logging(level=level, log_format=settings.log_format)
    # SecretStr fields render masked.
    logger.debug("Effective configuration: %s", settings.model_dump_json())
    return settings


def prepare_components(settings: Settings) -> Components:
    """Construct the cluster and vault clients, exiting when that fails."""
    try:
        return build_components(settings)
    except Exception as e:
        logger.debug("Startup failure", exc_info=True)
        error_panel(str(e) or type(e).__name__, title="Cannot create Kubernetes client")
        raise typer.Exit(1)
