"""HTTP routes."""

from vault_sa_patcher.routes.health import router as health_router

__all__ = ["health_router"]
