"""vault-sa-patcher - Vault registry credentials as Kubernetes pull secrets."""

__version__ = "0.1.0"

__all__ = ["__version__"]
