"""Allow ``python -m vault_sa_patcher``."""

from vault_sa_patcher.cli import app

if __name__ == "__main__":
    app()
