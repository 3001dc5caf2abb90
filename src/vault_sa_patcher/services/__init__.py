"""Reconciliation services and their collaborators."""

from vault_sa_patcher.services.base import ClusterGateway, SecretStore
from vault_sa_patcher.services.binder import ServiceAccountBinder
from vault_sa_patcher.services.kube import KubeGateway
from vault_sa_patcher.services.reconciler import CycleReport, ReconciliationLoop
from vault_sa_patcher.services.refresher import CredentialRefresher
from vault_sa_patcher.services.synchronizer import SecretSynchronizer
from vault_sa_patcher.services.vault import VaultSecretStore

__all__ = [
    "ClusterGateway",
    "SecretStore",
    "KubeGateway",
    "VaultSecretStore",
    "CredentialRefresher",
    "SecretSynchronizer",
    "ServiceAccountBinder",
    "ReconciliationLoop",
    "CycleReport",
]
