"""Periodic reconciliation of pull secrets and service accounts.

Each cycle walks every namespace, syncs the pull secrets once for namespaces
holding at least one opted-in service account, then points each of those
accounts at the resulting list.  Cycles are not atomic across namespaces;
whatever a failed cycle leaves behind is picked up by the next tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from vault_sa_patcher.services.base import ClusterGateway, SecretStore
from vault_sa_patcher.services.binder import ServiceAccountBinder
from vault_sa_patcher.services.synchronizer import SecretSynchronizer

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Outcome of one reconciliation cycle."""

    namespaces: int = 0
    namespaces_synced: int = 0
    accounts_bound: int = 0
    accounts_updated: int = 0
    duration_seconds: float = 0.0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ReconciliationLoop:
    """
    Runs one cycle immediately, then one every ``interval_seconds``.

    Stopping is cooperative: the stop signal is checked between ticks and an
    in-flight cycle always runs to completion. A warning is logged when it is
    still running ``shutdown_warning_seconds`` after the stop signal.

    Example:
        loop = ReconciliationLoop(gateway, store, synchronizer, binder,
                                  sync_key="vault-sa-patcher/sync",
                                  selector="vault-sa-patcher/sync=true",
                                  interval_seconds=300)
        await loop.start()
        # ... service runs ...
        await loop.stop()
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        store: SecretStore,
        synchronizer: SecretSynchronizer,
        binder: ServiceAccountBinder,
        *,
        sync_key: str,
        selector: str,
        interval_seconds: float,
        shutdown_warning_seconds: float | None = 30.0,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._synchronizer = synchronizer
        self._binder = binder
        self._sync_key = sync_key
        self._selector = selector
        self._interval_seconds = interval_seconds
        self._shutdown_warning_seconds = shutdown_warning_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.last_report: CycleReport | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the reconciliation background task."""
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Reconciliation loop started (interval=%ss, selector=%r)",
            self._interval_seconds,
            self._selector,
        )

    async def stop(self) -> None:
        """Signal the loop and wait for the current cycle to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        task = self._task
        try:
            if self._shutdown_warning_seconds is not None:
                try:
                    # shield: the timeout must not cancel the cycle.
                    await asyncio.wait_for(
                        asyncio.shield(task), timeout=self._shutdown_warning_seconds
                    )
                except TimeoutError:
                    logger.warning(
                        "Reconciliation cycle still running after %.0fs, "
                        "waiting for it to finish",
                        self._shutdown_warning_seconds,
                    )
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        finally:
            self._task = None
        logger.info("Reconciliation loop stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            logger.info("Reconciliation cycle start")
            report = await self.run_cycle()
            self.last_report = report
            if report.ok:
                logger.info(
                    "Reconciliation cycle finish: %d namespaces, %d synced, "
                    "%d/%d service accounts updated in %.3fs",
                    report.namespaces,
                    report.namespaces_synced,
                    report.accounts_updated,
                    report.accounts_bound,
                    report.duration_seconds,
                )
            else:
                logger.error(
                    "Reconciliation cycle aborted after %.3fs: %s",
                    report.duration_seconds,
                    report.error,
                )

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._interval_seconds,
                )
            except TimeoutError:
                continue
        logger.debug("Reconciliation loop received stop signal")

    async def run_cycle(self) -> CycleReport:
        """Run one full pass; unexpected faults end up in ``report.error``."""
        report = CycleReport()
        started = time.perf_counter()
        try:
            await self._reconcile(report)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            report.error = exc
            logger.exception("Reconciliation cycle failed")
        report.duration_seconds = time.perf_counter() - started
        return report

    async def _reconcile(self, report: CycleReport) -> None:
        namespaces = await self._gateway.list_namespaces()
        report.namespaces = len(namespaces)

        for namespace in namespaces:
            accounts = await self._gateway.list_service_accounts(
                namespace, self._selector
            )
            opted_in = []
            for account in accounts:
                if account.is_opted_in(self._sync_key):
                    logger.debug(
                        "%s(%s) annotation %s - EXIST",
                        account.name,
                        namespace,
                        self._sync_key,
                    )
                    opted_in.append(account)
                else:
                    logger.debug(
                        "%s(%s) no annotation %s - SKIP",
                        account.name,
                        namespace,
                        self._sync_key,
                    )

            if not opted_in:
                # Secrets left from earlier cycles are kept.
                logger.debug(
                    "namespace(%s) - no service account opted in, nothing to do",
                    namespace,
                )
                continue

            names = await self._synchronizer.sync(namespace, self._store.snapshot())
            report.namespaces_synced += 1

            for account in opted_in:
                report.accounts_bound += 1
                if await self._binder.bind(account, names):
                    report.accounts_updated += 1
