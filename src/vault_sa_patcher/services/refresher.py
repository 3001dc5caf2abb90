"""Background refresh of the credential cache."""

from __future__ import annotations

import asyncio
import logging
import time

from vault_sa_patcher.services.base import SecretStore

logger = logging.getLogger(__name__)


class CredentialRefresher:
    """Re-fetches the SecretStore on a fixed interval, independent of the loop."""

    def __init__(self, store: SecretStore, interval_seconds: float) -> None:
        self._store = store
        self._interval_seconds = max(1.0, interval_seconds)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, *, initial_fetch: bool = True) -> None:
        """Start refreshing; the first fetch completes before this returns."""
        if self._task is not None:
            return
        if initial_fetch:
            await self.refresh()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Credential refresher started (interval=%.0fs)", self._interval_seconds
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        logger.info("Credential refresher stopped")

    async def refresh(self) -> int:
        """Fetch once and return the number of cached registries."""
        started = time.perf_counter()
        logger.info("Credential fetch start")
        credentials = await self._store.fetch()
        logger.info(
            "Credential fetch finish: %d registries in %.3fs",
            len(credentials),
            time.perf_counter() - started,
        )
        return len(credentials)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._interval_seconds,
                )
                return
            except TimeoutError:
                pass

            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Credential refresh failed")
