"""Scheduled deletion of expired artifacts.

Every interval the reaper sweeps files older than one interval, so an
artifact lives between one and two intervals regardless of whether it
was downloaded. A final sweep runs at orderly shutdown.
"""

import asyncio
import contextlib
from typing import Optional

import structlog

from multiconvert.core.metrics import MetricsCollector
from multiconvert.services.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)


class ArtifactReaper:
    """Background loop around ``ArtifactStore.sweep``."""

    def __init__(self, store: ArtifactStore, interval_seconds: float = 1800) -> None:
        """Initialize the reaper.

        Args:
            store: Artifact store to sweep.
            interval_seconds: Seconds between sweeps, also the age threshold.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.store = store
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Launch the sweep loop in the background."""
        if self.running:
            logger.warning("reaper_already_running")
            return

        self._task = asyncio.create_task(self._loop(), name="artifact-reaper")
        logger.info(
            "reaper_started",
            interval_seconds=self.interval_seconds,
            interval_minutes=round(self.interval_seconds / 60, 2),
        )

    def run_once(self) -> int:
        """Sweep expired artifacts and refresh storage metrics.

        Returns:
            Number of artifacts deleted.
        """
        deleted = self.store.sweep(self.interval_seconds)
        MetricsCollector.record_reaped(deleted)

        usage = self.store.usage()
        MetricsCollector.update_storage_metrics(usage.file_count, usage.total_bytes)

        if deleted:
            logger.info("reaper_run_completed", files_deleted=deleted, **usage.to_dict())
        else:
            logger.debug("reaper_run_completed", files_deleted=0)
        return deleted

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception as e:
                logger.error("reaper_run_failed", error=str(e), exc_info=True)

    async def stop(self, final_sweep: bool = True) -> None:
        """Cancel the loop and optionally run one last sweep."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if final_sweep:
            try:
                self.run_once()
            except Exception as e:
                logger.error("reaper_final_sweep_failed", error=str(e), exc_info=True)

        logger.info("reaper_stopped", final_sweep=final_sweep)
