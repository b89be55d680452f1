"""Shared completion path for the poller, the callback route and save-from-status."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog

from beatfoundry.models.produced_asset import ProducedAsset
from beatfoundry.models.track import Track
from beatfoundry.services.asset_pipeline import AssetPipeline
from beatfoundry.services.reconciler import TrackReconciler

logger = structlog.get_logger(__name__)


class JobCompletionHandler:
    """Reconciles and materializes job completions, one foundry at a time.

    The callback and the poller can both report the same job, and a callback may
    omit the job id. Reconciliation is therefore serialized per foundry (the
    scope of the audio URL dedup) and the reconciler's store check turns the
    later completion into a no-op. Materialization runs outside the lock.
    """

    def __init__(self, reconciler: TrackReconciler, pipeline: AssetPipeline):
        self.reconciler = reconciler
        self.pipeline = pipeline
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def _reconcile_lock(self, foundry_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(foundry_id, asyncio.Lock())
        self._waiters[foundry_id] = self._waiters.get(foundry_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[foundry_id] -= 1
            if not self._waiters[foundry_id]:
                # No holder or waiter left
                del self._waiters[foundry_id]
                del self._locks[foundry_id]

    async def complete(
        self,
        foundry_id: str,
        job_id: Optional[str],
        assets: list[ProducedAsset],
    ) -> list[Track]:
        """Persist a job's assets and fetch their files.

        Returns:
            Tracks created or updated by this completion
        """
        async with self._reconcile_lock(foundry_id):
            tracks = await self.reconciler.reconcile(foundry_id, job_id, assets)

        # One track's failure must not stop its siblings
        for track in tracks:
            try:
                await self.pipeline.materialize(track)
            except Exception as e:
                logger.error(
                    "completion.materialize_failed",
                    job_id=job_id,
                    track_id=str(track.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.info(
            "completion.finished",
            foundry_id=foundry_id,
            job_id=job_id,
            saved_tracks=len(tracks),
        )
        return tracks
