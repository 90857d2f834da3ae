import asyncio
import logging
from typing import Optional

from dropzone_upload.services.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


class StaleSessionReaper:
    """Periodically removes chunk sessions abandoned by their clients."""

    def __init__(self, chunk_store: ChunkStore, max_age_seconds: int, interval_seconds: int):
        self.chunk_store = chunk_store
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def sweep(self) -> int:
        return await self.chunk_store.purge_stale(self.max_age_seconds)

    async def _run(self):
        while True:
            try:
                await self.sweep()
            except OSError as e:
                logger.error(f"Stale session sweep failed: {e}")
            except Exception:
                logger.exception("Unexpected error during stale session sweep")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None:
            logger.info(
                f"Starting stale session reaper (max age {self.max_age_seconds}s, every {self.interval_seconds}s)"
            )
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
