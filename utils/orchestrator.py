"""
Ingestion orchestration for regional pokedex reads.

Decides, per request, whether a region must be (re)built before it can be
served (cold cache or explicit reset) or whether the cached rows can be served
immediately while a best-effort refresh runs in the background. Also
reconciles the authoritative upstream listing length into the served page.
"""

import asyncio
import functools
import logging
from collections import defaultdict
from typing import Dict, Optional, Set

from utils.api_clients import PokeAPIClient
from utils.api_models import RegionPage
from utils.database import Database
from utils.expander import SpeciesExpander

logger = logging.getLogger("regiondex.orchestrator")


class RegionIngestor:
    """
    Coordinates ingestion jobs and page reads for regions.

    Key Features:
    - **Request Deduplication**: Concurrent `ensure_region` calls for the same
      region join the job already in flight instead of starting another one.
    - **Cold/Warm Reads**: Empty (or reset) regions are built synchronously;
      warm regions are served at once and refreshed in a detached task.
    - **Graceful Degradation**: Authoritative total, clear and count failures
      are logged and replaced by a fallback instead of failing the request.
    """

    def __init__(
        self,
        client: PokeAPIClient,
        db: Database,
        expander: Optional[SpeciesExpander] = None,
    ):
        self.client = client
        self.db = db
        self.expander = expander or SpeciesExpander(client, db)

        # Tracks in-flight ingestion jobs to prevent duplicate region builds
        self._pending_jobs: Dict[str, asyncio.Task] = {}
        self._request_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        # Strong references to detached refreshes so they are not garbage collected
        self._background_tasks: Set[asyncio.Task] = set()

    async def run_ingestion(self, region: str) -> int:
        """
        Fetch a region's listing and expand every entry into the cache.

        Returns:
            Number of rows upserted.

        Raises:
            FetchError: The listing itself could not be fetched.
        """
        entries = await self.client.get_pokedex_entries(region)
        return await self.expander.expand_region(region, entries)

    async def ensure_region(self, region: str, join_in_flight: bool = True) -> int:
        """
        Make sure a region's cache has been (re)populated.

        This employs a 'Release-then-Await' pattern: the lock is held only
        while creating or retrieving the pending job, never while awaiting it.

        Args:
            region: Lowercase region identifier.
            join_in_flight: Join an ingestion already running for the region.
                A forced rebuild passes False so rows upserted before a clear
                are not mistaken for a complete job.

        Returns:
            Number of rows upserted by the job that was awaited.
        """
        async with self._request_locks[region]:
            task = self._pending_jobs.get(region) if join_in_flight else None
            if task is not None:
                logger.debug(
                    "Ingestion deduplication: Joining existing job",
                    extra={"region": region},
                )
            else:
                task = asyncio.create_task(self.run_ingestion(region))
                self._pending_jobs[region] = task
                task.add_done_callback(functools.partial(self._release_job, region))
                logger.info("Started ingestion job", extra={"region": region})

        # A cancelled caller only detaches; the shared job keeps running
        return await asyncio.shield(task)

    def _release_job(self, region: str, task: asyncio.Task) -> None:
        # A forced rebuild may have replaced the job in the meantime
        if self._pending_jobs.get(region) is task:
            del self._pending_jobs[region]

    def schedule_refresh(self, region: str) -> asyncio.Task:
        """
        Kick off `ensure_region` without awaiting it.

        The outcome is only used for its side effect on the cache; failures
        are logged by the done callback and never reach the caller.
        """
        task = asyncio.create_task(self.ensure_region(region))
        self._background_tasks.add(task)
        task.add_done_callback(self._on_refresh_done)
        logger.debug("Scheduled background refresh", extra={"region": region})
        return task

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"ensure_region (background) error: {exc}",
                exc_info=exc,
            )

    async def fetch_authoritative_total(self, region: str) -> Optional[int]:
        """
        Authoritative listing length from upstream.

        Returns:
            The positive upstream total, or None when the lookup failed or
            reported nothing.
        """
        try:
            total = await self.client.get_pokedex_total(region)
        except Exception as e:
            logger.warning(
                f"Authoritative total unavailable for {region}: {e}",
                extra={"region": region},
            )
            return None
        return total if total > 0 else None

    async def serve_page(
        self, region: str, limit: int, offset: int, reset: bool = False
    ) -> RegionPage:
        """
        Serve one page of a region, building or refreshing the cache as needed.

        Sequence: authoritative total -> optional clear -> count ->
        ensure (sync when cold or reset, background when warm) -> page read ->
        total override.

        Args:
            region: Lowercase region identifier.
            limit: Page size (already clamped by the caller).
            offset: Rows to skip (already clamped by the caller).
            reset: Clear the region and rebuild it before reading.

        Returns:
            RegionPage whose totalCount is the authoritative upstream total
            when one was available.

        Raises:
            Exception: A failing synchronous build or page read propagates.
        """
        expected_total = await self.fetch_authoritative_total(region)

        if reset:
            try:
                await self.db.clear_region(region)
            except Exception as e:
                logger.error(f"clear_region error for {region}: {e}", exc_info=True)

        count = 0
        try:
            count = await self.db.count_by_region(region)
        except Exception as e:
            logger.error(f"count_by_region error for {region}: {e}", exc_info=True)

        if reset or count == 0:
            logger.info(
                "Cold region, building synchronously",
                extra={"region": region, "reset": reset, "cached": count},
            )
            await self.ensure_region(region, join_in_flight=not reset)
        else:
            self.schedule_refresh(region)

        page = await self.db.page(region, limit, offset)

        # hasMore follows the upstream total, so it can run ahead of the cached
        # rows while a build is still in flight
        if expected_total is not None:
            page["totalCount"] = expected_total
            page["hasMore"] = offset + limit < expected_total

        return page

    async def close(self) -> None:
        """Cancel pending background refreshes and in-flight ingestion jobs."""
        tasks = list(self._background_tasks) + list(self._pending_jobs.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} background refreshes and ingestion jobs")
