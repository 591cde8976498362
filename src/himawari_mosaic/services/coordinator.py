from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from ..config import BASE_URL, TILE_COUNT
from ..models import GridCoordinate, SnapshotId, TileDelivery
from .snapshots import locator_for
from .tiles import RetryPolicy, TileFetcher

log = logging.getLogger(__name__)


@dataclass
class FetchHandle:
    """
    All in-flight fetch tasks of one snapshot plus the receiving end of the conduit.

    The handle owns its tasks: join() waits for every one of them and, on the first
    failure, cancels the rest before re-raising.
    """

    snapshot: SnapshotId
    conduit: "asyncio.Queue[TileDelivery]"
    tasks: Dict[GridCoordinate, "asyncio.Task[None]"] = field(default_factory=dict)
    fetchers: Dict[GridCoordinate, TileFetcher] = field(default_factory=dict)

    @property
    def outstanding(self) -> int:
        return sum(1 for task in self.tasks.values() if not task.done())

    def states(self) -> Counter:
        return Counter(fetcher.state for fetcher in self.fetchers.values())

    async def join(self) -> None:
        try:
            for finished in asyncio.as_completed(list(self.tasks.values())):
                await finished
        except BaseException:
            await self.cancel()
            raise
        log.debug("All %d fetch tasks for %s finished", len(self.tasks), self.snapshot)

    async def cancel(self) -> None:
        pending = [task for task in self.tasks.values() if not task.done()]
        if not pending:
            return
        log.info("Cancelling %d outstanding fetch task(s) for %s", len(pending), self.snapshot)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


class FetchCoordinator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
        base_url: str = BASE_URL,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self.base_url = base_url

    async def fetch_all(self, snapshot: SnapshotId) -> FetchHandle:
        """Start one fetch task per grid cell; deliveries land on handle.conduit."""
        handle = FetchHandle(snapshot=snapshot, conduit=asyncio.Queue(maxsize=TILE_COUNT))
        for coord in GridCoordinate.all():
            fetcher = TileFetcher(
                self.client,
                coord,
                locator_for(snapshot, coord, base_url=self.base_url),
                policy=self.policy,
            )
            handle.fetchers[coord] = fetcher
            handle.tasks[coord] = asyncio.create_task(
                self._deliver(fetcher, handle.conduit), name=f"tile-{coord}"
            )
        log.info("Fetching %d tiles for %s", len(handle.tasks), snapshot)
        return handle

    @staticmethod
    async def _deliver(fetcher: TileFetcher, conduit: "asyncio.Queue[TileDelivery]") -> None:
        payload = await fetcher.run()
        await conduit.put(TileDelivery(coord=fetcher.coord, payload=payload))
        if fetcher.attempts > 1:
            log.info("tile %s delivered after %d attempts", fetcher.coord, fetcher.attempts)
