"""Lookup plumbing shared by the relation resolver and branch matcher."""

import asyncio
import time
from collections.abc import Callable, Iterable

import structlog

from workitem_linker.client import RemoteClient
from workitem_linker.errors import WorkItemLinkerError
from workitem_linker.models import WorkItemIdentity

logger = structlog.get_logger()


class WorkItemLookup:
    """Fetches lite details of work items, sharing repeated lookups.

    An instance is meant to live for a single resolution. Lookups of the same
    id made while one is already in flight (or done) reuse its result, so a
    work item reachable through several relations is fetched once.
    """

    def __init__(self, client: RemoteClient) -> None:
        self.client = client
        self._pending: dict[int, asyncio.Future[WorkItemIdentity]] = {}

    def prime(self, identity: WorkItemIdentity) -> None:
        """Record an identity obtained elsewhere so it is not fetched again."""
        if identity.id not in self._pending:
            future: asyncio.Future[WorkItemIdentity] = asyncio.get_running_loop().create_future()
            future.set_result(identity)
            self._pending[identity.id] = future

    async def get(self, item_id: int) -> WorkItemIdentity:
        """Get lite details for one work item."""
        future = self._pending.get(item_id)
        if future is None:
            future = asyncio.ensure_future(self._fetch(item_id))
            self._pending[item_id] = future
        return await future

    async def get_many(self, item_ids: Iterable[int]) -> tuple[list[WorkItemIdentity], list[str]]:
        """Get lite details for several work items concurrently.

        Results keep the order of ``item_ids``. Items whose lookup fails are
        left out and described in the returned warnings.
        """
        ids = list(item_ids)
        if not ids:
            return [], []

        results = await asyncio.gather(*(self.get(item_id) for item_id in ids), return_exceptions=True)

        items: list[WorkItemIdentity] = []
        warnings: list[str] = []
        for item_id, result in zip(ids, results):
            if isinstance(result, WorkItemLinkerError):
                logger.warning("Dropping work item after failed lookup", item_id=item_id, error=str(result))
                warnings.append(f"Could not load work item {item_id}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                items.append(result)
        return items, warnings

    async def _fetch(self, item_id: int) -> WorkItemIdentity:
        logger.debug("Fetching work item details", item_id=item_id)
        record = await self.client.get_item(item_id, expand_relations=False)
        return record.identity


class DefaultBranchCache:
    """Per-process memo of repository default branches.

    Args:
        ttl: Seconds an entry stays valid. None keeps entries for the lifetime
            of the cache.
        clock: Monotonic time source.
    """

    def __init__(self, ttl: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self.ttl is not None and self._clock() - stored_at >= self.ttl:
            logger.debug("Default branch cache entry expired", key=key)
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str) -> None:
        self._entries[key] = (value, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


DEFAULT_BRANCH_CACHE = DefaultBranchCache()
