"""Client-side query cache with typed query families.

Cached responses are keyed by (family, params). Every entry remembers the
fetcher that produced it so invalidate() can refetch it, and carries a
version counter bumped on every write. Optimistic snapshots compare against
that version to decide whether a rollback may still apply.

Refetch ordering:
- Overlapping refetches of one entry resolve to the most recently started.
- A refetch whose entry was removed meanwhile is discarded.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Updater = Callable[[Any], Any]


class QueryFamily(str, Enum):
    """Named groups of cached queries."""

    ADMIN_USERS = "admin.users"
    ADMIN_USER = "admin.user"
    ADMIN_STATS = "admin.stats"
    ADMIN_ORGANIZATIONS = "admin.organizations"
    ADMIN_ENDPOINTS = "admin.endpoints"
    ENDPOINTS = "endpoints"
    ADMIN_TOOLS = "admin.tools"
    TOOL_VISIBILITY = "tool_visibility"
    ADMIN_MODELS = "admin.models"
    MODELS = "models"


@dataclass(frozen=True)
class QueryKey:
    """Hashable cache key.

    Attributes:
        family: Query family.
        params: Sorted (name, value) pairs. Build with QueryKey.of().
    """

    family: QueryFamily
    params: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def of(cls, family: QueryFamily, **params: Any) -> "QueryKey":
        """Build a key, dropping None params so defaults share one entry."""
        items = tuple(sorted((k, v) for k, v in params.items() if v is not None))
        return cls(family=family, params=items)


@dataclass(frozen=True)
class Snapshot:
    """Prior value of an entry captured before an optimistic patch.

    Attributes:
        key: Patched entry.
        data: Value before the patch.
        version: Entry version written by the patch.
    """

    key: QueryKey
    data: Any
    version: int


@dataclass
class CacheEntry:
    data: Any = None
    version: int = 0
    fetcher: Fetcher | None = None
    stale: bool = False
    generation: int = field(default=0, repr=False)


class QueryCache:
    """In-memory query cache shared by the admin client."""

    def __init__(self) -> None:
        self._entries: dict[QueryKey, CacheEntry] = {}

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def get(self, key: QueryKey) -> Any:
        """Cached data for key, or None."""
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    def version(self, key: QueryKey) -> int:
        """Current version of key (0 when absent)."""
        entry = self._entries.get(key)
        return entry.version if entry is not None else 0

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.stale

    def set(self, key: QueryKey, data: Any) -> int:
        """Write data for key and return the new version."""
        entry = self._entries.setdefault(key, CacheEntry())
        entry.data = data
        entry.version += 1
        entry.stale = False
        return entry.version

    def find_all(self, *families: QueryFamily) -> list[QueryKey]:
        """Keys of every cached entry in the given families."""
        wanted = set(families)
        return [key for key in self._entries if key.family in wanted]

    def patch(self, key: QueryKey, updater: Updater) -> Snapshot | None:
        """Apply updater to the cached value and return a snapshot.

        Args:
            key: Entry to patch.
            updater: Function mapping the old value to the new one. It must
                not mutate its argument.

        Returns:
            Snapshot for rollback, or None when the entry holds no data.
        """
        entry = self._entries.get(key)
        if entry is None or entry.data is None:
            return None
        prior = entry.data
        entry.data = updater(prior)
        entry.version += 1
        return Snapshot(key=key, data=prior, version=entry.version)

    def restore(self, snapshot: Snapshot) -> bool:
        """Roll an entry back to a snapshot.

        The rollback only applies while the entry still holds the value the
        snapshot's patch wrote. A later patch or a landed refetch keeps its
        newer value.

        Returns:
            True if the entry was restored.
        """
        entry = self._entries.get(snapshot.key)
        if entry is None or entry.version != snapshot.version:
            return False
        entry.data = snapshot.data
        entry.version += 1
        return True

    def discard(self, key: QueryKey) -> None:
        """Drop one entry if present."""
        self._entries.pop(key, None)

    def remove(self, *families: QueryFamily) -> None:
        """Drop every entry of the given families; in-flight refetches are discarded."""
        for key in self.find_all(*families):
            del self._entries[key]

    async def fetch(self, key: QueryKey, fetcher: Fetcher) -> Any:
        """Fetch key through fetcher, remembering the fetcher for refetches.

        Returns:
            The fetched data, or the current cached value if a newer fetch
            superseded this one.
        """
        entry = self._entries.setdefault(key, CacheEntry())
        entry.fetcher = fetcher
        await self._refetch(key, entry)
        return self.get(key)

    async def _refetch(self, key: QueryKey, entry: CacheEntry) -> bool:
        if entry.fetcher is None:
            return False
        entry.generation += 1
        generation = entry.generation
        data = await entry.fetcher()
        if self._entries.get(key) is not entry or entry.generation != generation:
            logger.debug("Discarding superseded refetch of %s", key)
            return False
        entry.data = data
        entry.version += 1
        entry.stale = False
        return True

    async def invalidate(self, *families: QueryFamily) -> None:
        """Mark every entry of the families stale and refetch them concurrently.

        Refetch failures are logged; the entry stays stale with its last
        value.
        """
        keys = self.find_all(*families)
        for key in keys:
            self._entries[key].stale = True

        async def _one(key: QueryKey) -> None:
            entry = self._entries.get(key)
            if entry is None:
                return
            try:
                await self._refetch(key, entry)
            except Exception:
                logger.exception("Refetch of %s failed", key)

        await asyncio.gather(*(_one(key) for key in keys))
