"""Query cache — named partitions of last-known query results.

Each partition maps a query identity (a tuple) to its last-known data,
tracks which entries are stale, and carries a generation counter that
moves on every write.

INVARIANT: Only the mutation pipeline patches, restores, or invalidates
partitions. Views read through :meth:`QueryCache.get` and
:meth:`QueryCache.fetch`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from timelens.services.result import CommandResult

logger = logging.getLogger(__name__)

QueryKey = tuple[Hashable, ...]
Updater = Callable[[Any], Any]


@dataclass
class CachePartition:
    """One named slice of the cache; the unit of invalidation and rollback."""

    name: str
    entries: dict[QueryKey, Any] = field(default_factory=dict)
    stale: set[QueryKey] = field(default_factory=set)
    generation: int = 0

    def bump(self) -> int:
        self.generation += 1
        return self.generation


@dataclass(frozen=True)
class PartitionSnapshot:
    """Deep copy of a partition's entries and staleness at one instant."""

    name: str
    entries: Mapping[QueryKey, Any]
    stale: frozenset[QueryKey]


@dataclass(frozen=True)
class CacheSnapshot:
    """Immutable snapshot of several partitions, taken before a patch."""

    partitions: Mapping[str, PartitionSnapshot]

    @property
    def names(self) -> list[str]:
        return list(self.partitions)


class QueryCache:
    """In-memory query cache shared by every view.

    Reads return the last-known value even when it is stale; staleness only
    decides whether :meth:`fetch` goes back to the backend.
    """

    def __init__(self) -> None:
        self._partitions: dict[str, CachePartition] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def partition(self, name: str) -> CachePartition:
        """Return (creating if needed) the partition called *name*."""
        part = self._partitions.get(name)
        if part is None:
            part = CachePartition(name=name)
            self._partitions[name] = part
        return part

    def get(self, name: str, query: QueryKey = ()) -> Any:
        """Last-known data for *query* in partition *name*, or None."""
        return self.partition(name).entries.get(query)

    def entries(self, name: str) -> dict[QueryKey, Any]:
        """Deep copy of every entry in a partition."""
        return copy.deepcopy(self.partition(name).entries)

    def is_stale(self, name: str, query: QueryKey = ()) -> bool:
        part = self.partition(name)
        return query not in part.entries or query in part.stale

    def generation(self, name: str) -> int:
        return self.partition(name).generation

    async def fetch(
        self,
        name: str,
        query: QueryKey,
        loader: Callable[[], Awaitable[CommandResult]],
    ) -> CommandResult:
        """Read-through: serve fresh data from the cache, else call *loader*.

        A successful load is stored only if the partition was not written
        while the loader was awaited; otherwise the result is returned to the
        caller but the newer cache state is kept.
        """
        part = self.partition(name)
        if query in part.entries and query not in part.stale:
            return CommandResult(ok=True, op=f"cache:{name}", data=part.entries[query])

        started_at = part.generation
        result = await loader()
        if not result.ok:
            return result
        if part.generation != started_at:
            logger.debug("Discarding load of %s%r: partition moved during fetch", name, query)
            return result
        part.entries[query] = result.data
        part.stale.discard(query)
        part.bump()
        return result

    # ------------------------------------------------------------------
    # Writes (mutation pipeline only)
    # ------------------------------------------------------------------

    def set(self, name: str, query: QueryKey, data: Any) -> None:
        part = self.partition(name)
        part.entries[query] = data
        part.stale.discard(query)
        part.bump()

    def patch(self, name: str, updater: Updater, query: QueryKey | None = None) -> None:
        """Apply *updater* to one entry, or to every entry when *query* is None.

        Patching a single missing entry passes None to *updater*.
        """
        part = self.partition(name)
        targets: Iterable[QueryKey] = list(part.entries) if query is None else [query]
        for key in targets:
            part.entries[key] = updater(part.entries.get(key))
        part.bump()

    def invalidate(self, name: str) -> None:
        """Mark every entry of a partition for re-fetch on its next read."""
        part = self.partition(name)
        part.stale.update(part.entries)
        part.bump()
        logger.debug("Invalidated cache partition %s (generation %d)", name, part.generation)

    def snapshot(self, names: Iterable[str]) -> CacheSnapshot:
        """Deep-copy the named partitions."""
        parts: dict[str, PartitionSnapshot] = {}
        for name in names:
            part = self.partition(name)
            parts[name] = PartitionSnapshot(
                name=name,
                entries=MappingProxyType(copy.deepcopy(part.entries)),
                stale=frozenset(part.stale),
            )
        return CacheSnapshot(partitions=MappingProxyType(parts))

    def restore(self, snapshot: CacheSnapshot) -> None:
        """Put every partition in *snapshot* back exactly as it was."""
        for name, saved in snapshot.partitions.items():
            part = self.partition(name)
            part.entries = copy.deepcopy(dict(saved.entries))
            part.stale = set(saved.stale)
            part.bump()
            logger.debug("Restored cache partition %s", name)
