"""Optimistic mutations over the query cache.

Three phases per mutation:

1. Speculate: patch every cached entry of the affected families and keep a
   snapshot of each.
2. Rollback on failure: restore this mutation's snapshots, report the error
   to the notification callback, re-raise. Entries overwritten since the
   patch (a later mutation or a refetch) keep the newer value.
3. Reconcile: always invalidate and refetch the affected families plus any
   aggregate families. The refetch is authoritative.

Mutations never wait for each other.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from diradmin.client.query_cache import QueryCache, QueryFamily, QueryKey, Snapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

Patcher = Callable[[QueryKey, Any], Any]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class OptimisticUpdate:
    """Description of one optimistic mutation.

    Attributes:
        patch_families: Families whose cached entries are patched.
        patcher: Maps (key, old value) to the predicted value. Must return a
            new object and leave the old one untouched.
        reconcile_families: Extra families refetched after the mutation
            (aggregates the patch cannot predict).
    """

    patch_families: tuple[QueryFamily, ...]
    patcher: Patcher
    reconcile_families: tuple[QueryFamily, ...] = field(default=())

    @property
    def all_families(self) -> tuple[QueryFamily, ...]:
        return tuple(dict.fromkeys(self.patch_families + self.reconcile_families))


def speculate(cache: QueryCache, update: OptimisticUpdate) -> list[Snapshot]:
    """Patch every matching entry and return the snapshots taken."""
    snapshots = []
    for key in cache.find_all(*update.patch_families):
        snapshot = cache.patch(key, lambda old, key=key: update.patcher(key, old))
        if snapshot is not None:
            snapshots.append(snapshot)
    return snapshots


def rollback(cache: QueryCache, snapshots: Sequence[Snapshot]) -> int:
    """Restore snapshots; returns how many entries were actually restored."""
    restored = sum(1 for snapshot in snapshots if cache.restore(snapshot))
    if restored != len(snapshots):
        logger.debug(
            "Rollback kept %d newer value(s)", len(snapshots) - restored
        )
    return restored


async def run_optimistic(
    cache: QueryCache,
    update: OptimisticUpdate,
    request: Callable[[], Awaitable[T]],
    *,
    on_error: ErrorCallback | None = None,
) -> T:
    """Run request under the speculate / rollback / reconcile protocol.

    Args:
        cache: Shared query cache.
        update: Families to patch and reconcile.
        request: Coroutine function performing the network call.
        on_error: Notification callback invoked with the failure before it
            is re-raised.

    Returns:
        The request's result.

    Raises:
        Exception: Whatever request raised, after rollback.
    """
    snapshots = speculate(cache, update)
    try:
        return await request()
    except Exception as exc:
        rollback(cache, snapshots)
        if on_error is not None:
            on_error(exc)
        raise
    finally:
        await cache.invalidate(*update.all_families)


async def run_reconciled(
    cache: QueryCache,
    families: Sequence[QueryFamily],
    request: Callable[[], Awaitable[T]],
    *,
    on_error: ErrorCallback | None = None,
) -> T:
    """Run a non-optimistic mutation and always refetch the given families."""
    try:
        return await request()
    except Exception as exc:
        if on_error is not None:
            on_error(exc)
        raise
    finally:
        await cache.invalidate(*families)
