"""
Read-through cache facade and invalidation policy.
"""

from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, TYPE_CHECKING

from shared.logging import get_logger
from .keys import CacheKeys, Id
from .store import KeyValueStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

T = TypeVar("T")


def _family(key: str) -> str:
    """Metric label for a key: "customers:5:1:10" -> "customers", "dashboard_revenue_3" -> "dashboard_revenue"."""
    return key.split(":", 1)[0].rstrip("0123456789_")


class CacheFacade:
    """Read-through accessor over a key-value store.

    Concurrent misses on one key are not coalesced: each caller runs its
    own ``compute`` and the last write wins.
    """

    def __init__(self, store: KeyValueStore, metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("garage.cache")

    async def get_cached(self, key: str, compute: Callable[[], Awaitable[T]], ttl_seconds: int) -> T:
        """Return the cached value for ``key``, computing and storing it on a miss.

        Errors raised by ``compute`` propagate unchanged and nothing is cached.
        """
        if not self.store.is_configured():
            self._count("bypass")
            return await compute()

        cached = await self.store.get(key)
        if cached is not None:
            self._count("hit")
            self.logger.debug("Cache hit", key=key)
            return cached

        self._count("miss")
        if self.metrics:
            with self.metrics.time_compute(_family(key)):
                value = await compute()
        else:
            value = await compute()

        # A stored null would read back as a miss every time.
        if value is not None:
            await self.store.set_with_expiry(key, ttl_seconds, value)

        return value

    async def invalidate_keys(self, keys: Iterable[str], entity: str = "custom") -> int:
        """Delete fixed keys."""
        keys = list(keys)
        deleted = await self.store.delete(*keys)
        self._record_invalidation(entity, deleted, keys=keys)
        return deleted

    async def invalidate_pattern(self, pattern: str, entity: str = "custom") -> int:
        """Delete every key matching a glob pattern.

        Listing and deleting are separate round trips, so a key written in
        between survives until its TTL.
        """
        keys = await self.store.list_keys(pattern)
        deleted = await self.store.delete(*keys) if keys else 0
        self._record_invalidation(entity, deleted, pattern=pattern)
        return deleted

    async def invalidate_booking_cache(self) -> int:
        deleted = await self.store.delete(CacheKeys.bookings_count())
        deleted += await self._delete_matching(CacheKeys.bookings_pattern())
        self._record_invalidation("bookings", deleted)
        return deleted

    async def invalidate_customer_cache(self, team_id: Id, customer_id: Optional[Id] = None) -> int:
        keys = [CacheKeys.customers_count(team_id)]
        if customer_id is not None:
            keys.append(CacheKeys.customer_by_id(customer_id))

        deleted = await self.store.delete(*keys)
        deleted += await self._delete_matching(CacheKeys.customers_pattern(team_id))
        self._record_invalidation("customers", deleted, team_id=team_id)
        return deleted

    async def invalidate_staff_cache(self, team_id: Id) -> int:
        deleted = await self.store.delete(CacheKeys.staff_count(team_id))
        deleted += await self._delete_matching(CacheKeys.staff_pattern(team_id))
        self._record_invalidation("staff", deleted, team_id=team_id)
        return deleted

    async def invalidate_service_record_cache(self, team_id: Id, customer_id: Optional[Id] = None) -> int:
        """Drop a customer's service history and the team dashboard aggregates."""
        keys = CacheKeys.dashboard_keys(team_id)
        if customer_id is not None:
            keys.append(CacheKeys.service_records(team_id, customer_id))

        deleted = await self.store.delete(*keys)
        self._record_invalidation("service_records", deleted, team_id=team_id)
        return deleted

    async def invalidate_user_cache(self, user_id: Id) -> int:
        deleted = await self.store.delete(
            CacheKeys.user(user_id),
            CacheKeys.user_with_team(user_id),
            CacheKeys.activity_logs(user_id),
        )
        self._record_invalidation("users", deleted)
        return deleted

    async def invalidate_team_cache(self, team_id: Id) -> int:
        deleted = await self.store.delete(CacheKeys.team_members(team_id))
        self._record_invalidation("teams", deleted, team_id=team_id)
        return deleted

    async def clear_all(self) -> bool:
        """Flush the whole store. Administrative use only."""
        flushed = await self.store.flush_all()
        if flushed:
            self._record_invalidation("all", 0)
        return flushed

    async def _delete_matching(self, pattern: str) -> int:
        keys = await self.store.list_keys(pattern)
        if not keys:
            return 0
        return await self.store.delete(*keys)

    def _count(self, result: str) -> None:
        if self.metrics:
            self.metrics.record_cache_lookup(result)

    def _record_invalidation(self, entity: str, deleted: int, **context: Any) -> None:
        if self.metrics:
            self.metrics.record_cache_invalidation(entity, deleted)
        self.logger.info("Cache invalidated", entity=entity, deleted=deleted, **context)
