"""
Key-value store adapters for the Garage cache.

Every backend exposes the same async surface (get, set_with_expiry,
delete, list_keys, flush_all). Backend failures are logged and turned
into safe defaults; nothing raised by a store reaches the caller.
"""

import fnmatch
import json
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import urlparse

import httpx
import redis.asyncio as redis

from shared.config import BaseConfig
from shared.errors import CacheConfigurationError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


REDIS_SCHEMES = ("redis", "rediss", "unix")
MEMORY_SCHEME = "memory"


class StoreStatus(str, Enum):
    """Usability of a backing store."""
    ENABLED = "enabled"
    DISABLED = "disabled"
    ERROR = "error"


class StoreCommandError(Exception):
    """A backend answered a command with an error."""


def encode_value(value: Any) -> str:
    """Serialize a value for storage."""
    return json.dumps(value)


def decode_value(raw: Any) -> Any:
    """Decode a stored value.

    Text is parsed as JSON. Values a client library already decoded
    (dicts, lists, numbers, booleans) pass through untouched.
    Raises ``ValueError`` for malformed text.
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


class KeyValueStore(ABC):
    """Common behaviour for all cache backends."""

    backend = "none"

    def __init__(self, metrics: Optional["MetricsCollector"] = None):
        self.logger = get_logger("garage.cache.store")
        self.metrics = metrics
        self.status = StoreStatus.DISABLED
        self.last_error: Optional[str] = None

    def is_configured(self) -> bool:
        """Whether the store can actually serve requests."""
        return self.status is StoreStatus.ENABLED

    def describe(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "status": self.status.value,
            "configured": self.is_configured(),
            "last_error": self.last_error,
        }

    async def start(self) -> None:
        """Connect to the backend, if it needs connecting."""

    async def stop(self) -> None:
        """Release backend resources."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the decoded value for ``key`` or None."""
        if not self.is_configured():
            return None

        try:
            raw = await self._get(key)
        except Exception as e:
            self._record_failure("get", e, key=key)
            return None

        try:
            return decode_value(raw)
        except (ValueError, UnicodeDecodeError) as e:
            self.logger.warning("Discarding undecodable cache entry", key=key, error=str(e))
            self._count_error("decode")
            return None

    async def set_with_expiry(self, key: str, ttl_seconds: int, value: Any) -> bool:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        if not self.is_configured():
            return False

        ttl = int(ttl_seconds)
        if ttl <= 0:
            self.logger.warning("Refusing to cache without a positive TTL", key=key, ttl=ttl_seconds)
            return False

        try:
            payload = encode_value(value)
        except (TypeError, ValueError) as e:
            self.logger.warning("Value is not serializable, skipping cache write", key=key, error=str(e))
            self._count_error("encode")
            return False

        try:
            await self._setex(key, ttl, payload)
        except Exception as e:
            self._record_failure("set", e, key=key)
            return False

        self.logger.debug("Cached value", key=key, ttl=ttl)
        return True

    async def delete(self, *keys: str) -> int:
        """Delete keys; absent keys are ignored. Returns the number removed."""
        if not keys or not self.is_configured():
            return 0

        try:
            deleted = await self._delete(list(keys))
        except Exception as e:
            self._record_failure("delete", e, keys=len(keys))
            return 0

        return int(deleted or 0)

    async def list_keys(self, pattern: str) -> List[str]:
        """List keys matching a glob-style pattern."""
        if not self.is_configured():
            return []

        try:
            keys = await self._keys(pattern)
        except Exception as e:
            self._record_failure("keys", e, pattern=pattern)
            return []

        return [k.decode("utf-8") if isinstance(k, bytes) else k for k in keys or []]

    async def flush_all(self) -> bool:
        """Remove every key in the store."""
        if not self.is_configured():
            return False

        try:
            await self._flush()
        except Exception as e:
            self._record_failure("flush", e)
            return False

        self.logger.info("Cache flushed", backend=self.backend)
        return True

    async def health_check(self) -> bool:
        """Probe the backend."""
        if not self.is_configured():
            return False
        try:
            await self._ping()
            return True
        except Exception:
            return False

    def _set_status(self, status: StoreStatus, error: Optional[str] = None) -> None:
        self.status = status
        self.last_error = error
        if self.metrics:
            self.metrics.set_cache_backend_status(self.backend, status is StoreStatus.ENABLED)

    def _record_failure(self, operation: str, error: Exception, **context) -> None:
        self.last_error = str(error)
        self.logger.error(
            "Cache store operation failed",
            backend=self.backend,
            operation=operation,
            error=str(error),
            **context
        )
        self._count_error(operation)

    def _count_error(self, operation: str) -> None:
        if self.metrics:
            self.metrics.record_cache_error(operation)

    @abstractmethod
    async def _get(self, key: str) -> Any: ...

    @abstractmethod
    async def _setex(self, key: str, ttl: int, payload: str) -> None: ...

    @abstractmethod
    async def _delete(self, keys: List[str]) -> int: ...

    @abstractmethod
    async def _keys(self, pattern: str) -> List[Any]: ...

    @abstractmethod
    async def _flush(self) -> None: ...

    @abstractmethod
    async def _ping(self) -> None: ...


class RedisStore(KeyValueStore):
    """Redis reached through a persistent connection.

    The store stays disabled until ``start()`` has connected.
    """

    backend = "redis"

    def __init__(
        self,
        redis_url: str,
        *,
        connect_timeout: float = 5.0,
        operation_timeout: float = 5.0,
        metrics: Optional["MetricsCollector"] = None,
        client: Optional[redis.Redis] = None,
    ):
        super().__init__(metrics)
        self.redis_url = redis_url
        self.connect_timeout = connect_timeout
        self.operation_timeout = operation_timeout
        self._client = client

    async def start(self) -> None:
        try:
            if self._client is None:
                self._client = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=self.connect_timeout,
                    socket_timeout=self.operation_timeout,
                    retry_on_timeout=True,
                    health_check_interval=30
                )

            await self._client.ping()
            self._set_status(StoreStatus.ENABLED)
            self.logger.info("Redis cache started", backend=self.backend)

        except Exception as e:
            self._set_status(StoreStatus.ERROR, str(e))
            self.logger.error("Failed to start Redis cache", error=str(e))

    async def stop(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as e:
                self.logger.warning("Error closing Redis client", error=str(e))
            self.logger.info("Redis cache stopped")
        self._set_status(StoreStatus.DISABLED, self.last_error)

    async def health_check(self) -> bool:
        """Probe the server, reconnecting first if the last connect failed."""
        if self.status is StoreStatus.ERROR:
            await self.start()
        return await super().health_check()

    async def _get(self, key: str) -> Any:
        return await self._client.get(key)

    async def _setex(self, key: str, ttl: int, payload: str) -> None:
        await self._client.setex(key, ttl, payload)

    async def _delete(self, keys: List[str]) -> int:
        return await self._client.delete(*keys)

    async def _keys(self, pattern: str) -> List[Any]:
        return await self._client.keys(pattern)

    async def _flush(self) -> None:
        await self._client.flushdb()

    async def _ping(self) -> None:
        await self._client.ping()


class UpstashStore(KeyValueStore):
    """Redis-compatible store spoken to over its REST API.

    Commands are POSTed as JSON arrays; replies are ``{"result": ...}``
    or ``{"error": "..."}``. No connect step is needed.
    """

    backend = "upstash"

    def __init__(
        self,
        rest_url: str,
        token: str,
        *,
        timeout: float = 5.0,
        metrics: Optional["MetricsCollector"] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(metrics)
        self.rest_url = (rest_url or "").rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self.rest_url or not token:
            error = CacheConfigurationError("Upstash URL and token are both required")
            self._set_status(StoreStatus.ERROR, str(error))
            self.logger.error("Failed to create Upstash client", error=str(error))
            return

        self._open()

    def _open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.rest_url,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self._timeout,
            transport=self._transport,
        )
        self._set_status(StoreStatus.ENABLED)

    async def start(self) -> None:
        """Reopen the HTTP client after a previous ``stop()``."""
        if self._client is None and self.status is StoreStatus.DISABLED:
            self._open()
            self.logger.info("Upstash cache started", backend=self.backend)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self.logger.info("Upstash cache stopped")
            self._set_status(StoreStatus.DISABLED, self.last_error)

    async def _command(self, *args: Any) -> Any:
        response = await self._client.post("/", json=list(args))

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400 or "error" in body:
            message = body.get("error") or f"HTTP {response.status_code}"
            raise StoreCommandError(f"{args[0]} failed: {message}")

        return body.get("result")

    async def _get(self, key: str) -> Any:
        return await self._command("GET", key)

    async def _setex(self, key: str, ttl: int, payload: str) -> None:
        await self._command("SETEX", key, ttl, payload)

    async def _delete(self, keys: List[str]) -> int:
        return await self._command("DEL", *keys)

    async def _keys(self, pattern: str) -> List[Any]:
        return await self._command("KEYS", pattern)

    async def _flush(self) -> None:
        await self._command("FLUSHDB")

    async def _ping(self) -> None:
        await self._command("PING")


class MemoryStore(KeyValueStore):
    """In-process store with per-key expiry.

    Confined to a single event loop. Entries are kept as JSON text so
    callers never share mutable state with the cache.
    """

    backend = "memory"

    def __init__(self, *, metrics: Optional["MetricsCollector"] = None, clock: Callable[[], float] = time.monotonic):
        super().__init__(metrics)
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._set_status(StoreStatus.ENABLED)

    def _live(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return payload

    async def _get(self, key: str) -> Any:
        return self._live(key)

    async def _setex(self, key: str, ttl: int, payload: str) -> None:
        self._entries[key] = (payload, self._clock() + ttl)

    async def _delete(self, keys: List[str]) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._entries[key]
                removed += 1
        return removed

    async def _keys(self, pattern: str) -> List[Any]:
        return [key for key in list(self._entries) if self._live(key) is not None and fnmatch.fnmatchcase(key, pattern)]

    async def _flush(self) -> None:
        self._entries.clear()

    async def _ping(self) -> None:
        return None


class DisabledStore(KeyValueStore):
    """Placeholder used when no usable backend is configured."""

    backend = "disabled"

    def __init__(
        self,
        status: StoreStatus = StoreStatus.DISABLED,
        reason: Optional[str] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        super().__init__(metrics)
        self._set_status(status, reason)

    async def _get(self, key: str) -> Any:
        return None

    async def _setex(self, key: str, ttl: int, payload: str) -> None:
        return None

    async def _delete(self, keys: List[str]) -> int:
        return 0

    async def _keys(self, pattern: str) -> List[Any]:
        return []

    async def _flush(self) -> None:
        return None

    async def _ping(self) -> None:
        return None


def is_cache_configured(config: BaseConfig) -> bool:
    """Whether configuration names a backing store at all."""
    return bool(
        config.redis_url
        or (config.upstash_redis_rest_url and config.upstash_redis_rest_token)
    )


def create_store(
    config: BaseConfig,
    metrics: Optional["MetricsCollector"] = None,
    strict: bool = False,
) -> KeyValueStore:
    """Pick the backend named by configuration.

    With ``strict`` a misconfigured cache raises instead of degrading.
    """
    logger = get_logger("garage.cache.store")
    scheme = urlparse(config.redis_url).scheme.lower() if config.redis_url else ""

    if scheme in REDIS_SCHEMES:
        store: KeyValueStore = RedisStore(
            config.redis_url,
            connect_timeout=config.cache_connect_timeout,
            operation_timeout=config.cache_operation_timeout,
            metrics=metrics,
        )
    elif scheme == MEMORY_SCHEME:
        store = MemoryStore(metrics=metrics)
    elif config.upstash_redis_rest_url and config.upstash_redis_rest_token:
        store = UpstashStore(
            config.upstash_redis_rest_url,
            config.upstash_redis_rest_token,
            timeout=config.cache_operation_timeout,
            metrics=metrics,
        )
    elif config.redis_url:
        reason = f"Unsupported cache URL scheme: {scheme or 'none'}"
        if strict:
            raise CacheConfigurationError(reason, {"redis_url_scheme": scheme})
        store = DisabledStore(StoreStatus.ERROR, reason, metrics=metrics)
    else:
        store = DisabledStore(metrics=metrics)

    if strict and store.status is StoreStatus.ERROR:
        raise CacheConfigurationError(store.last_error or "Cache store unusable", {"backend": store.backend})

    logger.info("Cache backend selected", backend=store.backend, status=store.status.value)
    return store
