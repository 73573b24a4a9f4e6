import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, Type, TypeVar

import redis
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


class InMemoryStore(Generic[M]):
    """Process-local key/value store with optional per-entry TTL."""

    def __init__(self, time_func: Callable[[], float] = time.monotonic):
        self._time_func = time_func
        self._storage: Dict[str, Tuple[Optional[float], M]] = {}

    def get(self, key: str) -> Optional[M]:
        item = self._storage.get(key)
        if item is None:
            return None
        expires_at, value = item
        if expires_at is not None and expires_at < self._time_func():
            self._storage.pop(key, None)
            return None
        return value

    def set(self, key: str, value: M, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            self._storage.pop(key, None)
            return
        expires_at = self._time_func() + ttl_seconds if ttl_seconds is not None else None
        self._storage[key] = (expires_at, value)

    def delete(self, key: str) -> None:
        self._storage.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._storage)

    def clear(self) -> None:
        self._storage.clear()


class RedisStore(Generic[M]):
    """
    Stores JSON payload + metadata:
      <namespace>:<key> -> {"stored_at": <unix>, "payload": {...}}
    """

    def __init__(self, redis_url: str, namespace: str, model: Type[M], client: Optional[redis.Redis] = None):
        self.client = client or redis.from_url(redis_url, decode_responses=True)
        self.namespace = namespace
        self.model = model

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[M]:
        raw = self.client.get(self._full_key(key))
        if not raw:
            return None
        try:
            obj = json.loads(raw)
            return self.model.model_validate(obj.get("payload"))
        except (ValueError, ValidationError) as exc:
            logger.warning("Dropping unreadable cache entry %s: %s", key, exc)
            return None

    def set(self, key: str, value: M, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            self.delete(key)
            return
        obj = {"stored_at": int(time.time()), "payload": value.model_dump(mode="json")}
        if ttl_seconds is not None:
            self.client.setex(self._full_key(key), max(1, int(ttl_seconds)), json.dumps(obj))
        else:
            self.client.set(self._full_key(key), json.dumps(obj))

    def delete(self, key: str) -> None:
        self.client.delete(self._full_key(key))

    def keys(self) -> List[str]:
        prefix = f"{self.namespace}:"
        return [k[len(prefix):] for k in self.client.scan_iter(match=f"{prefix}*")]

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)


def build_store(redis_url: Optional[str], namespace: str, model: Type[M]):
    if redis_url:
        logger.info("Using redis store for %s", namespace)
        return RedisStore(redis_url, namespace, model)
    return InMemoryStore()


class SingleFlight:
    """
    Coalesces concurrent calls per key: the first caller starts the work as a
    task, later callers await the same task. Waiters are shielded, so a
    cancelled caller stops waiting without cancelling the shared call.
    """

    def __init__(self) -> None:
        self._calls: Dict[str, "asyncio.Task[Any]"] = {}

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        task = self._calls.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._calls[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        if not task.cancelled():
            # mark as retrieved even if every waiter went away
            task.exception()

    def in_flight(self) -> int:
        return len(self._calls)
