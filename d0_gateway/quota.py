"""
Daily quota gate for metered external services

Counters are keyed by service and local calendar day and expire at the
next local midnight. The check-and-increment is a single atomic step in
every store so concurrent bulk workers cannot overspend a quota.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis

from core.logging import get_logger

from .exceptions import QuotaExceededError
from .metrics import GatewayMetrics
from .types import QuotaDecision

QUOTA_SCRIPT_PATH = Path(__file__).parent / "lua_scripts" / "quota.lua"


class QuotaStore(ABC):
    """Keyed counter storage used by the quota gate"""

    @abstractmethod
    async def try_acquire(self, key: str, limit: int, ttl_seconds: int, amount: int = 1) -> Tuple[bool, int]:
        """Add ``amount`` only if the result stays within ``limit``; returns (allowed, used)"""

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: int, amount: int = 1) -> int:
        """Add ``amount`` unconditionally and return the new total"""

    @abstractmethod
    async def get_usage(self, key: str) -> int:
        """Current counter value, 0 when absent or expired"""

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Drop a counter"""

    @abstractmethod
    async def record_event(self, service: str, ok: bool, message: Optional[str] = None) -> None:
        """Remember the outcome of the latest call to a service"""

    @abstractmethod
    async def get_events(self, service: str) -> Dict[str, Any]:
        """Success/error bookkeeping for a service"""


class InMemoryQuotaStore(QuotaStore):
    """Single-process store guarded by an asyncio lock"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._counters: Dict[str, Tuple[int, float]] = {}
        self._events: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def _current(self, key: str) -> int:
        # Caller holds the lock
        entry = self._counters.get(key)
        if entry is None:
            return 0
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._counters[key]
            return 0
        return value

    def _store(self, key: str, value: int, ttl_seconds: int) -> None:
        entry = self._counters.get(key)
        expires_at = entry[1] if entry else self._clock() + ttl_seconds
        self._counters[key] = (value, expires_at)

    async def try_acquire(self, key: str, limit: int, ttl_seconds: int, amount: int = 1) -> Tuple[bool, int]:
        async with self._lock:
            current = self._current(key)
            if current + amount > limit:
                return False, current
            self._store(key, current + amount, ttl_seconds)
            return True, current + amount

    async def increment(self, key: str, ttl_seconds: int, amount: int = 1) -> int:
        async with self._lock:
            updated = self._current(key) + amount
            self._store(key, updated, ttl_seconds)
            return updated

    async def get_usage(self, key: str) -> int:
        async with self._lock:
            return self._current(key)

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._counters.pop(key, None)

    async def record_event(self, service: str, ok: bool, message: Optional[str] = None) -> None:
        async with self._lock:
            events = self._events.setdefault(service, {"successes": 0, "errors": 0})
            stamp = datetime.now().isoformat()
            if ok:
                events["successes"] += 1
                events["last_success_at"] = stamp
            else:
                events["errors"] += 1
                events["last_error"] = message
                events["last_error_at"] = stamp

    async def get_events(self, service: str) -> Dict[str, Any]:
        async with self._lock:
            return dict(self._events.get(service, {"successes": 0, "errors": 0}))


class RedisQuotaStore(QuotaStore):
    """Redis-backed store; acquire runs as one Lua script"""

    def __init__(self, redis_url: Optional[str] = None, redis_client: Optional[aioredis.Redis] = None):
        self.redis_url = redis_url
        self._redis = redis_client
        self._script_source = QUOTA_SCRIPT_PATH.read_text(encoding="utf-8")
        self._script = None
        self.logger = get_logger("gateway.quota.redis", domain="d0")

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def _get_script(self):
        """Registered once; later calls go through EVALSHA and reload on NOSCRIPT"""
        if self._script is None:
            redis = await self._get_redis()
            self._script = redis.register_script(self._script_source)
        return self._script

    async def _run(self, command: str, key: str, limit: int, ttl_seconds: int, amount: int) -> Tuple[bool, int]:
        script = await self._get_script()
        allowed, used = await script(
            keys=[key], args=[command, str(limit), str(max(ttl_seconds, 1)), str(amount)]
        )
        return bool(int(allowed)), int(used)

    async def try_acquire(self, key: str, limit: int, ttl_seconds: int, amount: int = 1) -> Tuple[bool, int]:
        return await self._run("acquire", key, limit, ttl_seconds, amount)

    async def increment(self, key: str, ttl_seconds: int, amount: int = 1) -> int:
        _, used = await self._run("increment", key, 0, ttl_seconds, amount)
        return used

    async def get_usage(self, key: str) -> int:
        redis = await self._get_redis()
        return int(await redis.get(key) or 0)

    async def reset(self, key: str) -> None:
        redis = await self._get_redis()
        await redis.delete(key)

    async def record_event(self, service: str, ok: bool, message: Optional[str] = None) -> None:
        redis = await self._get_redis()
        events_key = f"quota:events:{service}"
        stamp = datetime.now().isoformat()
        if ok:
            await redis.hincrby(events_key, "successes", 1)
            await redis.hset(events_key, "last_success_at", stamp)
        else:
            await redis.hincrby(events_key, "errors", 1)
            await redis.hset(events_key, mapping={"last_error": message or "", "last_error_at": stamp})

    async def get_events(self, service: str) -> Dict[str, Any]:
        redis = await self._get_redis()
        raw = await redis.hgetall(f"quota:events:{service}")
        events: Dict[str, Any] = dict(raw)
        events["successes"] = int(raw.get("successes", 0))
        events["errors"] = int(raw.get("errors", 0))
        return events

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()


class QuotaGate:
    """Per-service daily quota checks shared by every enrichment worker"""

    def __init__(
        self,
        store: QuotaStore,
        limits: Dict[str, int],
        now: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.limits = dict(limits)
        self._now = now
        self.metrics = GatewayMetrics()
        self.logger = get_logger("gateway.quota", domain="d0")

    def _key(self, service: str) -> str:
        return f"quota:{service}:{self._now().date().isoformat()}"

    def _until_reset(self) -> timedelta:
        now = self._now()
        midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=now.tzinfo)
        return midnight - now

    def reset_in(self) -> str:
        """Time until local midnight, formatted as ``Xh Ym``"""
        total_minutes = int(self._until_reset().total_seconds() // 60)
        return f"{total_minutes // 60}h {total_minutes % 60}m"

    def _ttl_seconds(self) -> int:
        return max(int(self._until_reset().total_seconds()), 1)

    async def can_make_request(self, service: str) -> QuotaDecision:
        """Report whether one more call fits today's quota without consuming it"""
        used = await self.store.get_usage(self._key(service))
        limit = self.limits.get(service)
        allowed = limit is None or used < limit
        return QuotaDecision(service=service, allowed=allowed, used=used, limit=limit, reset_in=self.reset_in())

    async def acquire(self, service: str, amount: int = 1) -> QuotaDecision:
        """
        Atomically reserve quota for a call

        Raises:
            QuotaExceededError: when the reservation would exceed today's limit
        """
        limit = self.limits.get(service)
        key = self._key(service)

        if limit is None:
            used = await self.store.increment(key, self._ttl_seconds(), amount)
            return QuotaDecision(service=service, allowed=True, used=used, limit=None, reset_in=self.reset_in())

        allowed, used = await self.store.try_acquire(key, limit, self._ttl_seconds(), amount)
        decision = QuotaDecision(service=service, allowed=allowed, used=used, limit=limit, reset_in=self.reset_in())

        if not allowed:
            self.metrics.record_quota_denied(service)
            raise QuotaExceededError(service, decision.reset_in)

        self.metrics.update_quota_usage(service, used)
        return decision

    async def increment_usage(self, service: str, amount: int = 1) -> int:
        used = await self.store.increment(self._key(service), self._ttl_seconds(), amount)
        self.metrics.update_quota_usage(service, used)
        return used

    async def record_success(self, service: str) -> None:
        await self.store.record_event(service, ok=True)

    async def record_error(self, service: str, message: str) -> None:
        self.logger.warning(f"{service} call failed: {message}")
        await self.store.record_event(service, ok=False, message=message)

    async def get_status(self) -> Dict[str, QuotaDecision]:
        """Decisions for every service with a configured limit"""
        return {service: await self.can_make_request(service) for service in self.limits}

    async def reset(self, service: str) -> None:
        await self.store.reset(self._key(service))
        self.logger.info(f"Quota reset for {service}")
