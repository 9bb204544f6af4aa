"""Redis-backed counter store.

Counters are Redis hashes: field = unique attempt id, value = attempt time in
epoch milliseconds. Cooldown flags are plain strings with a PX expiry.

The conditional dual increment runs as a single Lua script. Redis executes a
script without interleaving other commands, so the cap checks and both writes
form one indivisible unit for every client sharing the server.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.adapters.counter_store.base import AbstractCounterStore
from app.core.errors import StoreAppError

logger = logging.getLogger(__name__)


# KEYS: identity counter, scope counter
# ARGV: identity cap, scope cap, now (ms), window (ms), member id
DUAL_INCREMENT_SCRIPT = """
local now_ms = tonumber(ARGV[3])
local window_ms = tonumber(ARGV[4])
local cutoff = now_ms - window_ms

local function live_count(key)
  local entries = redis.call('HGETALL', key)
  local live = 0
  for i = 1, #entries, 2 do
    if tonumber(entries[i + 1]) <= cutoff then
      redis.call('HDEL', key, entries[i])
    else
      live = live + 1
    end
  end
  return live
end

if live_count(KEYS[1]) >= tonumber(ARGV[1]) then
  return 0
end
if live_count(KEYS[2]) >= tonumber(ARGV[2]) then
  return 0
end

redis.call('HSET', KEYS[1], ARGV[5], ARGV[3])
redis.call('PEXPIRE', KEYS[1], ARGV[4])
redis.call('HSET', KEYS[2], ARGV[5], ARGV[3])
redis.call('PEXPIRE', KEYS[2], ARGV[4])
return 1
"""


def _to_ms(seconds: float) -> int:
    return max(1, int(round(seconds * 1000)))


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise Redis transport/server failures as StoreAppError."""

    try:
        yield
    except (RedisError, asyncio.TimeoutError) as exc:
        raise StoreAppError(
            code="store_unavailable",
            message=f"Counter store operation '{operation}' failed: {type(exc).__name__}",
            details={"operation": operation, "backend": "redis"},
        ) from exc


class RedisCounterStore(AbstractCounterStore):
    """Counter store on top of a shared ``redis.asyncio.Redis`` client.

    The client owns a connection pool that is safe for concurrent use, so a
    single instance can serve every request in the process.
    """

    backend = "redis"

    def __init__(self, client: Redis) -> None:
        self._redis = client
        self._dual_increment = client.register_script(DUAL_INCREMENT_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float = 1.0,
        connect_timeout: float = 1.0,
        max_connections: int = 50,
    ) -> "RedisCounterStore":
        """Build a store with its own connection pool.

        Args:
            url: Redis connection URL (redis://host:port/db).
            socket_timeout: Upper bound in seconds for each command.
            connect_timeout: Upper bound in seconds for connecting.
            max_connections: Pool size.
        """
        client = Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
            max_connections=max_connections,
            decode_responses=True,
        )
        return cls(client)

    async def is_flag_set(self, key: str) -> bool:
        with _translate_errors("is_flag_set"):
            return bool(await self._redis.exists(key))

    async def set_flag(self, key: str, ttl_seconds: float) -> None:
        with _translate_errors("set_flag"):
            await self._redis.set(key, "1", px=_to_ms(ttl_seconds))

    async def cardinality(self, key: str, *, now: float, window_seconds: float) -> int:
        cutoff = int(now * 1000) - _to_ms(window_seconds)
        with _translate_errors("cardinality"):
            values = await self._redis.hvals(key)
        return sum(1 for value in values if int(value) > cutoff)

    async def try_atomic_dual_increment(
        self,
        identity_key: str,
        scope_key: str,
        *,
        identity_cap: int,
        scope_cap: int,
        now: float,
        window_seconds: float,
    ) -> bool:
        now_ms = int(now * 1000)
        member_id = f"{now_ms}-{uuid.uuid4().hex[:8]}"
        with _translate_errors("try_atomic_dual_increment"):
            applied = await self._dual_increment(
                keys=[identity_key, scope_key],
                args=[identity_cap, scope_cap, now_ms, _to_ms(window_seconds), member_id],
            )
        return int(applied) == 1

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisError, asyncio.TimeoutError, OSError) as exc:
            logger.warning(
                "store.ping_failed",
                extra={"backend": self.backend, "error_type": type(exc).__name__},
            )
            return False

    async def close(self) -> None:
        await self._redis.aclose()
