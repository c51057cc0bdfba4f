"""File de dispatch Redis partagée entre processus (mode `celery` ou multi-pods).

Structures (préfixe `dq:analysis` par défaut):

- `{prefix}:items` (hash) : submission_id -> DispatchItem JSON (partie durable)
- `{prefix}:ready` (zset) : submission_id -> not_before (epoch)
- `{prefix}:leases` (zset) : submission_id -> lease_until (epoch)
- `{prefix}:tokens` (hash) : submission_id -> jeton de bail

Chaque mutation est un script Lua: un claim et un ack ne peuvent pas s'entrelacer, et toute
opération sur un élément réclamé exige le jeton de bail courant.
"""

from __future__ import annotations

import time
import uuid

import redis
import structlog

from content_analyzer.domain.entities import DispatchItem

log = structlog.get_logger(__name__)

PUSH_SCRIPT = """
if redis.call('HEXISTS', KEYS[1], ARGV[1]) == 1 then
    return 0
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
redis.call('ZADD', KEYS[2], ARGV[3], ARGV[1])
return 1
"""

# KEYS: items, ready, leases, tokens ; ARGV: now, token, lease_until
CLAIM_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', ARGV[1], 'LIMIT', 0, 1)
if #ids == 0 then
    return false
end
local sid = ids[1]
redis.call('ZREM', KEYS[2], sid)
redis.call('ZADD', KEYS[3], ARGV[3], sid)
redis.call('HSET', KEYS[4], sid, ARGV[2])
return {sid, redis.call('HGET', KEYS[1], sid)}
"""

# KEYS: leases, tokens ; ARGV: sid, token, lease_until
EXTEND_SCRIPT = """
if redis.call('HGET', KEYS[2], ARGV[1]) ~= ARGV[2] then
    return 0
end
redis.call('ZADD', KEYS[1], ARGV[3], ARGV[1])
return 1
"""

# KEYS: items, leases, tokens ; ARGV: sid, token
ACK_SCRIPT = """
if redis.call('HGET', KEYS[3], ARGV[1]) ~= ARGV[2] then
    return 0
end
redis.call('HDEL', KEYS[1], ARGV[1])
redis.call('ZREM', KEYS[2], ARGV[1])
redis.call('HDEL', KEYS[3], ARGV[1])
return 1
"""

# KEYS: items, ready, leases, tokens ; ARGV: sid, token, item_json, not_before
RELEASE_SCRIPT = """
if redis.call('HGET', KEYS[4], ARGV[1]) ~= ARGV[2] then
    return 0
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
redis.call('ZREM', KEYS[3], ARGV[1])
redis.call('HDEL', KEYS[4], ARGV[1])
redis.call('ZADD', KEYS[2], ARGV[4], ARGV[1])
return 1
"""

# KEYS: ready, leases, tokens ; ARGV: now, limit
RECLAIM_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
for _, sid in ipairs(ids) do
    redis.call('ZREM', KEYS[2], sid)
    redis.call('HDEL', KEYS[3], sid)
    redis.call('ZADD', KEYS[1], ARGV[1], sid)
end
return #ids
"""


def _text(value) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisDispatchQueue:
    """File de dispatch à baux adossée à Redis."""

    def __init__(
        self,
        url: str | None = None,
        prefix: str = "dq:analysis",
        client: redis.Redis | None = None,
        poll_interval: float = 0.2,
    ) -> None:
        self.client = client if client is not None else redis.Redis.from_url(url)
        self.poll_interval = poll_interval
        self.k_items = f"{prefix}:items"
        self.k_ready = f"{prefix}:ready"
        self.k_leases = f"{prefix}:leases"
        self.k_tokens = f"{prefix}:tokens"
        self._push = self.client.register_script(PUSH_SCRIPT)
        self._claim = self.client.register_script(CLAIM_SCRIPT)
        self._extend = self.client.register_script(EXTEND_SCRIPT)
        self._ack = self.client.register_script(ACK_SCRIPT)
        self._release = self.client.register_script(RELEASE_SCRIPT)
        self._reclaim = self.client.register_script(RECLAIM_SCRIPT)

    def push(self, item: DispatchItem) -> bool:
        res = self._push(
            keys=[self.k_items, self.k_ready],
            args=[item.submission_id, item.to_json(), item.not_before],
        )
        return bool(int(res))

    def try_claim(self, worker_id: str, lease_seconds: float) -> DispatchItem | None:
        """Claim non bloquant."""
        now = time.time()
        token = uuid.uuid4().hex
        until = now + lease_seconds
        res = self._claim(
            keys=[self.k_items, self.k_ready, self.k_leases, self.k_tokens],
            args=[now, token, until],
        )
        if not res:
            return None
        sid, raw = _text(res[0]), res[1]
        if raw is None:
            # Incohérence (hash purgé à la main): l'id seul suffit au worker.
            log.warning("dispatch_item_payload_missing", submission_id=sid)
            item = DispatchItem(submission_id=sid)
        else:
            item = DispatchItem.from_json(raw)
        return item.leased(worker_id, token, until)

    def claim(
        self, worker_id: str, lease_seconds: float, timeout: float | None = None
    ) -> DispatchItem | None:
        """Claim bloquant par sondage jusqu'à `timeout` secondes."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            item = self.try_claim(worker_id, lease_seconds)
            if item is not None:
                return item
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                time.sleep(min(self.poll_interval, remaining))
            else:
                time.sleep(self.poll_interval)

    def extend_lease(self, item: DispatchItem, lease_seconds: float) -> bool:
        if not item.lease_token:
            return False
        res = self._extend(
            keys=[self.k_leases, self.k_tokens],
            args=[item.submission_id, item.lease_token, time.time() + lease_seconds],
        )
        return bool(int(res))

    def ack(self, item: DispatchItem) -> bool:
        if not item.lease_token:
            return False
        res = self._ack(
            keys=[self.k_items, self.k_leases, self.k_tokens],
            args=[item.submission_id, item.lease_token],
        )
        return bool(int(res))

    def release(self, item: DispatchItem, delay: float = 0.0) -> bool:
        if not item.lease_token:
            return False
        not_before = time.time() + max(0.0, delay)
        payload = DispatchItem(
            submission_id=item.submission_id,
            attempts=item.attempts,
            throttled=item.throttled,
            not_before=not_before,
            enqueued_at=item.enqueued_at,
        )
        res = self._release(
            keys=[self.k_items, self.k_ready, self.k_leases, self.k_tokens],
            args=[item.submission_id, item.lease_token, payload.to_json(), not_before],
        )
        return bool(int(res))

    def reclaim_expired(self, limit: int = 100) -> int:
        res = self._reclaim(
            keys=[self.k_ready, self.k_leases, self.k_tokens],
            args=[time.time(), limit],
        )
        return int(res)

    def contains(self, submission_id: str) -> bool:
        return bool(self.client.hexists(self.k_items, submission_id))

    def depth(self) -> int:
        return int(self.client.hlen(self.k_items))

    def leased_count(self) -> int:
        return int(self.client.zcard(self.k_leases))
