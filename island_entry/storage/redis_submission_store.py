from __future__ import annotations

import json
import logging
from typing import Any

import redis

from ..backend.client import Registration

logger = logging.getLogger(__name__)

_PENDING = "__pending__"


def create_redis_client(redis_url: str):
    if not redis_url:
        return None
    client = redis.Redis.from_url(redis_url, decode_responses=True)
    return client


class RedisSubmissionStore:
    """Cross-worker version of SubmissionStore backed by Redis keys with a TTL.

    Redis errors are logged and never raised: a failed lookup or reservation
    lets the submission through without de-dupe. ``release`` uses a
    compare-and-delete Lua script so it never drops a key another worker has
    already saved.
    """

    _RELEASE_SCRIPT = (
        "if redis.call('get', KEYS[1]) == ARGV[1] then "
        "  return redis.call('del', KEYS[1]) "
        "else "
        "  return 0 "
        "end"
    )

    def __init__(
        self,
        *,
        redis_client: Any,
        ttl_seconds: int,
        key_prefix: str = "island_entry",
    ) -> None:
        self._ttl_seconds = max(60, int(ttl_seconds))
        self._redis = redis_client
        self._prefix = (key_prefix or "island_entry").strip() or "island_entry"

    def _key(self, key: str) -> str:
        k = (key or "").strip() or "unknown"
        return f"{self._prefix}:submission:{k}"

    def get(self, key: str) -> Registration | None:
        try:
            raw = self._redis.get(self._key(key))
        except Exception:  # noqa: BLE001
            # Without Redis the submission goes ahead un-deduplicated.
            logger.exception("Failed to read submission from Redis for key=%s", key)
            return None
        if not raw or raw == _PENDING:
            return None

        try:
            data = json.loads(raw)
        except Exception:  # noqa: BLE001
            logger.warning("Invalid submission JSON in Redis for key=%s", key)
            return None

        if not isinstance(data, dict) or not data.get("unique_code"):
            return None

        return Registration(
            unique_code=str(data["unique_code"]),
            qr_code_url=str(data.get("qr_code_url") or ""),
            payment_link=data.get("payment_link"),
            payment_method=data.get("payment_method"),
            status=data.get("status"),
            total_fee=data.get("total_fee"),
        )

    def reserve(self, key: str) -> bool:
        try:
            # SET key value NX EX <ttl>
            ok = self._redis.set(self._key(key), _PENDING, nx=True, ex=self._ttl_seconds)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to reserve submission key=%s in Redis; continuing without de-dupe", key)
            return True
        return bool(ok)

    def save(self, key: str, registration: Registration) -> None:
        try:
            self._redis.setex(self._key(key), self._ttl_seconds, json.dumps(registration.to_dict()))
        except Exception:  # noqa: BLE001
            logger.exception("Failed to store submission key=%s in Redis", key)

    def release(self, key: str) -> None:
        try:
            self._redis.eval(self._RELEASE_SCRIPT, 1, self._key(key), _PENDING)
        except Exception:  # noqa: BLE001
            # If release fails, TTL will eventually expire.
            logger.exception("Failed to release submission key=%s in Redis", key)
