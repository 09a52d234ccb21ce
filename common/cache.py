# common/cache.py
import json
import os
from typing import Any, Optional

import redis

from common.logging_config import get_logger

logger = get_logger(__name__)


class RedisJsonCache:
    """
    JSON values in Redis under a fixed key namespace.

    The connection is opened lazily from REDIS_URL. Without REDIS_URL, or
    when the server does not answer the first ping, every read misses and
    every write is a no-op.
    """

    def __init__(self, namespace: str, default_ttl: int = 60):
        self.namespace = namespace.rstrip(":")
        self.default_ttl = default_ttl
        self._client: Optional[redis.Redis] = None
        self._disabled = False

    def key(self, *parts: Any) -> str:
        return ":".join([self.namespace, *(str(p) for p in parts)])

    @property
    def client(self) -> Optional[redis.Redis]:
        if self._client is not None or self._disabled:
            return self._client

        redis_url = os.getenv("REDIS_URL")
        if not redis_url:
            return None

        try:
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
        except redis.RedisError as exc:
            logger.warning("redis unavailable, caching disabled", namespace=self.namespace, error=str(exc))
            self._disabled = True
            return None

        self._client = client
        return client

    def get(self, *parts: Any) -> Optional[Any]:
        client = self.client
        if client is None:
            return None
        raw = client.get(self.key(*parts))
        return None if raw is None else json.loads(raw)

    def set(self, value: Any, *parts: Any, ttl_seconds: Optional[int] = None) -> None:
        client = self.client
        if client is None:
            return
        client.setex(self.key(*parts), ttl_seconds or self.default_ttl, json.dumps(value, default=str))

    def invalidate(self, *parts: Any) -> int:
        """Delete every key under namespace:parts..., returning how many went."""
        client = self.client
        if client is None:
            return 0
        deleted = 0
        for k in client.scan_iter(self.key(*parts) + ":*"):
            deleted += client.delete(k)
        return deleted
