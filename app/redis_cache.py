"""
Redis Cache Module
Secondary catalog cache tier shared between worker processes, with graceful degradation
"""

import json
import logging
from typing import List, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

CATALOG_SNAPSHOT_KEY = "catalog:snapshot"

def create_redis_client(redis_url: str):
    """
    Connect to Redis, returning None when the server is unreachable

    Args:
        redis_url: Redis connection URL

    Returns:
        redis client or None
    """
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        try:
            client.ping()
            logger.info(f"Redis cache initialized at {redis_url}")
            return client
        except redis.RedisError as e:
            logger.warning(f"Redis cache initialized but ping failed: {e}. Cache will be disabled.")
            return None
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Redis cache initialization failed: {e}. Cache will be disabled.")
    return None

class RedisSnapshotCache:
    """Snapshot stored under one key with the cache expiry as TTL"""

    name = "redis"

    def __init__(self, client, ttl: int = 300, key: str = CATALOG_SNAPSHOT_KEY):
        self.client = client
        self.ttl = ttl
        self.key = key
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}

    def save(self, rows: List[dict], cached_at: float, signature=None) -> bool:
        if not self.client:
            return False
        try:
            payload = json.dumps({"rows": rows, "cached_at": cached_at, "signature": signature})
            self.client.setex(self.key, self.ttl, payload)
            self.stats["sets"] += 1
            logger.debug(f"Cache SET: {self.key} (TTL: {self.ttl}s)")
            return True
        except Exception as e:
            logger.warning(f"Cache set error for {self.key}: {e}")
            return False

    def load(self, max_age_seconds: float, now: float) -> Optional[Tuple[List[dict], float, Optional[list]]]:
        if not self.client:
            return None
        try:
            value = self.client.get(self.key)
        except Exception as e:
            logger.warning(f"Cache get error for {self.key}: {e}")
            return None

        if not value:
            self.stats["misses"] += 1
            logger.debug(f"Cache MISS: {self.key}")
            return None

        try:
            data = json.loads(value)
            rows, cached_at, signature = data["rows"], float(data["cached_at"]), data.get("signature")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding unreadable cache entry {self.key}: {e}")
            self.clear()
            return None

        if now - cached_at >= max_age_seconds:
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        logger.debug(f"Cache HIT: {self.key}")
        return rows, cached_at, signature

    def clear(self) -> None:
        if not self.client:
            return
        try:
            if self.client.delete(self.key) > 0:
                self.stats["deletes"] += 1
                logger.debug(f"Cache DELETE: {self.key}")
        except Exception as e:
            logger.warning(f"Cache delete error for {self.key}: {e}")
