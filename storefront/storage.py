"""
Local durable storage for guest carts.

The interface is synchronous and byte-oriented: the cart layer owns the
encoding. Two backends:

- RedisLocalStorage: Upstash Redis via the sync REST client, keys expire
- FileLocalStorage: one file per key under a directory (single-device use)
"""

from pathlib import Path
from typing import Optional, Protocol

from upstash_redis import Redis

from storefront.db import TTL, RedisKeys, get_redis_sync
from storefront.logging import get_logger

logger = get_logger(__name__)


class LocalStorage(Protocol):
    def load(self, key: str) -> Optional[bytes]: ...

    def save(self, key: str, data: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisLocalStorage:
    """Guest cart storage in Upstash Redis, namespaced by session key."""

    def __init__(self, redis: Optional[Redis] = None, ttl: int = TTL.GUEST_CART):
        self._redis = redis
        self.ttl = ttl

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_sync()
        return self._redis

    def load(self, key: str) -> Optional[bytes]:
        data = self.redis.get(RedisKeys.guest_cart_key(key))
        if data is None:
            return None
        return data.encode("utf-8") if isinstance(data, str) else data

    def save(self, key: str, data: bytes) -> None:
        self.redis.set(RedisKeys.guest_cart_key(key), data.decode("utf-8"), ex=self.ttl)

    def delete(self, key: str) -> None:
        self.redis.delete(RedisKeys.guest_cart_key(key))


class FileLocalStorage:
    """Guest cart storage as files in a directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in key)
        return self.directory / f"{safe}.json"

    def load(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def save(self, key: str, data: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        logger.debug(f"Deleted guest cart file for key {key}")
