"""Short-lived challenges (wallet-link nonces) behind a small put/get/pop/sweep interface.

One store is created per app in app.py and kept in ``app.extensions``.
In-memory for single-process deployments; set REDIS_URL to share it across
workers.
"""

from __future__ import annotations

import threading
import time

import redis


DEFAULT_TTL_SECONDS = 600
SWEEP_INTERVAL_SECONDS = 60


class ChallengeStore:
    def put(self, key: str, value: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        raise NotImplementedError

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def pop(self, key: str) -> str | None:
        """Return and delete a live value; a challenge can be consumed once."""
        raise NotImplementedError

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        raise NotImplementedError


class MemoryChallengeStore(ChallengeStore):
    def __init__(self, clock=time.monotonic, sweep_interval: float = SWEEP_INTERVAL_SECONDS):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def put(self, key, value, ttl_seconds=DEFAULT_TTL_SECONDS):
        now = self._clock()
        with self._lock:
            self._entries[key] = (value, now + ttl_seconds)
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep()

    def _live(self, key: str, now: float):
        item = self._entries.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= now:
            del self._entries[key]
            return None
        return value

    def get(self, key):
        with self._lock:
            return self._live(key, self._clock())

    def pop(self, key):
        with self._lock:
            value = self._live(key, self._clock())
            if value is not None:
                del self._entries[key]
            return value

    def sweep(self):
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
            for k in expired:
                del self._entries[k]
            self._last_sweep = now
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._entries)


class RedisChallengeStore(ChallengeStore):
    def __init__(self, client: "redis.Redis", prefix: str = "niner:challenge:"):
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def put(self, key, value, ttl_seconds=DEFAULT_TTL_SECONDS):
        self._client.set(self._key(key), value, ex=int(ttl_seconds))

    def get(self, key):
        raw = self._client.get(self._key(key))
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    def pop(self, key):
        pipe = self._client.pipeline()
        pipe.get(self._key(key))
        pipe.delete(self._key(key))
        raw, _ = pipe.execute()
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    def sweep(self):
        # Redis expires keys itself.
        return 0


def create_challenge_store(redis_url: str | None = None) -> ChallengeStore:
    if redis_url:
        return RedisChallengeStore(redis.from_url(redis_url))
    return MemoryChallengeStore()
