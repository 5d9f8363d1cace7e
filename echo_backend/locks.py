"""
Per-user serialization for mutations of one user aggregate.

Supports an in-process fallback for tests/local runs and a Redis-backed
implementation when several API processes share one store.
"""

from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import ContextManager, Iterator, Protocol

import redis
from redis import exceptions as redis_exceptions

from echo_backend.errors import StorageUnavailable

logger = logging.getLogger(__name__)


class UserLockProvider(Protocol):
    """Serializes work on a single user; never blocks other users."""

    def hold(self, user_id: str) -> ContextManager[None]:
        ...


@dataclass
class InMemoryUserLocks:
    """
    One re-entrant lock per user id, created on first use.

    Entries are weak: a user's lock lives only while some request holds it.
    """

    _locks: weakref.WeakValueDictionary = field(
        default_factory=weakref.WeakValueDictionary
    )
    _guard: threading.Lock = field(default_factory=threading.Lock)

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self._lock_for(user_id)
        with lock:
            yield


@dataclass
class RedisUserLocks:
    """Redis lock per user so separate processes see each other's writes in order."""

    url: str
    key_prefix: str = "echo:lock:user"
    timeout_seconds: float = 30.0
    blocking_timeout_seconds: float = 10.0

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self.client.lock(
            f"{self.key_prefix}:{user_id}",
            timeout=self.timeout_seconds,
            blocking_timeout=self.blocking_timeout_seconds,
        )
        try:
            acquired = lock.acquire()
        except redis_exceptions.RedisError as e:
            raise StorageUnavailable("Lock service unavailable") from e
        if not acquired:
            raise StorageUnavailable(f"Timed out waiting for user {user_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except redis_exceptions.LockError:
                logger.warning(f"Lock for user {user_id} expired before release")
            except redis_exceptions.RedisError:
                logger.exception(f"Could not release lock for user {user_id}")
