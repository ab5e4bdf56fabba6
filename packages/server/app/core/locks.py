"""
Per-resource mutual exclusion for signup operations.

One ``asyncio.Lock`` per key (``("queue", id)`` or ``("topic", id)``) so that
capacity checks on the same queue or topic run one at a time inside this
worker, while unrelated queues never contend. Cross-process serialization is
the database's job (``SELECT ... FOR UPDATE`` on the guarded row).
"""

from __future__ import annotations

import asyncio
import uuid
import weakref
from collections.abc import Hashable


class KeyedLocks:
    """Lazily created locks, dropped once nobody holds a reference."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


signup_locks = KeyedLocks()


def queue_lock(queue_id: uuid.UUID) -> asyncio.Lock:
    return signup_locks.get(("queue", queue_id))


def topic_lock(topic_id: uuid.UUID) -> asyncio.Lock:
    return signup_locks.get(("topic", topic_id))
