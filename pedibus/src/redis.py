from contextlib import contextmanager
from typing import Iterator, Optional
from redis import Redis
from redis.lock import Lock

from pedibus.src import exceptions
from pedibus.src.constants import (
    REDIS_HOST,
    REDIS_PORT,
    REDIS_PASSWORD,
    MUTEX_LOCK_TIMEOUT,
    MUTEX_LOCK_MAX_WAIT_TIME,
)

# Redis client (single connection)
redisClient = Redis(
    host=REDIS_HOST,
    port=REDIS_PORT,
    password=REDIS_PASSWORD,
    decode_responses=True,
)


def acquireLock(
    resourceName: str,
    pk: Optional[int] = None,
    timeOut: int = MUTEX_LOCK_TIMEOUT,
    blockingTimeOut: int = MUTEX_LOCK_MAX_WAIT_TIME,
) -> Lock:
    """
    Acquire a Redis-based mutex lock for a resource or one of its rows.

    Args:
        resourceName (str): Name of the table or job to lock.
        pk (Optional[int]): Optional primary key for row-level locking.
        timeOut (int): Lock expiration in seconds (auto-released after this).
        blockingTimeOut (int): Maximum time (in seconds) to wait for lock acquisition.

    Returns:
        Lock: A Redis lock object if successfully acquired.

    Raises:
        exceptions.LockAcquireTimeout: If the lock could not be acquired within blockingTimeOut.
    """
    try:
        lockName = f"lock:{resourceName}" if pk is None else f"lock:{resourceName}:{pk}"
        lock = redisClient.lock(lockName, timeout=timeOut)
        if lock.acquire(blocking=True, blocking_timeout=blockingTimeOut):
            return lock
        raise exceptions.LockAcquireTimeout()
    except Exception as e:
        exceptions.handle(e)


def releaseLock(lock: Optional[Lock]) -> None:
    """
    Release a previously acquired Redis lock.

    Notes:
        - Ensures only the owner can release the lock.
        - Silently ignores invalid/unowned locks.
    """
    if lock and lock.locked() and lock.owned():
        lock.release()


@contextmanager
def mutex(resourceName: str, pk: Optional[int] = None) -> Iterator[Lock]:
    """
    Hold the lock of a resource for the duration of a `with` block.

    Used by triggered runs (activity session processing, leaderboard awards)
    so the same run never executes twice at the same time.
    """
    lock = None
    try:
        lock = acquireLock(resourceName, pk)
        yield lock
    finally:
        releaseLock(lock)


def markOnce(key: str, expiresIn: int) -> bool:
    """
    Set a marker key unless it already exists.

    Returns:
        bool: True only for the first caller within `expiresIn` seconds.
    """
    try:
        return bool(redisClient.set(f"mark:{key}", 1, nx=True, ex=expiresIn))
    except Exception as e:
        exceptions.handle(e)


def clearMark(key: str) -> None:
    """Remove a marker set by `markOnce` so the next caller can claim it again."""
    try:
        redisClient.delete(f"mark:{key}")
    except Exception as e:
        exceptions.handle(e)
