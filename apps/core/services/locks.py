"""
Cache-backed locks that keep a scheduled job from overlapping itself.

``cache.add`` only succeeds when the key is absent, which makes it an atomic
acquire on Redis and on the database cache alike. The lock value is unique
per holder so a job never releases a lock that expired and was re-taken.
"""

import logging
import uuid
from contextlib import contextmanager
from functools import wraps

from django.core.cache import cache

logger = logging.getLogger(__name__)


class JobLock:
    def __init__(self, lock_key, timeout=15 * 60):
        self.lock_key = f"job_lock:{lock_key}"
        self.timeout = timeout
        self.lock_value = str(uuid.uuid4())
        self.acquired = False

    def acquire(self):
        self.acquired = cache.add(self.lock_key, self.lock_value, self.timeout)
        return self.acquired

    def release(self):
        if not self.acquired:
            return
        if cache.get(self.lock_key) == self.lock_value:
            cache.delete(self.lock_key)
        self.acquired = False


@contextmanager
def job_lock(lock_key, timeout=15 * 60):
    """Yield True when the lock was taken, False when another run holds it."""
    lock = JobLock(lock_key, timeout=timeout)
    acquired = lock.acquire()
    try:
        yield acquired
    finally:
        lock.release()


def single_instance(lock_key, timeout=15 * 60):
    """Skip the decorated job (returning a ``skipped`` dict) while another run holds the lock."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            with job_lock(lock_key, timeout=timeout) as acquired:
                if not acquired:
                    logger.warning("%s: previous run still in progress, skipping.", func.__name__)
                    return {"skipped": True}
                return func(*args, **kwargs)
        return wrapper

    return decorator
