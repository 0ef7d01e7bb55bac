"""
Shared ``order_id -> registration_id`` map written at payment initiation and
consumed by the gateway callback.

Losing an entry is tolerated: the callback falls back to the transaction
reference stored on the registration.
"""

import logging
import threading
from abc import ABC, abstractmethod

from django.conf import settings
from django.core.cache import cache
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class OrderStore(ABC):
    @abstractmethod
    def put(self, order_id, registration_id):
        ...

    @abstractmethod
    def get(self, order_id):
        ...

    @abstractmethod
    def pop(self, order_id):
        """Remove and return the mapping, or None."""
        ...


class InMemoryOrderStore(OrderStore):
    """Process-local map; entries are lost on restart."""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders = {}

    def put(self, order_id, registration_id):
        with self._lock:
            self._orders[int(order_id)] = registration_id

    def get(self, order_id):
        with self._lock:
            return self._orders.get(int(order_id))

    def pop(self, order_id):
        with self._lock:
            return self._orders.pop(int(order_id), None)

    def __len__(self):
        with self._lock:
            return len(self._orders)


class CacheOrderStore(OrderStore):
    """Map kept in the Django cache so every worker sees it."""

    timeout = 24 * 60 * 60

    def _key(self, order_id):
        return f"card_order:{int(order_id)}"

    def put(self, order_id, registration_id):
        cache.set(self._key(order_id), str(registration_id), self.timeout)

    def get(self, order_id):
        return cache.get(self._key(order_id))

    def pop(self, order_id):
        key = self._key(order_id)
        value = cache.get(key)
        cache.delete(key)
        return value


_store = None
_store_lock = threading.Lock()


def get_order_store():
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = import_string(settings.CARD_ORDER_STORE)()
                logger.info("Order store initialised: %s", type(_store).__name__)
    return _store
