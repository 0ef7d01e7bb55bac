import threading
import uuid

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase

from apps.cards.order_store import CacheOrderStore, InMemoryOrderStore
from apps.core.services.locks import job_lock, single_instance


class InMemoryOrderStoreTests(SimpleTestCase):

    def test_put_get_pop(self):
        store = InMemoryOrderStore()
        registration_id = uuid.uuid4()
        store.put(42, registration_id)
        self.assertEqual(store.get("42"), registration_id)
        self.assertEqual(store.pop(42), registration_id)
        self.assertIsNone(store.pop(42))
        self.assertEqual(len(store), 0)

    def test_concurrent_writers(self):
        store = InMemoryOrderStore()

        def write(start):
            for order_id in range(start, start + 200):
                store.put(order_id, uuid.uuid4())

        threads = [threading.Thread(target=write, args=(n * 200,)) for n in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(store), 1000)


class CacheOrderStoreTests(TestCase):

    def setUp(self):
        cache.clear()

    def test_put_get_pop(self):
        store = CacheOrderStore()
        registration_id = uuid.uuid4()
        store.put(7, registration_id)
        self.assertEqual(store.get(7), str(registration_id))
        self.assertEqual(store.pop(7), str(registration_id))
        self.assertIsNone(store.get(7))


class JobLockTests(TestCase):

    def setUp(self):
        cache.clear()

    def test_lock_is_exclusive_and_released(self):
        with job_lock("nightly") as first:
            self.assertTrue(first)
            with job_lock("nightly") as second:
                self.assertFalse(second)
        with job_lock("nightly") as again:
            self.assertTrue(again)

    def test_single_instance_skips_overlapping_run(self):
        calls = []

        @single_instance("reentrant")
        def job():
            calls.append(1)
            return job_inner()

        @single_instance("reentrant")
        def job_inner():
            return "inner ran"

        self.assertEqual(job(), {"skipped": True})
        self.assertEqual(calls, [1])
