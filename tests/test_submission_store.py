import json
import unittest
from unittest.mock import MagicMock, patch

import redis
from fakes import FakeBackend, payload

from island_entry.backend.client import Registration
from island_entry.registration.controller import IslandEntryController
from island_entry.registration.fee import FeeConfig
from island_entry.storage.redis_submission_store import RedisSubmissionStore
from island_entry.storage.submission_store import SubmissionStore

REGISTRATION = Registration(unique_code="A1B2C3", qr_code_url="https://q", payment_link="https://pm/1")


class SubmissionStoreTests(unittest.TestCase):
    def test_reserve_save_get(self):
        store = SubmissionStore(ttl_seconds=600)
        self.assertTrue(store.reserve("k"))
        self.assertFalse(store.reserve("k"))
        self.assertIsNone(store.get("k"))

        store.save("k", REGISTRATION)

        self.assertEqual(store.get("k"), REGISTRATION)
        self.assertFalse(store.reserve("k"))

    def test_release_only_frees_pending_keys(self):
        store = SubmissionStore(ttl_seconds=600)
        store.reserve("pending")
        store.release("pending")
        self.assertTrue(store.reserve("pending"))

        store.save("done", REGISTRATION)
        store.release("done")
        self.assertEqual(store.get("done"), REGISTRATION)

    def test_entries_expire(self):
        store = SubmissionStore(ttl_seconds=60)
        with patch("island_entry.storage.submission_store.time.time", return_value=1000.0):
            store.save("k", REGISTRATION)
        with patch("island_entry.storage.submission_store.time.time", return_value=1061.0):
            self.assertIsNone(store.get("k"))
            self.assertTrue(store.reserve("k"))


class RedisSubmissionStoreTests(unittest.TestCase):
    def setUp(self):
        self.redis = MagicMock()
        self.store = RedisSubmissionStore(redis_client=self.redis, ttl_seconds=120, key_prefix="test")

    def test_reserve_uses_set_nx(self):
        self.redis.set.return_value = True
        self.assertTrue(self.store.reserve("k"))
        self.redis.set.assert_called_once_with("test:submission:k", "__pending__", nx=True, ex=120)

        self.redis.set.return_value = None
        self.assertFalse(self.store.reserve("k"))

    def test_save_and_get(self):
        self.store.save("k", REGISTRATION)
        key, ttl, raw = self.redis.setex.call_args[0]
        self.assertEqual((key, ttl), ("test:submission:k", 120))

        self.redis.get.return_value = raw
        self.assertEqual(self.store.get("k"), REGISTRATION)

    def test_pending_or_invalid_values_read_as_missing(self):
        self.redis.get.return_value = "__pending__"
        self.assertIsNone(self.store.get("k"))
        self.redis.get.return_value = "{not json"
        self.assertIsNone(self.store.get("k"))
        self.redis.get.return_value = json.dumps({"qr_code_url": "x"})
        self.assertIsNone(self.store.get("k"))

    def test_release_is_compare_and_delete(self):
        self.store.release("k")

        script, numkeys, key, expected = self.redis.eval.call_args[0]
        self.assertIn("redis.call('del', KEYS[1])", script)
        self.assertEqual((numkeys, key, expected), (1, "test:submission:k", "__pending__"))
        self.redis.get.assert_not_called()
        self.redis.delete.assert_not_called()


class RedisOutageTests(unittest.TestCase):
    def setUp(self):
        self.redis = MagicMock()
        error = redis.exceptions.ConnectionError("redis down")
        self.redis.get.side_effect = error
        self.redis.set.side_effect = error
        self.redis.setex.side_effect = error
        self.redis.eval.side_effect = error
        self.store = RedisSubmissionStore(redis_client=self.redis, ttl_seconds=120, key_prefix="test")

    def test_store_calls_do_not_raise(self):
        with self.assertLogs("island_entry.storage.redis_submission_store", level="ERROR"):
            self.assertIsNone(self.store.get("k"))
            self.assertTrue(self.store.reserve("k"))
            self.store.save("k", REGISTRATION)
            self.store.release("k")

    def test_registration_goes_through_without_de_dupe(self):
        backend = FakeBackend()
        controller = IslandEntryController(backend, FeeConfig(backend), submissions=self.store)

        with self.assertLogs("island_entry.storage.redis_submission_store", level="ERROR"):
            result = controller.register(payload(1, "WALK_IN"), idempotency_key="k")

        self.assertTrue(result.ok)
        self.assertEqual(backend.call_names(), ["register_visitors"])


if __name__ == "__main__":
    unittest.main()
