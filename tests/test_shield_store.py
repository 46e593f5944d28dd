import json
import os
import tempfile
import unittest
from unittest import mock

import shield_store
from shield_store import JsonFileStore, MemoryStore, MirroredStore, build_store


class JsonFileStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = os.path.join(self._tmp.name, "state")
        self.store = JsonFileStore(self.dir)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_round_trip_creates_directory(self):
        self.assertIsNone(self.store.load("shield"))
        self.assertTrue(self.store.save("shield", {"version": 1, "flags": [True]}))
        self.assertEqual(self.store.load("shield"), {"version": 1, "flags": [True]})
        self.assertEqual(os.listdir(self.dir), ["shield.json"])

    def test_keys_are_sanitized(self):
        self.assertEqual(os.path.basename(self.store.path_for("../a b")), ".._a_b.json")

    def test_corrupt_or_non_object_file_starts_fresh(self):
        os.makedirs(self.dir)
        with open(self.store.path_for("bad"), "w", encoding="utf-8") as f:
            f.write("{not json")
        with open(self.store.path_for("list"), "w", encoding="utf-8") as f:
            json.dump([1, 2], f)
        self.assertIsNone(self.store.load("bad"))
        self.assertIsNone(self.store.load("list"))

    def test_unserializable_snapshot_fails_softly(self):
        self.assertFalse(self.store.save("shield", {"x": object()}))

    def test_delete(self):
        self.store.save("shield", {"a": 1})
        self.assertTrue(self.store.delete("shield"))
        self.assertFalse(self.store.delete("shield"))
        self.assertIsNone(self.store.load("shield"))


class MemoryStoreTests(unittest.TestCase):
    def test_loads_are_independent_copies(self):
        store = MemoryStore()
        store.save("k", {"a": [1]})
        loaded = store.load("k")
        loaded["a"].append(2)
        self.assertEqual(store.load("k"), {"a": [1]})
        self.assertTrue(store.delete("k"))
        self.assertFalse(store.delete("k"))


class MirroredStoreTests(unittest.TestCase):
    def test_writes_both_and_reads_primary_first(self):
        primary, mirror = MemoryStore(), MemoryStore()
        store = MirroredStore(primary, mirror)
        self.assertTrue(store.save("k", {"v": 1}))
        self.assertEqual(primary.load("k"), {"v": 1})
        self.assertEqual(mirror.load("k"), {"v": 1})

        mirror.save("k", {"v": 2})
        self.assertEqual(store.load("k"), {"v": 1})

    def test_falls_back_to_mirror(self):
        primary, mirror = MemoryStore(), MemoryStore()
        mirror.save("k", {"v": 2})
        store = MirroredStore(primary, mirror)
        self.assertEqual(store.load("k"), {"v": 2})

        store.delete("k")
        self.assertIsNone(mirror.load("k"))

    def test_build_store_mirrors_when_supabase_configured(self):
        with mock.patch.object(shield_store.supabase_store, "_enabled", return_value=False):
            self.assertIsInstance(build_store("x"), JsonFileStore)
        with mock.patch.object(shield_store.supabase_store, "_enabled", return_value=True):
            store = build_store("x")
        self.assertIsInstance(store, MirroredStore)
        self.assertIsInstance(store.mirror, shield_store.SupabaseStore)


if __name__ == "__main__":
    unittest.main()
