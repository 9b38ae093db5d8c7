import json
import os
import sys
import tempfile
import unittest


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))


from acn.errors import StateIOError  # noqa: E402
from acn.state.json_store import JsonStateStore  # noqa: E402


class TestJsonStateStore(unittest.TestCase):
    def test_cursor_roundtrip_and_absent_is_not_zero(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "state.json")
            store = JsonStateStore(path)

            self.assertIsNone(store.get_cursor("tourist"))
            store.set_cursor("tourist", 0)
            self.assertEqual(store.get_cursor("tourist"), 0)
            store.set_cursor("tourist", 1700000000)
            self.assertEqual(store.get_cursor("tourist"), 1700000000)

    def test_marks_are_idempotent_and_survive_restart(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "data", "state.json")
            store = JsonStateStore(path)

            self.assertFalse(store.is_marked_solved("tourist", "abc300_a"))
            store.mark_solved("tourist", "abc300_a")
            store.mark_solved("tourist", "abc300_a")
            store.set_cursor("tourist", 42)
            self.assertTrue(store.is_marked_solved("tourist", "abc300_a"))
            self.assertFalse(store.is_marked_solved("jiangly", "abc300_a"))

            reloaded = JsonStateStore(path)
            self.assertTrue(reloaded.is_marked_solved("tourist", "abc300_a"))
            self.assertEqual(reloaded.get_cursor("tourist"), 42)

            with open(path, encoding="utf-8") as f:
                doc = json.load(f)
            self.assertEqual(doc, {"lastChecked": {"tourist": 42}, "solvedProblems": {"tourist:abc300_a": True}})

    def test_missing_solved_problems_key_defaults_to_empty(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"lastChecked": {"tourist": 100}}, f)

            store = JsonStateStore(path)
            self.assertFalse(store.is_marked_solved("tourist", "abc300_a"))
            self.assertEqual(store.get_cursor("tourist"), 100)
            store.mark_solved("tourist", "abc300_a")
            self.assertTrue(JsonStateStore(path).is_marked_solved("tourist", "abc300_a"))

    def test_corrupt_file_degrades_to_empty_state(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")

            with self.assertLogs("acn.state.json_store", level="ERROR"):
                store = JsonStateStore(path)
            self.assertEqual(store.snapshot(), {"lastChecked": {}, "solvedProblems": {}})

    def test_repairs_invalid_substructures_and_keeps_unknown_keys(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(
                    {
                        "lastChecked": {"tourist": "yesterday", "jiangly": 7},
                        "solvedProblems": ["not", "an", "object"],
                        "version": 2,
                    },
                    f,
                )

            store = JsonStateStore(path)
            self.assertIsNone(store.get_cursor("tourist"))
            self.assertEqual(store.get_cursor("jiangly"), 7)
            store.mark_solved("jiangly", "abc300_a")

            with open(path, encoding="utf-8") as f:
                doc = json.load(f)
            self.assertEqual(doc["version"], 2)
            self.assertEqual(doc["solvedProblems"], {"jiangly:abc300_a": True})

    def test_only_true_counts_as_marked(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"solvedProblems": {"tourist:a": False, "tourist:b": True}}, f)
            store = JsonStateStore(path)
            self.assertFalse(store.is_marked_solved("tourist", "a"))
            self.assertTrue(store.is_marked_solved("tourist", "b"))

    def test_flush_failure_is_logged_and_memory_state_advances(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            blocker = os.path.join(td, "not-a-dir")
            with open(blocker, "w", encoding="utf-8") as f:
                f.write("x")
            store = JsonStateStore(os.path.join(blocker, "state.json"))

            with self.assertLogs("acn.state.json_store", level="ERROR") as logs:
                store.set_cursor("tourist", 99)
                store.mark_solved("tourist", "abc300_a")
            self.assertTrue(any("state flush failed" in line for line in logs.output))
            self.assertEqual(store.get_cursor("tourist"), 99)
            self.assertTrue(store.is_marked_solved("tourist", "abc300_a"))

            with self.assertRaises(StateIOError):
                store.save()
