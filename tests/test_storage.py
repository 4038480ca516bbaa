"""
Unit tests for the edit store and the other local files.

Storage contract:
- Missing/invalid file -> empty store / automatic settings / no data
- set_edit merges field-wise and persists before returning
- Invalid values are rejected without touching the store
"""

import json
import tempfile
import unittest
from pathlib import Path

from studyprogress.errors import InvalidEditError
from studyprogress.model import ModuleState, ModuleType, Semester, SemesterPart
from studyprogress.storage import (
    EditStore,
    LocalData,
    UserSettings,
    load_local_data,
    load_settings,
    normalize_edit,
    save_local_data,
    save_settings,
    update_major,
)
from tests.helpers import WS24, make_module


class TestNormalizeEdit(unittest.TestCase):
    def test_converts_values(self) -> None:
        values = normalize_edit(
            {"state": "ongoing", "type": 1, "ects": "7.5", "grade": "2", "semester": "WINTER 2024"}
        )
        self.assertEqual(values["state"], ModuleState.ONGOING)
        self.assertEqual(values["type"], ModuleType.PROJECT)
        self.assertEqual(values["ects"], 7.5)
        self.assertEqual(values["grade"], 2)
        self.assertEqual(values["semester"], WS24)

    def test_rejects_invalid_values(self) -> None:
        for bad in (
            {"state": 99},
            {"state": -1},
            {"type": "OPTIONAL"},
            {"ects": -1},
            {"ects": "many"},
            {"grade": True},
            {"full_id": "  "},
            {"colour": "red"},
        ):
            with self.assertRaises(InvalidEditError):
                normalize_edit(bad)

    def test_grade_can_be_cleared(self) -> None:
        self.assertEqual(normalize_edit({"grade": None}), {"grade": None})


class TestEditStore(unittest.TestCase):
    def test_load_missing_file_returns_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            store = EditStore.load(Path(d) / "missing.json")
            self.assertEqual(len(store), 0)

    def test_load_corrupt_file_returns_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "module_edits.json"
            p.write_text("{not json", encoding="utf-8")
            with self.assertLogs("studyprogress.storage", level="WARNING"):
                store = EditStore.load(p)
            self.assertEqual(len(store), 0)

    def test_set_edit_merges_fields(self) -> None:
        store = EditStore()
        store.set_edit("A", {"ects": 8})
        store.set_edit("A", {"state": ModuleState.ONGOING})
        edit = store.get_edit("A")
        assert edit is not None
        self.assertEqual(edit.edits, {"ects": 8, "state": ModuleState.ONGOING})
        self.assertFalse(edit.is_manual)

        store.set_edit("A", {"ects": 4})
        self.assertEqual(store.get_edit("A").edits["ects"], 4)

    def test_invalid_edit_leaves_store_unchanged(self) -> None:
        store = EditStore()
        store.set_edit("A", {"ects": 8})
        with self.assertRaises(InvalidEditError):
            store.set_edit("A", {"ects": 10, "state": 42})
        self.assertEqual(store.get_edit("A").edits, {"ects": 8})

    def test_mismatched_full_id_is_rejected(self) -> None:
        store = EditStore()
        store.set_edit("A", {"ects": 8})
        with self.assertRaises(InvalidEditError):
            store.set_edit("A", {"full_id": "B"})
        with self.assertRaises(InvalidEditError):
            store.set_edit("C", {"full_id": "D", "ects": 3})
        self.assertEqual(store.get_edit("A").edits, {"ects": 8})
        self.assertNotIn("C", store)

    def test_failed_save_leaves_store_unchanged(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            # a regular file where the parent directory should be
            blocker = Path(d) / "blocker"
            blocker.write_text("", encoding="utf-8")
            store = EditStore(blocker / "module_edits.json")
            seen = []
            store.subscribe(seen.append)

            with self.assertRaises(OSError):
                store.set_edit("A", {"ects": 8})
            self.assertIsNone(store.get_edit("A"))
            self.assertEqual(seen, [])

    def test_failed_delete_keeps_edit(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "module_edits.json"
            store = EditStore(p)
            store.set_edit("A", {"ects": 8})
            seen = []
            store.subscribe(seen.append)

            blocker = Path(d) / "blocker"
            blocker.write_text("", encoding="utf-8")
            store.path = blocker / "module_edits.json"
            with self.assertRaises(OSError):
                store.delete_edit("A")
            self.assertEqual(store.get_edit("A").edits, {"ects": 8})
            self.assertEqual(seen, [])

    def test_delete_edit(self) -> None:
        store = EditStore()
        store.set_edit("B", {"full_id": "B", "ects": 5})
        self.assertTrue(store.get_edit("B").is_manual)
        self.assertTrue(store.delete_edit("B"))
        self.assertIsNone(store.get_edit("B"))
        self.assertFalse(store.delete_edit("B"))

    def test_observers_are_notified_after_persisting(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "module_edits.json"
            store = EditStore(p)
            seen = []

            def on_change(full_id: str) -> None:
                # the file is already written when observers run
                seen.append((full_id, json.loads(p.read_text(encoding="utf-8"))))

            unsubscribe = store.subscribe(on_change)
            store.set_edit("A", {"ects": 8})
            store.delete_edit("A")
            unsubscribe()
            store.set_edit("C", {"ects": 1})

            self.assertEqual([s[0] for s in seen], ["A", "A"])
            self.assertIn("A", seen[0][1]["module_edits"])
            self.assertEqual(seen[1][1]["module_edits"], {})

    def test_save_and_load_roundtrip(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "nested" / "module_edits.json"
            store = EditStore(p)
            store.set_edit("A", {"state": ModuleState.CREDITED, "type": ModuleType.MAJOR, "grade": 1.3})
            store.set_edit("B", {"full_id": "B", "semester": WS24, "ects": 5})

            data = json.loads(p.read_text(encoding="utf-8"))
            self.assertEqual(data["module_edits"]["A"]["edits"]["state"], "CREDITED")
            self.assertEqual(data["module_edits"]["B"]["edits"]["semester"], {"part": "WINTER", "year": 2024})

            loaded = EditStore.load(p)
            self.assertEqual(loaded.get_edit("A").edits, store.get_edit("A").edits)
            self.assertEqual(loaded.get_edit("B").edits, store.get_edit("B").edits)
            self.assertTrue(loaded.get_edit("B").is_manual)

    def test_load_skips_broken_entries(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "module_edits.json"
            payload = {
                "module_edits": {
                    "A": {"full_id": "A", "edits": {"ects": 6}},
                    "X": {"full_id": "X", "edits": {"state": "EXPLODED"}},
                }
            }
            p.write_text(json.dumps(payload), encoding="utf-8")
            with self.assertLogs("studyprogress.storage", level="WARNING"):
                store = EditStore.load(p)
            self.assertIn("A", store)
            self.assertNotIn("X", store)


class TestSettings(unittest.TestCase):
    def test_missing_settings_are_automatic(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            self.assertEqual(load_settings(Path(d) / "settings.json"), UserSettings())

    def test_roundtrip_and_update(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "settings.json"
            save_settings(UserSettings(semester=Semester(SemesterPart.SUMMER, 2024), bachelor="CS"), p)
            update_major(p, "AI")
            s = load_settings(p)
            self.assertEqual(s.semester, Semester(SemesterPart.SUMMER, 2024))
            self.assertEqual(s.bachelor, "CS")
            self.assertEqual(s.major, "AI")


class TestLocalData(unittest.TestCase):
    def test_never_fetched_differs_from_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "local_data.json"
            self.assertIsNone(load_local_data(p).modules)
            save_local_data(LocalData(modules=[], bachelor="CS"), p)
            self.assertEqual(load_local_data(p).modules, [])

    def test_modules_roundtrip(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "local_data.json"
            modules = [make_module("CS101", grade=1.7), make_module("PRJ1", state=ModuleState.ONGOING)]
            save_local_data(LocalData(modules=modules, bachelor="CS", major="AI"), p)
            local = load_local_data(p)
            self.assertEqual(local.modules, modules)
            self.assertEqual((local.bachelor, local.major), ("CS", "AI"))
            self.assertIsNotNone(local.fetched_at)


if __name__ == "__main__":
    unittest.main()
