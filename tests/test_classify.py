"""
Unit tests for module classification and curriculum loading.
"""

import json
import tempfile
import unittest
from pathlib import Path

from studyprogress.classify import classify, curriculum_from_dict, load_curriculum
from studyprogress.config import DEFAULT_CURRICULUM_PATH
from studyprogress.errors import CurriculumError
from studyprogress.model import ModuleType, Semester, SemesterPart
from tests.helpers import CURRICULUM_DATA, SS24, WS23, WS24, make_curriculum, make_module


class TestClassify(unittest.TestCase):
    def setUp(self) -> None:
        self.curriculum = make_curriculum()

    def test_stored_type_wins(self) -> None:
        m = make_module("CS101", type=ModuleType.PROJECT)
        self.assertEqual(classify(WS24, m, "CS", None, self.curriculum), ModuleType.PROJECT)

    def test_rule_by_bachelor(self) -> None:
        m = make_module("CS101")
        self.assertEqual(classify(WS24, m, "CS", None, self.curriculum), ModuleType.CORE)
        self.assertIsNone(classify(WS24, m, "DS", None, self.curriculum))

    def test_depends_on_major(self) -> None:
        m = make_module("AI300")
        self.assertEqual(classify(WS24, m, "CS", "AI", self.curriculum), ModuleType.MAJOR)
        self.assertEqual(classify(WS24, m, "CS", "SE", self.curriculum), ModuleType.EXTENSION)
        self.assertEqual(classify(WS24, m, "CS", None, self.curriculum), ModuleType.EXTENSION)

    def test_regulation_window_uses_query_semester(self) -> None:
        m = make_module("OLD1")
        self.assertEqual(classify(SS24, m, "CS", None, self.curriculum), ModuleType.MISC)
        self.assertIsNone(classify(WS24, m, "CS", None, self.curriculum))

    def test_taken_window_uses_module_semester(self) -> None:
        early = make_module("SK1", semester=Semester(SemesterPart.SUMMER, 2023))
        late = make_module("SK2", semester=WS23)
        self.assertIsNone(classify(WS24, early, "CS", None, self.curriculum))
        self.assertEqual(classify(WS24, late, "CS", None, self.curriculum), ModuleType.MISC)

    def test_unknown_module_counts_nowhere(self) -> None:
        self.assertIsNone(classify(WS24, make_module("XYZ"), "CS", "AI", self.curriculum))


class TestCurriculum(unittest.TestCase):
    def test_requirements(self) -> None:
        req = make_curriculum().requirement("CS")
        self.assertEqual(req.core_credits, 30)
        self.assertIsNone(req.misc_credits)
        self.assertEqual(req.total_credits, 180)
        self.assertEqual(req.required(ModuleType.MAJOR), 20)

    def test_unknown_program(self) -> None:
        with self.assertRaises(CurriculumError):
            make_curriculum().program("LAW")

    def test_invalid_rules(self) -> None:
        for rule in ({"modules": ["X*"]}, {"modules": ["X*"], "category": "AUTO"}, {"modules": ["X*"], "category": "NOPE"}):
            with self.assertRaises(CurriculumError):
                curriculum_from_dict({"programs": {}, "rules": [rule]})

    def test_load_from_file(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "curriculum.json"
            p.write_text(json.dumps(CURRICULUM_DATA), encoding="utf-8")
            curriculum = load_curriculum(p)
            self.assertEqual(len(curriculum.rules), len(CURRICULUM_DATA["rules"]))
            self.assertEqual(curriculum.majors("CS")["AI"], "Artificial Intelligence")

            with self.assertRaises(CurriculumError):
                load_curriculum(Path(d) / "missing.json")

    def test_bundled_curriculum_loads(self) -> None:
        curriculum = load_curriculum(DEFAULT_CURRICULUM_PATH)
        self.assertIn("CS", curriculum.programs)
        self.assertTrue(curriculum.rules)


if __name__ == "__main__":
    unittest.main()
