"""
Module classification.

Decides which requirement category a module counts toward, given the
semester being evaluated and the active bachelor/major.

A module type set by the portal or by the user always wins. Only modules of
type AUTO are looked up in the curriculum rules, which come from a JSON file
(see data/curriculum.json for the format) rather than being hard-coded.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Dict, List, Optional

from studyprogress.errors import CurriculumError
from studyprogress.model import (
    CATEGORIES,
    DEFAULT_BACHELOR_CREDITS,
    BachelorRequirement,
    Module,
    ModuleType,
    Semester,
    parse_semester,
)

log = logging.getLogger(__name__)


@dataclass
class Program:
    """One bachelor program with its majors and credit requirements."""

    program_id: str
    name: str
    requirement: BachelorRequirement
    majors: Dict[str, str] = field(default_factory=dict)


@dataclass
class ClassificationRule:
    """
    Maps module ids (fnmatch patterns) to a category.

    Optional restrictions:
    - bachelors / majors: rule only applies to these programs (empty = all)
    - in_force_from / in_force_until: study regulation window, compared with
      the semester being evaluated
    - taken_from / taken_until: compared with the semester the module was taken
    """

    modules: List[str]
    category: ModuleType
    bachelors: List[str] = field(default_factory=list)
    majors: List[str] = field(default_factory=list)
    in_force_from: Optional[Semester] = None
    in_force_until: Optional[Semester] = None
    taken_from: Optional[Semester] = None
    taken_until: Optional[Semester] = None

    def matches(self, semester: Semester, module: Module, bachelor: Optional[str], major: Optional[str]) -> bool:
        if not any(fnmatchcase(module.full_id, pattern) for pattern in self.modules):
            return False
        if self.bachelors and bachelor not in self.bachelors:
            return False
        if self.majors and major not in self.majors:
            return False
        if not _within(semester, self.in_force_from, self.in_force_until):
            return False
        return _within(module.semester, self.taken_from, self.taken_until)


def _within(value: Semester, first: Optional[Semester], last: Optional[Semester]) -> bool:
    if first is not None and value < first:
        return False
    if last is not None and value > last:
        return False
    return True


@dataclass
class Curriculum:
    programs: Dict[str, Program] = field(default_factory=dict)
    rules: List[ClassificationRule] = field(default_factory=list)

    def program(self, bachelor: str) -> Program:
        try:
            return self.programs[bachelor]
        except KeyError:
            raise CurriculumError(f"Unknown bachelor program: {bachelor!r}") from None

    def requirement(self, bachelor: str) -> BachelorRequirement:
        return self.program(bachelor).requirement

    def majors(self, bachelor: str) -> Dict[str, str]:
        return self.program(bachelor).majors


def classify(
    semester: Semester,
    module: Module,
    bachelor: Optional[str],
    major: Optional[str],
    curriculum: Curriculum,
) -> Optional[ModuleType]:
    """
    Return the category `module` counts toward, or None if it counts toward none.

    The first matching curriculum rule wins.
    """
    if module.type != ModuleType.AUTO:
        return module.type

    for rule in curriculum.rules:
        if rule.matches(semester, module, bachelor, major):
            return rule.category
    return None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _optional_semester(raw: Dict[str, Any], key: str) -> Optional[Semester]:
    value = raw.get(key)
    if value is None:
        return None
    return parse_semester(value)


def _as_number(value: Any) -> float:
    number = float(value)
    return int(number) if number.is_integer() else number


def _parse_requirement(raw: Dict[str, Any]) -> BachelorRequirement:
    values: Dict[str, Any] = {}
    for category in CATEGORIES:
        key = category.value.lower()
        if raw.get(key) is not None:
            values[f"{key}_credits"] = _as_number(raw[key])
    values["total_credits"] = _as_number(raw.get("total", DEFAULT_BACHELOR_CREDITS))
    return BachelorRequirement(**values)


def _parse_rule(raw: Dict[str, Any]) -> ClassificationRule:
    modules = raw["modules"]
    if isinstance(modules, str):
        modules = [modules]
    category = ModuleType(str(raw["category"]).upper())
    if category == ModuleType.AUTO:
        raise ValueError("a rule cannot classify as AUTO")
    return ClassificationRule(
        modules=[str(m) for m in modules],
        category=category,
        bachelors=[str(b) for b in raw.get("bachelors", [])],
        majors=[str(m) for m in raw.get("majors", [])],
        in_force_from=_optional_semester(raw, "in_force_from"),
        in_force_until=_optional_semester(raw, "in_force_until"),
        taken_from=_optional_semester(raw, "taken_from"),
        taken_until=_optional_semester(raw, "taken_until"),
    )


def curriculum_from_dict(data: Dict[str, Any]) -> Curriculum:
    """
    Build a Curriculum from its JSON representation.

    Raises CurriculumError with the offending entry on malformed input.
    """
    if not isinstance(data, dict):
        raise CurriculumError("Curriculum must be a JSON object")

    programs: Dict[str, Program] = {}
    for program_id, raw in (data.get("programs") or {}).items():
        try:
            programs[program_id] = Program(
                program_id=program_id,
                name=str(raw.get("name", program_id)),
                requirement=_parse_requirement(raw.get("requirements", {})),
                majors={str(k): str(v) for k, v in (raw.get("majors") or {}).items()},
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise CurriculumError(f"Invalid program {program_id!r}: {exc}") from exc

    rules: List[ClassificationRule] = []
    for i, raw in enumerate(data.get("rules") or []):
        try:
            rules.append(_parse_rule(raw))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise CurriculumError(f"Invalid rule #{i}: {exc}") from exc

    return Curriculum(programs=programs, rules=rules)


def load_curriculum(path: str | Path) -> Curriculum:
    curriculum_path = Path(path)
    try:
        data = json.loads(curriculum_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CurriculumError(f"Curriculum file not found: {curriculum_path}") from exc
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CurriculumError(f"Cannot read curriculum {curriculum_path}: {exc}") from exc

    curriculum = curriculum_from_dict(data)
    log.debug(
        "Loaded curriculum %s (%d programs, %d rules)",
        curriculum_path,
        len(curriculum.programs),
        len(curriculum.rules),
    )
    return curriculum
