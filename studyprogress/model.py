"""
Central data model definitions used across the project.

This module defines the canonical structure of modules, edits, semesters and
credit totals so that:
- the portal parser, the storage layer and the statistics share field names
- enum values are persisted by name (stable across versions)
- credit totals can never disagree with their category fields
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from functools import total_ordering
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Semesters
# ---------------------------------------------------------------------------


class SemesterPart(Enum):
    SUMMER = "SUMMER"
    WINTER = "WINTER"


# Within one calendar year the summer semester comes first:
# the winter semester of year Y starts in October Y and ends in March Y+1.
_PART_ORDER = {SemesterPart.SUMMER: 0, SemesterPart.WINTER: 1}


@total_ordering
@dataclass(frozen=True)
class Semester:
    """
    One academic semester, e.g. Semester(SemesterPart.WINTER, 2024).

    Semesters are ordered by year first and by part within the year.
    """

    part: SemesterPart
    year: int

    def sort_key(self) -> tuple[int, int]:
        return (self.year, _PART_ORDER[self.part])

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Semester):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def next(self) -> "Semester":
        if self.part == SemesterPart.SUMMER:
            return Semester(SemesterPart.WINTER, self.year)
        return Semester(SemesterPart.SUMMER, self.year + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {"part": self.part.value, "year": self.year}

    def __str__(self) -> str:
        return format_semester(self)


def semester_from_date(day: date) -> Semester:
    """
    Return the semester containing the given date.

    April to September belongs to the summer semester of that year,
    October to December to the winter semester of that year and
    January to March to the winter semester of the previous year.
    """
    if 4 <= day.month <= 9:
        return Semester(SemesterPart.SUMMER, day.year)
    if day.month >= 10:
        return Semester(SemesterPart.WINTER, day.year)
    return Semester(SemesterPart.WINTER, day.year - 1)


def format_semester(semester: Semester) -> str:
    return f"{semester.part.value} {semester.year}"


_SEMESTER_RE = re.compile(r"^\s*(summer|winter)\s+(\d{4})\s*$", re.IGNORECASE)


def parse_semester(value: Any) -> Semester:
    """
    Parse a semester from "WINTER 2024", a JSON string or a {"part", "year"} dict.

    Raises ValueError for anything else.
    """
    if isinstance(value, Semester):
        return value

    if isinstance(value, str):
        text = value.strip()
        m = _SEMESTER_RE.match(text)
        if m:
            return Semester(SemesterPart(m.group(1).upper()), int(m.group(2)))
        if text.startswith("{"):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid semester: {text!r}") from exc

    if isinstance(value, dict):
        try:
            part = SemesterPart(str(value["part"]).strip().upper())
            year = int(value["year"])
        except (KeyError, ValueError, TypeError) as exc:
            raise ValueError(f"Invalid semester: {value!r}") from exc
        return Semester(part, year)

    raise ValueError(f"Invalid semester: {value!r}")


def compare_semester(a: Semester, b: Semester) -> int:
    """Three-way comparison, usable with functools.cmp_to_key."""
    if a < b:
        return -1
    if b < a:
        return 1
    return 0


def semester_range(first: Semester, last: Semester) -> List[Semester]:
    """All semesters from first to last (both inclusive), oldest first."""
    out: List[Semester] = []
    current = first
    while current <= last:
        out.append(current)
        current = current.next()
    return out


# ---------------------------------------------------------------------------
# Module state & type
# ---------------------------------------------------------------------------


class ModuleState(Enum):
    DONE = "DONE"
    CREDITED = "CREDITED"
    ONGOING = "ONGOING"
    CREDIT_PENDING = "CREDIT_PENDING"
    FAILED = "FAILED"


# Every pending state has exactly one terminal counterpart.
PENDING_TO_TERMINAL: Dict[ModuleState, ModuleState] = {
    ModuleState.ONGOING: ModuleState.DONE,
    ModuleState.CREDIT_PENDING: ModuleState.CREDITED,
}

TERMINAL_STATES = frozenset(PENDING_TO_TERMINAL.values())
PENDING_STATES = frozenset(PENDING_TO_TERMINAL.keys())


class ModuleType(Enum):
    CORE = "CORE"
    PROJECT = "PROJECT"
    MAJOR = "MAJOR"
    EXTENSION = "EXTENSION"
    MISC = "MISC"
    # not classified by hand, derived from the curriculum
    AUTO = "AUTO"


CATEGORIES = (
    ModuleType.CORE,
    ModuleType.PROJECT,
    ModuleType.MAJOR,
    ModuleType.EXTENSION,
    ModuleType.MISC,
)


# ---------------------------------------------------------------------------
# Modules & edits
# ---------------------------------------------------------------------------


@dataclass
class Module:
    """
    Represents one module enrollment as delivered by the study portal.
    """

    full_id: str
    short_name: str
    semester: Semester
    state: ModuleState
    type: ModuleType
    ects: float
    grade: Optional[float] = None


# Fields of Module a user may override. full_id only appears in manual additions.
EDITABLE_FIELDS = ("full_id", "short_name", "semester", "state", "type", "ects", "grade")


@dataclass
class ModuleEdit:
    """
    A local override for one module, keyed by full_id.

    Only fields present in `edits` are overridden. An edit carrying its own
    "full_id" field is a manual addition without a portal counterpart.
    """

    full_id: str
    edits: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_manual(self) -> bool:
        return "full_id" in self.edits


# ---------------------------------------------------------------------------
# Credits & requirements
# ---------------------------------------------------------------------------


@dataclass
class Credits:
    core_credits: float = 0
    project_credits: float = 0
    major_credits: float = 0
    extension_credits: float = 0
    misc_credits: float = 0

    @property
    def total_credits(self) -> float:
        return (
            self.core_credits
            + self.project_credits
            + self.major_credits
            + self.extension_credits
            + self.misc_credits
        )

    def get(self, category: ModuleType) -> float:
        return getattr(self, _credit_field(category))

    def add(self, category: ModuleType, ects: float) -> None:
        name = _credit_field(category)
        setattr(self, name, getattr(self, name) + ects)


def _credit_field(category: ModuleType) -> str:
    if category not in CATEGORIES:
        raise ValueError(f"Not a credit category: {category!r}")
    return f"{category.value.lower()}_credits"


@dataclass
class CreditStatistics:
    ongoing: Credits
    done: Credits


DEFAULT_BACHELOR_CREDITS = 180


@dataclass
class BachelorRequirement:
    """
    Required credits per category for one bachelor program.

    None means the category is not required for the program and is left out
    of the progress display.
    """

    core_credits: Optional[float] = None
    project_credits: Optional[float] = None
    major_credits: Optional[float] = None
    extension_credits: Optional[float] = None
    misc_credits: Optional[float] = None
    total_credits: float = DEFAULT_BACHELOR_CREDITS

    def required(self, category: ModuleType) -> Optional[float]:
        return getattr(self, _credit_field(category))


@dataclass
class StudyInfo:
    """Program the portal reports for the current user. major may be absent."""

    bachelor: str
    major: Optional[str] = None
