"""
Shared fixtures for the test modules.
"""

from __future__ import annotations

from typing import Any, Optional

from studyprogress.classify import curriculum_from_dict
from studyprogress.model import Module, ModuleState, ModuleType, Semester, SemesterPart

WS23 = Semester(SemesterPart.WINTER, 2023)
SS24 = Semester(SemesterPart.SUMMER, 2024)
WS24 = Semester(SemesterPart.WINTER, 2024)

CURRICULUM_DATA: dict[str, Any] = {
    "programs": {
        "CS": {
            "name": "Computer Science",
            "majors": {"AI": "Artificial Intelligence", "SE": "Software Engineering"},
            "requirements": {"core": 30, "project": 10, "major": 20, "extension": 20, "total": 180},
        },
    },
    "rules": [
        {"modules": ["CS1*"], "category": "CORE", "bachelors": ["CS"]},
        {"modules": ["PRJ*"], "category": "PROJECT"},
        {"modules": ["AI*"], "category": "MAJOR", "majors": ["AI"]},
        {"modules": ["AI*", "SE*"], "category": "EXTENSION", "bachelors": ["CS"]},
        {"modules": ["OLD*"], "category": "MISC", "in_force_until": "SUMMER 2024"},
        {"modules": ["SK*"], "category": "MISC", "taken_from": "WINTER 2023"},
    ],
}


def make_curriculum():
    return curriculum_from_dict(CURRICULUM_DATA)


def make_module(
    full_id: str,
    ects: float = 6,
    state: ModuleState = ModuleState.DONE,
    type: ModuleType = ModuleType.AUTO,
    grade: Optional[float] = None,
    semester: Semester = WS23,
    short_name: Optional[str] = None,
) -> Module:
    return Module(
        full_id=full_id,
        short_name=short_name or f"Module {full_id}",
        semester=semester,
        state=state,
        type=type,
        ects=ects,
        grade=grade,
    )
