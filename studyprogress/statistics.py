"""
Credit aggregation and grade average.

Completion status decides the bucket:
    terminal states (DONE, CREDITED)       -> done
    pending states (ONGOING, CREDIT_PENDING) -> ongoing
    anything else (FAILED)                 -> neither

Within a bucket a module only counts if it can be classified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from studyprogress.classify import Curriculum, classify
from studyprogress.model import (
    CATEGORIES,
    PENDING_STATES,
    TERMINAL_STATES,
    BachelorRequirement,
    Credits,
    CreditStatistics,
    Module,
    ModuleType,
    Semester,
)


def credit_statistics(
    modules: Iterable[Module],
    semester: Semester,
    bachelor: Optional[str],
    major: Optional[str],
    curriculum: Curriculum,
) -> CreditStatistics:
    ongoing = Credits()
    done = Credits()

    for module in modules:
        if module.state in TERMINAL_STATES:
            bucket = done
        elif module.state in PENDING_STATES:
            bucket = ongoing
        else:
            continue

        category = classify(semester, module, bachelor, major, curriculum)
        if category is None:
            continue
        bucket.add(category, module.ects)

    return CreditStatistics(ongoing=ongoing, done=done)


def average_grade(modules: Iterable[Module]) -> Optional[float]:
    """
    Unweighted mean grade over completed, graded modules.

    Returns None (not 0) when no module qualifies.
    """
    grades = [m.grade for m in modules if m.state in TERMINAL_STATES and m.grade is not None]
    if not grades:
        return None
    return sum(grades) / len(grades)


@dataclass
class RequirementRow:
    category: Optional[ModuleType]  # None = total
    value: float
    required: Optional[float]

    @property
    def fulfilled(self) -> bool:
        return self.required is not None and self.value >= self.required


def requirement_progress(credits: Credits, requirement: BachelorRequirement) -> List[RequirementRow]:
    """
    One row per category plus the total, as shown in the requirements table.

    required is None for categories the program does not require.
    """
    rows = [RequirementRow(c, credits.get(c), requirement.required(c)) for c in CATEGORIES]
    rows.append(RequirementRow(None, credits.total_credits, requirement.total_credits))
    return rows
