"""
Exception types shared across the project.

Only real failures end up here. An unclassifiable module is not an error,
it simply counts toward no category.
"""

from __future__ import annotations


class StudyProgressError(Exception):
    """Base class for all errors raised by studyprogress."""


class InvalidEditError(StudyProgressError, ValueError):
    """A value submitted for a module edit cannot be applied."""

    def __init__(self, field: str, value: object, reason: str) -> None:
        super().__init__(f"Invalid value for {field!r}: {value!r} ({reason})")
        self.field = field
        self.value = value
        self.reason = reason


class CurriculumError(StudyProgressError):
    """The curriculum configuration is missing or malformed."""


class PortalError(StudyProgressError):
    """The study portal could not be reached or returned unusable data."""
