"""
Overview: the explicit context object behind every view.

It owns the authoritative module list, the edit store handle, the curriculum
and the active study context, and caches everything derived from them.

Cache invalidation:
- effective modules: on set_modules() and on every edit store mutation
- effective modules and statistics: on set_context() as well
- average grade: together with the effective modules
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional

from studyprogress.classify import Curriculum, classify
from studyprogress.errors import InvalidEditError
from studyprogress.merge import merge_modules
from studyprogress.model import (
    CreditStatistics,
    Module,
    ModuleEdit,
    ModuleType,
    Semester,
    StudyInfo,
    semester_from_date,
)
from studyprogress.statistics import average_grade, credit_statistics
from studyprogress.storage import EditStore, UserSettings

log = logging.getLogger(__name__)

_UNSET = object()


@dataclass(frozen=True)
class StudyContext:
    semester: Semester
    bachelor: Optional[str]
    major: Optional[str] = None


def resolve_context(
    settings: UserSettings,
    study_info: Optional[StudyInfo],
    today: Optional[date] = None,
) -> StudyContext:
    """
    Combine user overrides with the detected study info.

    A value set in the settings always wins; the semester falls back to the
    semester containing `today`.
    """
    semester = settings.semester or semester_from_date(today or date.today())
    bachelor = settings.bachelor or (study_info.bachelor if study_info else None)
    major = settings.major or (study_info.major if study_info else None)
    return StudyContext(semester=semester, bachelor=bachelor, major=major)


class Overview:
    def __init__(
        self,
        store: EditStore,
        curriculum: Curriculum,
        context: StudyContext,
        modules: Optional[List[Module]] = None,
    ) -> None:
        self.store = store
        self.curriculum = curriculum
        self._context = context
        self._api_modules = list(modules) if modules is not None else None

        self._effective: Any = _UNSET
        self._statistics: Any = _UNSET
        self._average: Any = _UNSET

        store.subscribe(self._on_edit)

    # -- inputs --------------------------------------------------------------

    @property
    def context(self) -> StudyContext:
        return self._context

    def set_context(self, context: StudyContext) -> None:
        if context == self._context:
            return
        self._context = context
        # manual additions without a semester default to the context semester
        self._invalidate()

    def set_modules(self, modules: Optional[List[Module]]) -> None:
        """Replace the authoritative list. None means no data is available."""
        self._api_modules = list(modules) if modules is not None else None
        self._invalidate()

    def _on_edit(self, full_id: str) -> None:
        self._invalidate()

    def _invalidate(self) -> None:
        self._effective = _UNSET
        self._statistics = _UNSET
        self._average = _UNSET

    # -- derived values ------------------------------------------------------

    @property
    def available(self) -> bool:
        return self._api_modules is not None

    def modules(self) -> Optional[List[Module]]:
        """Effective module list, or None while no portal data is available."""
        if self._effective is _UNSET:
            if self._api_modules is None:
                self._effective = None
            else:
                self._effective = merge_modules(
                    self._api_modules, self.store.edits(), self._context.semester
                )
        return self._effective

    def statistics(self) -> Optional[CreditStatistics]:
        if self._statistics is _UNSET:
            modules = self.modules()
            if modules is None:
                self._statistics = None
            else:
                ctx = self._context
                self._statistics = credit_statistics(
                    modules, ctx.semester, ctx.bachelor, ctx.major, self.curriculum
                )
        return self._statistics

    def average_grade(self) -> Optional[float]:
        if self._average is _UNSET:
            modules = self.modules()
            self._average = average_grade(modules) if modules is not None else None
        return self._average

    def classify(self, module: Module) -> Optional[ModuleType]:
        ctx = self._context
        return classify(ctx.semester, module, ctx.bachelor, ctx.major, self.curriculum)

    def find(self, full_id: str) -> Optional[Module]:
        for module in self.modules() or []:
            if module.full_id == full_id:
                return module
        return None

    # -- edits ---------------------------------------------------------------

    def get_edit(self, full_id: str) -> Optional[ModuleEdit]:
        return self.store.get_edit(full_id)

    def has_edit(self, full_id: str) -> bool:
        return full_id in self.store

    def is_manual(self, full_id: str) -> bool:
        edit = self.store.get_edit(full_id)
        return edit is not None and edit.is_manual

    def edit_module(self, full_id: str, **fields: Any) -> bool:
        """
        Override fields of an existing module.

        Returns False (and changes nothing) if the module is unknown, any
        value is invalid or the edits cannot be saved.
        """
        if not fields:
            return False
        if "full_id" in fields:
            log.error("The id of %s cannot be edited", full_id)
            return False
        if self.find(full_id) is None:
            log.error("Unknown module: %s", full_id)
            return False
        return self._set_edit(full_id, fields)

    def add_manual_module(self, full_id: str, **fields: Any) -> bool:
        """
        Add a module that the portal does not know about.

        Refused if a module with this id already exists.
        """
        full_id = full_id.strip()
        if not full_id:
            log.error("A manual module needs an id")
            return False
        if self.find(full_id) is not None or full_id in self.store:
            log.error("Module %s already exists", full_id)
            return False
        return self._set_edit(full_id, {**fields, "full_id": full_id})

    def delete_edit(self, full_id: str) -> bool:
        """Remove the local edit. False if there was none or it could not be saved."""
        try:
            return self.store.delete_edit(full_id)
        except OSError as exc:
            log.error("Could not save edits after deleting %s: %s", full_id, exc)
            return False

    def _set_edit(self, full_id: str, fields: dict[str, Any]) -> bool:
        try:
            self.store.set_edit(full_id, fields)
        except InvalidEditError as exc:
            log.error("Rejected edit for %s: %s", full_id, exc)
            return False
        except OSError as exc:
            log.error("Could not save edit for %s: %s", full_id, exc)
            return False
        return True

