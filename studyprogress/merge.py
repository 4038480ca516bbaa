"""
Merging portal modules with local edits.

Rules:
- a patch edit overrides only the fields it contains
- a manual addition (edit with its own full_id) becomes a module of its own
- a manual addition whose id also comes from the portal is applied as a patch,
  so no id ever shows up twice
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List

from studyprogress.model import Module, ModuleEdit, ModuleState, ModuleType, Semester

log = logging.getLogger(__name__)


def apply_edit(module: Module, edit: ModuleEdit) -> Module:
    """
    Return a copy of `module` with the edit's fields applied.

    The identity never changes: a full_id inside the edit is ignored here.
    """
    changes = {k: v for k, v in edit.edits.items() if k != "full_id"}
    return replace(module, **changes)


def module_from_edit(edit: ModuleEdit, default_semester: Semester) -> Module:
    """
    Build a module for a manual addition. Missing fields get defaults.
    """
    values = edit.edits
    return Module(
        full_id=edit.full_id,
        short_name=values.get("short_name", edit.full_id),
        semester=values.get("semester", default_semester),
        state=values.get("state", ModuleState.ONGOING),
        type=values.get("type", ModuleType.AUTO),
        ects=values.get("ects", 0),
        grade=values.get("grade"),
    )


def merge_modules(
    api_modules: Iterable[Module],
    edits: Iterable[ModuleEdit],
    default_semester: Semester,
) -> List[Module]:
    """
    Combine the authoritative module list with all local edits.

    Output order: portal modules in their original order, then manual
    additions in store order. The result only depends on the inputs,
    so merging twice gives the same list.
    """
    edit_by_id = {e.full_id: e for e in edits}

    out: List[Module] = []
    seen: set[str] = set()

    for module in api_modules:
        if module.full_id in seen:
            log.warning("Portal returned %s twice, keeping the first entry", module.full_id)
            continue
        seen.add(module.full_id)

        edit = edit_by_id.get(module.full_id)
        if edit is None:
            out.append(module)
            continue
        if edit.is_manual:
            log.warning("Manual module %s also exists on the portal, treating it as an edit", module.full_id)
        out.append(apply_edit(module, edit))

    for edit in edit_by_id.values():
        if not edit.is_manual or edit.full_id in seen:
            continue
        seen.add(edit.full_id)
        out.append(module_from_edit(edit, default_semester))

    return out
