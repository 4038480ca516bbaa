"""
CSV export of the module table.

One row per effective module, with the category as it is classified in the
current context. The file opens directly in LibreOffice / Excel.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Callable, Iterable, Optional

from studyprogress.model import Module, ModuleType, format_semester

HEADER = ["id", "module", "semester", "state", "type", "ects", "grade", "manual"]


def export_modules_to_csv(
    modules: Iterable[Module],
    out_path: str | Path,
    classify_fn: Callable[[Module], Optional[ModuleType]],
    is_manual_fn: Callable[[str], bool] = lambda full_id: False,
) -> int:
    """
    Export modules to a CSV file. Returns number of exported rows.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with out.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(HEADER)
        for m in modules:
            category = classify_fn(m)
            writer.writerow(
                [
                    m.full_id,
                    m.short_name,
                    format_semester(m.semester),
                    m.state.name,
                    category.name if category is not None else "",
                    m.ects,
                    "" if m.grade is None else m.grade,
                    "yes" if is_manual_fn(m.full_id) else "",
                ]
            )
            count += 1

    return count
