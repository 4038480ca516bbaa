"""
CLI (Command Line Interface).

This module provides the terminal commands, e.g.:

    studyprogress fetch
    studyprogress overview
    studyprogress modules
    studyprogress edit <module_id> --ects 8
    studyprogress add <module_id> --name "Seminar" --ects 5 --state ONGOING --type PROJECT
    studyprogress reset <module_id>
    studyprogress settings --semester "WINTER 2024" --major auto
    studyprogress export <file.csv>

Note:
- fetch is the only command that talks to the portal; every other command
  works on the snapshot stored by the last successful fetch
- edits are stored separately and survive every fetch
"""

from __future__ import annotations

import argparse
import logging
from datetime import date
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from studyprogress.classify import Curriculum, load_curriculum
from studyprogress.config import Settings, get_settings
from studyprogress.errors import CurriculumError, PortalError
from studyprogress.export_csv import export_modules_to_csv
from studyprogress.logger import setup_logging
from studyprogress.model import (
    CATEGORIES,
    ModuleState,
    ModuleType,
    Semester,
    StudyInfo,
    format_semester,
    parse_semester,
    semester_from_date,
    semester_range,
)
from studyprogress.overview import Overview, resolve_context
from studyprogress.portal import create_session, fetch_modules, get_study_info
from studyprogress.statistics import requirement_progress
from studyprogress.storage import (
    EditStore,
    LocalData,
    load_local_data,
    load_settings,
    save_local_data,
    update_bachelor,
    update_major,
    update_semester,
)

log = logging.getLogger(__name__)
console = Console()

AUTO = "auto"

# how far back the settings listing offers semesters when nothing was fetched
SEMESTER_YEARS_BACK = 4


def _build_overview(cfg: Settings, curriculum: Curriculum, today: Optional[date] = None) -> Overview:
    """
    Load edits, settings and the last portal snapshot into one Overview.
    """
    local = load_local_data(cfg.local_data_path)
    user_settings = load_settings(cfg.settings_path)

    study_info = StudyInfo(local.bachelor, local.major) if local.bachelor else None
    context = resolve_context(user_settings, study_info, today)

    store = EditStore.load(cfg.edits_path)
    return Overview(store, curriculum, context, local.modules)


def _no_data() -> int:
    console.print("No module data available yet. Run 'studyprogress fetch' first.")
    return 1


def _fmt_number(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _cmd_fetch(args: argparse.Namespace, cfg: Settings) -> int:
    """
    Download modules and study info and store them as the new snapshot.

    A failed fetch keeps the previous snapshot untouched.
    """
    session = create_session(cfg.session_cookie)
    try:
        with console.status("Fetching modules from the portal..."):
            modules = fetch_modules(session, cfg.portal_url, timeout=cfg.request_timeout)
            info = get_study_info(session, cfg.portal_url, timeout=cfg.request_timeout)
    except PortalError as exc:
        log.error("Fetch failed: %s", exc)
        console.print("Fetch failed, keeping the previous data.")
        return 1

    save_local_data(LocalData(modules=modules, bachelor=info.bachelor, major=info.major), cfg.local_data_path)
    console.print(f"Fetched {len(modules)} modules ({info.bachelor}{' / ' + info.major if info.major else ''}).")
    return 0


def _cmd_overview(args: argparse.Namespace, overview: Overview) -> int:
    """
    Print the requirements table (ongoing + completed) and the average grade.
    """
    ctx = overview.context
    stats = overview.statistics()
    if stats is None:
        return _no_data()
    if ctx.bachelor is None:
        console.print("Bachelor program unknown. Set it with 'studyprogress settings --bachelor <id>'.")
        return 1

    try:
        program = overview.curriculum.program(ctx.bachelor)
    except CurriculumError as exc:
        console.print(str(exc))
        return 1

    major_name = program.majors.get(ctx.major, ctx.major) if ctx.major else "none"
    console.print(f"[bold]{program.name}[/] | major: {major_name} | semester: {format_semester(ctx.semester)}")

    table = Table(title="Requirements", box=box.SIMPLE)
    table.add_column("")
    for category in CATEGORIES:
        table.add_column(category.name.capitalize(), justify="right")
    table.add_column("Total", justify="right")

    for label, credits in (("Ongoing", stats.ongoing), ("Completed", stats.done)):
        cells = [label]
        for row in requirement_progress(credits, program.requirement):
            if row.required is None:
                cells.append("not needed")
                continue
            text = f"{_fmt_number(row.value)}/{_fmt_number(row.required)}"
            cells.append(f"[green]{text}[/]" if row.fulfilled else text)
        table.add_row(*cells)
    console.print(table)

    avg = overview.average_grade()
    console.print(f"[bold]Average grade:[/] {avg:.2f}" if avg is not None else "[bold]Average grade:[/] no grades yet")
    return 0


def _cmd_modules(args: argparse.Namespace, overview: Overview) -> int:
    modules = overview.modules()
    if modules is None:
        return _no_data()

    rows = sorted(modules, key=lambda m: (m.semester, m.short_name))
    if args.semester:
        try:
            wanted = parse_semester(args.semester)
        except ValueError:
            console.print(f"Invalid semester: {args.semester!r} (expected e.g. 'WINTER 2024')")
            return 1
        rows = [m for m in rows if m.semester == wanted]

    table = Table(title=f"Modules ({len(rows)})", box=box.SIMPLE)
    for col in ("ID", "Module", "Semester", "State", "Type", "ECTS", "Grade", ""):
        table.add_column(col)

    for m in rows:
        category = overview.classify(m)
        if overview.is_manual(m.full_id):
            marker = "[magenta]manual[/]"
        elif overview.has_edit(m.full_id):
            marker = "[yellow]edited[/]"
        else:
            marker = ""
        table.add_row(
            f"[bold cyan]{m.full_id}[/]",
            m.short_name,
            format_semester(m.semester),
            m.state.name,
            category.name if category is not None else "",
            _fmt_number(m.ects),
            _fmt_number(m.grade),
            marker,
        )
    console.print(table)
    return 0


def _edit_fields(args: argparse.Namespace) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for name, attr in (("short_name", "name"), ("semester", "semester"), ("state", "state"), ("type", "type"), ("ects", "ects")):
        value = getattr(args, attr, None)
        if value is not None:
            fields[name] = value
    if args.grade is not None:
        fields["grade"] = None if args.grade.strip().lower() == "none" else args.grade
    return fields


def _cmd_edit(args: argparse.Namespace, overview: Overview) -> int:
    if overview.modules() is None:
        return _no_data()
    fields = _edit_fields(args)
    if not fields:
        console.print("Nothing to change. Use --state, --type, --ects, --grade, --name or --semester.")
        return 1
    if not overview.edit_module(args.module_id, **fields):
        console.print(f"Edit rejected for {args.module_id}.")
        return 1
    console.print(f"Updated: {args.module_id}")
    return 0


def _cmd_add(args: argparse.Namespace, overview: Overview) -> int:
    if overview.modules() is None:
        return _no_data()
    if not overview.add_manual_module(args.module_id, **_edit_fields(args)):
        console.print(f"Could not add {args.module_id}.")
        return 1
    console.print(f"Added: {args.module_id}")
    return 0


def _cmd_reset(args: argparse.Namespace, overview: Overview) -> int:
    """
    Remove the local edit for a module. For manual modules this removes the module.
    """
    manual = overview.is_manual(args.module_id)
    if not overview.delete_edit(args.module_id):
        console.print(f"No local changes for: {args.module_id}")
        return 0
    console.print(f"{'Removed module' if manual else 'Reset edits of'}: {args.module_id}")
    return 0


def _settings_choices(cfg: Settings, curriculum: Curriculum, bachelor: Optional[str], today: Optional[date]) -> None:
    """
    Print what the settings options accept: programs, majors of the
    effective bachelor and the selectable semesters.
    """
    console.print("[bold]Programs:[/]")
    for program_id, program in sorted(curriculum.programs.items()):
        console.print(f"  {program_id}: {program.name}")

    if bachelor in curriculum.programs:
        majors = curriculum.majors(bachelor)
        console.print(f"[bold]Majors ({bachelor}):[/]")
        for major_id, name in sorted(majors.items()):
            console.print(f"  {major_id}: {name}")
        if not majors:
            console.print("  none")

    # from the first fetched semester (or a few years back) up to the next one
    last = semester_from_date(today or date.today()).next()
    taken = [m.semester for m in load_local_data(cfg.local_data_path).modules or []]
    first = min(taken) if taken else Semester(last.part, last.year - SEMESTER_YEARS_BACK)
    semesters = ", ".join(format_semester(s) for s in semester_range(first, last))
    console.print(f"[bold]Semesters:[/] {semesters}", soft_wrap=True)


def _cmd_settings(
    args: argparse.Namespace, cfg: Settings, curriculum: Curriculum, today: Optional[date] = None
) -> int:
    """
    Show or change the manual overrides. 'auto' clears an override.

    Everything is validated before anything is written, so a rejected
    option leaves settings.json untouched.
    """
    settings = load_settings(cfg.settings_path)
    detected = load_local_data(cfg.local_data_path)

    semester: Optional[Semester] = None
    if args.semester is not None and args.semester.strip().lower() != AUTO:
        try:
            semester = parse_semester(args.semester)
        except ValueError:
            console.print(f"Invalid semester: {args.semester!r} (expected e.g. 'WINTER 2024')")
            return 1

    bachelor: Optional[str] = None
    if args.bachelor is not None and args.bachelor.strip().lower() != AUTO:
        bachelor = args.bachelor.strip()
        if bachelor not in curriculum.programs:
            console.print(f"Unknown bachelor program: {bachelor!r}. Run 'studyprogress settings' to list them.")
            return 1

    major: Optional[str] = None
    effective_bachelor = bachelor or (None if args.bachelor is not None else settings.bachelor) or detected.bachelor
    if args.major is not None and args.major.strip().lower() != AUTO:
        major = args.major.strip()
        if effective_bachelor not in curriculum.programs:
            console.print("Set a known bachelor program before choosing a major.")
            return 1
        if major not in curriculum.majors(effective_bachelor):
            console.print(f"Unknown major for {effective_bachelor}: {major!r}.")
            return 1

    if args.semester is not None:
        settings = update_semester(cfg.settings_path, semester)
    if args.bachelor is not None:
        settings = update_bachelor(cfg.settings_path, bachelor)
    if args.major is not None:
        settings = update_major(cfg.settings_path, major)

    console.print(f"Semester: {format_semester(settings.semester) if settings.semester else 'current (automatic)'}")
    console.print(f"Bachelor: {settings.bachelor or 'automatic'}")
    console.print(f"Major:    {settings.major or 'automatic'}")

    if all(v is None for v in (args.semester, args.bachelor, args.major)):
        _settings_choices(cfg, curriculum, effective_bachelor, today)
    return 0


def _cmd_export(args: argparse.Namespace, overview: Overview) -> int:
    modules = overview.modules()
    if modules is None:
        return _no_data()

    out_path = (args.out or "").strip()
    if not out_path:
        console.print("Please provide output .csv path.")
        return 1

    n = export_modules_to_csv(modules, out_path, overview.classify, overview.is_manual)
    console.print(f"Exported {n} modules to: {out_path}")
    return 0


def _add_edit_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--name", type=str, help="Display name")
    p.add_argument("--semester", type=str, help="Semester, e.g. 'WINTER 2024'")
    p.add_argument("--state", type=str, help=f"One of {', '.join(s.name for s in ModuleState)}")
    p.add_argument("--type", type=str, help=f"One of {', '.join(t.name for t in ModuleType)}")
    p.add_argument("--ects", type=str, help="Credits")
    p.add_argument("--grade", type=str, help="Grade, or 'none' to clear it")


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="studyprogress", description="Degree progress tracker")
    parser.add_argument("--data-dir", type=str, help="Directory for edits, settings and fetched data")
    parser.add_argument("--curriculum", type=str, help="Curriculum JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("fetch", help="Fetch modules and study info from the portal")
    sub.add_parser("overview", help="Show credit requirements and average grade")

    p_modules = sub.add_parser("modules", help="List modules")
    p_modules.add_argument("--semester", type=str, help="Only modules of this semester")

    p_edit = sub.add_parser("edit", help="Override fields of a module")
    p_edit.add_argument("module_id", type=str, help="Module ID")
    _add_edit_options(p_edit)

    p_add = sub.add_parser("add", help="Add a module manually")
    p_add.add_argument("module_id", type=str, help="Module ID")
    _add_edit_options(p_add)

    p_reset = sub.add_parser("reset", help="Remove local edits (or a manually added module)")
    p_reset.add_argument("module_id", type=str, help="Module ID")

    p_settings = sub.add_parser("settings", help="Show or change semester / bachelor / major")
    p_settings.add_argument("--semester", type=str, help="e.g. 'WINTER 2024', or 'auto'")
    p_settings.add_argument("--bachelor", type=str, help="Program id, or 'auto'")
    p_settings.add_argument("--major", type=str, help="Major id, or 'auto'")

    p_export = sub.add_parser("export", help="Export modules to .csv")
    p_export.add_argument("out", type=str, help="Output file path (e.g. modules.csv)")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides: dict[str, Any] = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.curriculum:
        overrides["curriculum_path"] = args.curriculum
    cfg = get_settings(**overrides)

    setup_logging("DEBUG" if args.verbose else cfg.log_level)

    if args.command == "fetch":
        raise SystemExit(_cmd_fetch(args, cfg))

    try:
        curriculum = load_curriculum(cfg.curriculum_path)
    except CurriculumError as exc:
        log.error("%s", exc)
        raise SystemExit(1)

    if args.command == "settings":
        raise SystemExit(_cmd_settings(args, cfg, curriculum))

    overview = _build_overview(cfg, curriculum)

    if args.command == "overview":
        raise SystemExit(_cmd_overview(args, overview))
    if args.command == "modules":
        raise SystemExit(_cmd_modules(args, overview))
    if args.command == "edit":
        raise SystemExit(_cmd_edit(args, overview))
    if args.command == "add":
        raise SystemExit(_cmd_add(args, overview))
    if args.command == "reset":
        raise SystemExit(_cmd_reset(args, overview))
    if args.command == "export":
        raise SystemExit(_cmd_export(args, overview))

    raise SystemExit(2)
