"""
Persistent local state.

This module manages three JSON files inside the data directory:

    module_edits.json   user overrides and manually added modules
    settings.json       user overrides of semester / bachelor / major
    local_data.json     snapshot of the last successful portal fetch

Design rationale:
- the portal delivers the authoritative module list on every fetch
- module_edits.json stores only the user's personal changes

This separation keeps edits alive across repeated fetches; they are simply
re-applied on every merge.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from studyprogress.errors import InvalidEditError
from studyprogress.model import (
    EDITABLE_FIELDS,
    Module,
    ModuleEdit,
    ModuleState,
    ModuleType,
    Semester,
    parse_semester,
)

log = logging.getLogger(__name__)

_LOAD_ERRORS = (OSError, json.JSONDecodeError, UnicodeDecodeError, AttributeError, TypeError, ValueError, KeyError)


def _read_json(path: Path) -> Any:
    """
    Read a JSON file, returning None if it does not exist.

    Decoding errors propagate; callers decide how defensive to be.
    """
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


# ---------------------------------------------------------------------------
# Edit values
# ---------------------------------------------------------------------------


def _parse_enum(enum_cls: type, name: str, value: Any) -> Any:
    # Accepts a member, its name/value, or an index into the member list
    # (the order editors present them in).
    if isinstance(value, enum_cls):
        return value
    members = list(enum_cls)
    if isinstance(value, bool):
        raise InvalidEditError(name, value, "not a valid choice")
    if isinstance(value, int):
        if 0 <= value < len(members):
            return members[value]
        raise InvalidEditError(name, value, f"index out of range 0..{len(members) - 1}")
    if isinstance(value, str):
        key = value.strip().upper()
        for m in members:
            if m.name == key or m.value == key:
                return m
    raise InvalidEditError(name, value, f"expected one of {', '.join(m.name for m in members)}")


def _parse_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidEditError(name, value, "not a number")
    try:
        number = float(value)
    except ValueError as exc:
        raise InvalidEditError(name, value, "not a number") from exc
    if math.isnan(number) or math.isinf(number):
        raise InvalidEditError(name, value, "not a finite number")
    return int(number) if number.is_integer() else number


def _parse_text(name: str, value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise InvalidEditError(name, value, "must not be empty")
    return text


def normalize_edit(partial: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and convert one partial edit.

    Returns a new dict with typed values. Raises InvalidEditError on the first
    invalid field, so callers never see a half-converted edit.
    """
    out: Dict[str, Any] = {}
    for name, value in partial.items():
        if name not in EDITABLE_FIELDS:
            raise InvalidEditError(name, value, "unknown field")

        if name in ("full_id", "short_name"):
            out[name] = _parse_text(name, value)
        elif name == "state":
            out[name] = _parse_enum(ModuleState, name, value)
        elif name == "type":
            out[name] = _parse_enum(ModuleType, name, value)
        elif name == "semester":
            try:
                out[name] = parse_semester(value)
            except ValueError as exc:
                raise InvalidEditError(name, value, "not a semester") from exc
        elif name == "ects":
            ects = _parse_number(name, value)
            if ects < 0:
                raise InvalidEditError(name, value, "must not be negative")
            out[name] = ects
        elif name == "grade":
            out[name] = None if value is None else _parse_number(name, value)
    return out


def _encode_value(value: Any) -> Any:
    if isinstance(value, Semester):
        return value.to_dict()
    if isinstance(value, (ModuleState, ModuleType)):
        return value.name
    return value


def _encode_edit(edit: ModuleEdit) -> Dict[str, Any]:
    return {
        "full_id": edit.full_id,
        "edits": {k: _encode_value(v) for k, v in edit.edits.items()},
    }


# ---------------------------------------------------------------------------
# Edit store
# ---------------------------------------------------------------------------


class EditStore:
    """
    User-authored overrides and additions keyed by full_id.

    Every mutation writes the whole store to disk before returning and then
    notifies subscribers. Without a path the store only lives in memory.
    """

    def __init__(self, path: str | Path | None = None, edits: Optional[Dict[str, ModuleEdit]] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._edits: Dict[str, ModuleEdit] = dict(edits or {})
        self._observers: List[Callable[[str], None]] = []

    @classmethod
    def load(cls, path: str | Path) -> "EditStore":
        """
        Load the store from module_edits.json.

        A missing file yields an empty store. Broken entries are skipped and
        logged; a broken file yields an empty store instead of a crash.
        """
        store_path = Path(path)
        try:
            data = _read_json(store_path)
        except _LOAD_ERRORS as exc:
            log.warning("Ignoring unreadable edit store %s: %s", store_path, exc)
            return cls(store_path)

        if data is None:
            return cls(store_path)

        raw_edits = data.get("module_edits", {}) if isinstance(data, dict) else {}
        if not isinstance(raw_edits, dict):
            log.warning("Ignoring malformed edit store %s", store_path)
            return cls(store_path)

        edits: Dict[str, ModuleEdit] = {}
        for key, raw in raw_edits.items():
            try:
                values = normalize_edit(raw.get("edits", {}))
            except (InvalidEditError, AttributeError) as exc:
                log.warning("Skipping stored edit for %s: %s", key, exc)
                continue
            edits[str(key)] = ModuleEdit(full_id=str(key), edits=values)

        log.debug("Loaded %d module edits from %s", len(edits), store_path)
        return cls(store_path, edits)

    def _persist(self, edits: Dict[str, ModuleEdit]) -> None:
        if self.path is None:
            return
        payload = {"module_edits": {k: _encode_edit(e) for k, e in edits.items()}}
        _write_json(self.path, payload)

    def subscribe(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """
        Register callback(full_id), called after every mutation.

        Returns a function that removes the subscription again.
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _commit(self, full_id: str, edits: Dict[str, ModuleEdit]) -> None:
        # Written to disk first: if that fails (OSError) memory stays untouched
        self._persist(edits)
        self._edits = edits
        for callback in list(self._observers):
            callback(full_id)

    def get_edit(self, full_id: str) -> Optional[ModuleEdit]:
        return self._edits.get(full_id)

    def set_edit(self, full_id: str, partial: Dict[str, Any]) -> ModuleEdit:
        """
        Merge `partial` into the edit for full_id, creating it if needed.

        Fields missing from `partial` keep their previous value.
        Raises InvalidEditError if any value is invalid and OSError if the
        store cannot be written; in both cases the store is unchanged.
        """
        values = normalize_edit(partial)
        if values.get("full_id", full_id) != full_id:
            raise InvalidEditError("full_id", values["full_id"], f"does not match the edit key {full_id!r}")

        previous = self._edits.get(full_id)
        merged = dict(previous.edits) if previous is not None else {}
        merged.update(values)

        edit = ModuleEdit(full_id=full_id, edits=merged)
        self._commit(full_id, {**self._edits, full_id: edit})
        log.debug("Edit for %s is now %s", full_id, merged)
        return edit

    def delete_edit(self, full_id: str) -> bool:
        """Remove the edit (patch or manual addition). Returns False if there was none."""
        if full_id not in self._edits:
            return False
        self._commit(full_id, {k: e for k, e in self._edits.items() if k != full_id})
        log.debug("Deleted edit for %s", full_id)
        return True

    def edits(self) -> List[ModuleEdit]:
        return list(self._edits.values())

    def __iter__(self) -> Iterator[ModuleEdit]:
        return iter(self.edits())

    def __len__(self) -> int:
        return len(self._edits)

    def __contains__(self, full_id: object) -> bool:
        return full_id in self._edits


# ---------------------------------------------------------------------------
# User settings
# ---------------------------------------------------------------------------


@dataclass
class UserSettings:
    """
    Manual overrides of the detected study context. None means "automatic".
    """

    semester: Optional[Semester] = None
    bachelor: Optional[str] = None
    major: Optional[str] = None


def load_settings(path: str | Path) -> UserSettings:
    """Load settings.json. Missing or invalid files give all-automatic settings."""
    settings_path = Path(path)
    try:
        data = _read_json(settings_path)
        if not isinstance(data, dict):
            return UserSettings()
        raw_semester = data.get("semester")
        return UserSettings(
            semester=parse_semester(raw_semester) if raw_semester is not None else None,
            bachelor=data.get("bachelor") or None,
            major=data.get("major") or None,
        )
    except _LOAD_ERRORS as exc:
        log.warning("Ignoring unreadable settings %s: %s", settings_path, exc)
        return UserSettings()


def save_settings(settings: UserSettings, path: str | Path) -> None:
    payload = {
        "semester": settings.semester.to_dict() if settings.semester is not None else None,
        "bachelor": settings.bachelor,
        "major": settings.major,
    }
    _write_json(Path(path), payload)


def update_semester(path: str | Path, semester: Optional[Semester]) -> UserSettings:
    settings = load_settings(path)
    settings.semester = semester
    save_settings(settings, path)
    return settings


def update_bachelor(path: str | Path, bachelor: Optional[str]) -> UserSettings:
    settings = load_settings(path)
    settings.bachelor = bachelor
    save_settings(settings, path)
    return settings


def update_major(path: str | Path, major: Optional[str]) -> UserSettings:
    settings = load_settings(path)
    settings.major = major
    save_settings(settings, path)
    return settings


# ---------------------------------------------------------------------------
# Local snapshot of the last fetch
# ---------------------------------------------------------------------------


@dataclass
class LocalData:
    """
    What the portal returned last time. modules=None means "never fetched",
    which is different from an empty module list.
    """

    modules: Optional[List[Module]] = None
    bachelor: Optional[str] = None
    major: Optional[str] = None
    fetched_at: Optional[str] = None


def module_to_dict(module: Module) -> Dict[str, Any]:
    return {
        "full_id": module.full_id,
        "short_name": module.short_name,
        "semester": module.semester.to_dict(),
        "state": module.state.name,
        "type": module.type.name,
        "ects": module.ects,
        "grade": module.grade,
    }


def module_from_dict(raw: Dict[str, Any]) -> Module:
    values = normalize_edit(raw)
    missing = {"full_id", "short_name", "semester", "state", "type", "ects"} - set(values)
    if missing:
        raise ValueError(f"Module record is missing {', '.join(sorted(missing))}")
    return Module(
        full_id=values["full_id"],
        short_name=values["short_name"],
        semester=values["semester"],
        state=values["state"],
        type=values["type"],
        ects=values["ects"],
        grade=values.get("grade"),
    )


def load_local_data(path: str | Path) -> LocalData:
    data_path = Path(path)
    try:
        data = _read_json(data_path)
        if not isinstance(data, dict):
            return LocalData()
        raw_modules = data.get("modules")
        modules = None
        if isinstance(raw_modules, list):
            modules = [module_from_dict(m) for m in raw_modules]
        return LocalData(
            modules=modules,
            bachelor=data.get("bachelor"),
            major=data.get("major"),
            fetched_at=data.get("fetched_at"),
        )
    except _LOAD_ERRORS as exc:
        log.warning("Ignoring unreadable local data %s: %s", data_path, exc)
        return LocalData()


def save_local_data(local: LocalData, path: str | Path) -> None:
    payload = {
        "modules": [module_to_dict(m) for m in local.modules] if local.modules is not None else None,
        "bachelor": local.bachelor,
        "major": local.major,
        "fetched_at": local.fetched_at or datetime.now().isoformat(timespec="seconds"),
    }
    _write_json(Path(path), payload)
