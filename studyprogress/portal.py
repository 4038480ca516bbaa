"""
Study portal access (HTTP + HTML -> Module objects).

- Downloads the transcript page and the study info page
- Extracts one Module per transcript table row
- Extracts bachelor / major from the study info key-value table

Everything here may fail; failures are raised as PortalError so callers can
tell "no data" apart from "no modules".
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from studyprogress.errors import PortalError
from studyprogress.model import Module, ModuleState, ModuleType, StudyInfo, parse_semester

log = logging.getLogger(__name__)

TRANSCRIPT_PATH = "transcript"
STUDY_INFO_PATH = "study-info"

# Portal status texts -> ModuleState
_STATE_TEXTS: Dict[str, ModuleState] = {
    "passed": ModuleState.DONE,
    "bestanden": ModuleState.DONE,
    "credited": ModuleState.CREDITED,
    "anerkannt": ModuleState.CREDITED,
    "enrolled": ModuleState.ONGOING,
    "angemeldet": ModuleState.ONGOING,
    "credit pending": ModuleState.CREDIT_PENDING,
    "anerkennung beantragt": ModuleState.CREDIT_PENDING,
    "failed": ModuleState.FAILED,
    "nicht bestanden": ModuleState.FAILED,
}

_COLUMNS = {
    "id": "full_id",
    "module": "short_name",
    "semester": "semester",
    "state": "state",
    "ects": "ects",
    "grade": "grade",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _number(text: str, strict: bool = False) -> Optional[float]:
    """
    Parse '6', '1,7' or '2.3'. Empty cells and dashes give None.

    Other text gives None too, unless strict is set: then it raises ValueError.
    Grade cells of pass/fail modules hold words like "passed", ECTS cells never do.
    """
    cleaned = text.strip().replace(",", ".")
    if not cleaned or cleaned in ("-", "–"):
        return None
    try:
        value = float(cleaned)
    except ValueError:
        if strict:
            raise ValueError(f"not a number: {text!r}") from None
        return None
    return int(value) if value.is_integer() else value


def _parse_state(text: str) -> ModuleState:
    key = re.sub(r"\s+", " ", text.strip().lower())
    try:
        return _STATE_TEXTS[key]
    except KeyError:
        raise PortalError(f"Unknown module state: {text!r}") from None


def _extract_kv_table(soup: BeautifulSoup) -> Dict[str, str]:
    """
    Extracts key-value pairs from the study info table.
    """
    data: Dict[str, str] = {}

    table = soup.select_one("table.study-info")
    if not table:
        return data

    for row in table.select("tr"):
        cells = row.find_all(["th", "td"])
        # Only rows with exactly two cells are relevant
        if len(cells) != 2:
            continue
        key = cells[0].get_text(strip=True).rstrip(":")
        data[key] = cells[1].get_text(" ", strip=True)

    return data


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_module_row(cells: List[str], columns: Dict[str, int]) -> Optional[Module]:
    """
    Turn one transcript row into a Module.

    Rows without an id are skipped (None). Unknown states, semesters or
    unreadable ECTS values raise PortalError, because silently dropping a
    module would distort the totals.
    """

    def cell(field: str) -> str:
        index = columns.get(field)
        if index is None or index >= len(cells):
            return ""
        return cells[index].strip()

    full_id = cell("full_id")
    if not full_id:
        return None

    try:
        semester = parse_semester(cell("semester"))
    except ValueError as exc:
        raise PortalError(f"{full_id}: {exc}") from exc

    try:
        ects = _number(cell("ects"), strict=True)
    except ValueError as exc:
        raise PortalError(f"{full_id}: ECTS {exc}") from exc

    return Module(
        full_id=full_id,
        short_name=cell("short_name") or full_id,
        semester=semester,
        state=_parse_state(cell("state")),
        # the transcript carries no category, the curriculum decides
        type=ModuleType.AUTO,
        ects=ects if ects is not None else 0,
        grade=_number(cell("grade")),
    )


def parse_modules_html(html: str) -> List[Module]:
    """
    Parse the transcript page into modules.

    The table is found via its "modules" class; columns are mapped by their
    header text, so column order on the page does not matter.
    """
    soup = BeautifulSoup(html, "html.parser")
    table = soup.select_one("table.modules")
    if table is None:
        raise PortalError("Transcript table not found")

    header = table.select_one("thead tr") or table.select_one("tr")
    if header is None:
        raise PortalError("Transcript table has no header")

    columns: Dict[str, int] = {}
    for i, th in enumerate(header.find_all(["th", "td"])):
        field = _COLUMNS.get(th.get_text(strip=True).lower())
        if field:
            columns[field] = i

    if "full_id" not in columns or "state" not in columns:
        raise PortalError("Transcript table lacks the ID or State column")

    modules: List[Module] = []
    for row in table.select("tr"):
        if row is header:
            continue
        cells = [td.get_text(" ", strip=True) for td in row.find_all("td")]
        if not cells:
            continue
        module = parse_module_row(cells, columns)
        if module is not None:
            modules.append(module)

    return modules


def parse_study_info_html(html: str) -> StudyInfo:
    soup = BeautifulSoup(html, "html.parser")
    kv = _extract_kv_table(soup)

    bachelor = kv.get("Bachelor", "").strip()
    if not bachelor:
        raise PortalError("Study info page does not name a bachelor program")

    major = kv.get("Major", "").strip() or None
    return StudyInfo(bachelor=bachelor, major=major)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def create_session(session_cookie: Optional[str] = None) -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = "studyprogress"
    if session_cookie:
        session.headers["Cookie"] = session_cookie
    return session


def _get(session: requests.Session, base_url: str, path: str, timeout: float) -> str:
    url = urljoin(base_url.rstrip("/") + "/", path)
    log.debug("GET %s", url)
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise PortalError(f"Request to {url} failed: {exc}") from exc
    return resp.text


def fetch_modules(session: requests.Session, base_url: str, timeout: float = 30) -> List[Module]:
    modules = parse_modules_html(_get(session, base_url, TRANSCRIPT_PATH, timeout))
    log.info("Fetched %d modules", len(modules))
    return modules


def get_study_info(session: requests.Session, base_url: str, timeout: float = 30) -> StudyInfo:
    return parse_study_info_html(_get(session, base_url, STUDY_INFO_PATH, timeout))
