import io
import logging
import re
import zipfile
from datetime import date
from typing import List, Optional, Sequence

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from app.core.config import settings
from app.services.columns import StructuralError

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "JANUARY", "FEBRUARY", "MARCH", "APRIL", "MAY", "JUNE",
    "JULY", "AUGUST", "SEPTEMBER", "OCTOBER", "NOVEMBER", "DECEMBER",
]
MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def read_first_sheet(content: bytes) -> List[list]:
    """Raw cell values of the workbook's first sheet, one list per row."""
    if not content:
        raise StructuralError("Uploaded file is empty")
    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), data_only=True, read_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        logger.error("Unreadable workbook: %s", e)
        raise StructuralError(f"Could not read workbook: {e}") from e
    try:
        ws = wb.worksheets[0]
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def detect_month(rows: Sequence[Sequence], scan_rows: int = None) -> Optional[str]:
    """Find a title cell like "OCTOBER - 2025" in the first rows and return "2025-10"."""
    scan_rows = scan_rows or settings.MONTH_SCAN_ROWS
    for row in rows[:scan_rows]:
        if not row or row[0] is None:
            continue
        cell = str(row[0]).strip().upper()
        year_match = re.search(r"\d{4}", cell)
        if not year_match:
            continue
        for idx, name in enumerate(MONTH_NAMES, start=1):
            if name in cell:
                return f"{year_match.group(0)}-{idx:02d}"
    return None


def is_valid_month(value: str) -> bool:
    return bool(value) and bool(MONTH_KEY_RE.match(value))


def resolve_upload_month(explicit: Optional[str], rows: Sequence[Sequence], today: date = None) -> str:
    """Explicit value beats the detected title month, which beats the current month."""
    if explicit:
        explicit = explicit.strip()
        if not is_valid_month(explicit):
            raise ValueError(f"Invalid month '{explicit}', expected YYYY-MM")
        return explicit
    detected = detect_month(rows)
    if detected:
        return detected
    today = today or date.today()
    return today.strftime("%Y-%m")


def display_month(month: str) -> str:
    """Month key as the society titles its sheets, e.g. OCTOBER - 2025."""
    year, num = month.split("-")
    return f"{MONTH_NAMES[int(num) - 1]} - {year}"
