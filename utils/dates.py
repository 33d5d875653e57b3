# date parsing / canonical formatting (dd/MM/yyyy HH:mm:ss)
from __future__ import annotations

import re
from datetime import datetime

CANONICAL_DATE = "%d/%m/%Y"
CANONICAL_DATETIME = "%d/%m/%Y %H:%M:%S"

_DMY = re.compile(r"^\s*(\d{1,2})[/-](\d{1,2})[/-](\d{4})\s*$")
_YMD = re.compile(r"^\s*(\d{4})[/-](\d{1,2})[/-](\d{1,2})\s*$")
_DMY_TIME = re.compile(
    r"^\s*(\d{1,2})[/-](\d{1,2})[/-](\d{4})"
    r"(?:\s+(\d{1,2})(?::(\d{1,2}))?(?::(\d{1,2}))?)?\s*$"
)
_YMD_TIME = re.compile(
    r"^\s*(\d{4})[/-](\d{1,2})[/-](\d{1,2})"
    r"(?:[\sT]+(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?\s*$"
)


def _build(year: int, month: int, day: int,
           hour: int = 0, minute: int = 0, second: int = 0) -> datetime | None:
    # datetime() rejects rolled-over components (31/02, 24:00, ...)
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def _num(s: str | None) -> int:
    return int(s) if s else 0


def normalize_date(value: str | None) -> str | None:
    """
    'd/m/yyyy', 'dd-mm-yyyy', 'yyyy-mm-dd', 'yyyy/mm/dd' -> 'dd/mm/yyyy'.
    Returns None for empty or invalid input.
    """
    raw = (value or "").strip()
    if not raw:
        return None

    m = _DMY.match(raw)
    if m:
        dt = _build(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        return dt.strftime(CANONICAL_DATE) if dt else None

    m = _YMD.match(raw)
    if m:
        dt = _build(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        return dt.strftime(CANONICAL_DATE) if dt else None

    return None


def normalize_datetime(value: str | None) -> str | None:
    """
    Canonical 'dd/mm/yyyy HH:MM:SS' or None when empty/unparseable.
    Date-only input is normalized to midnight.
    """
    raw = (value or "").strip()
    if not raw:
        return None

    m = _DMY_TIME.match(raw)
    if m:
        dt = _build(int(m.group(3)), int(m.group(2)), int(m.group(1)),
                    _num(m.group(4)), _num(m.group(5)), _num(m.group(6)))
        return dt.strftime(CANONICAL_DATETIME) if dt else None

    m = _YMD_TIME.match(raw)
    if m:
        dt = _build(int(m.group(1)), int(m.group(2)), int(m.group(3)),
                    _num(m.group(4)), _num(m.group(5)), _num(m.group(6)))
        return dt.strftime(CANONICAL_DATETIME) if dt else None

    date_only = normalize_date(raw)
    if date_only:
        return f"{date_only} 00:00:00"
    return None


def parse_datetime(value: str | None) -> datetime | None:
    normalized = normalize_datetime(value)
    if not normalized:
        return None
    return datetime.strptime(normalized, CANONICAL_DATETIME)


def format_datetime(dt: datetime) -> str:
    return dt.strftime(CANONICAL_DATETIME)


def format_datetime_or_empty(value: str | None) -> str:
    """Canonical form if parseable, the raw value otherwise, '' for nothing."""
    if not value:
        return ""
    return normalize_datetime(value) or value


def is_valid_datetime(value: str | None) -> bool:
    """Empty counts as valid ("no value"); anything else must parse."""
    if not (value or "").strip():
        return True
    return normalize_datetime(value) is not None


def same_date(a: str | None, b: str | None) -> bool:
    """Compare two date strings after normalization; '' and None are equal."""
    na = normalize_datetime(a) or (a or "").strip()
    nb = normalize_datetime(b) or (b or "").strip()
    return na == nb
