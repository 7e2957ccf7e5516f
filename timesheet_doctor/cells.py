"""
Cell-level normalisation for attendance exports.

Every function here is total: malformed input degrades to an empty string or
zero instead of raising. Callers that want to see where that happened pass a
``notes`` list and receive one ``Coercion`` per degraded cell.
"""

from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

import pandas as pd

from timesheet_doctor.columns import DATE_FIELDS, HOUR_FIELDS, TIME_FIELDS

# 1900 date system. Serial 60 is the phantom 1900-02-29 that spreadsheet
# tools keep for Lotus compatibility, so serials after it are one day off
# from a plain day count.
EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_EPOCH_PRE_LEAP = datetime(1899, 12, 31)
EXCEL_PHANTOM_LEAP_SERIAL = 60
EXCEL_MAX_SERIAL = 2958465  # 9999-12-31

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SLASH_DATE_RE = re.compile(r"^\d{4}/\d{2}/\d{2}$")
DOT_DATE_RE = re.compile(r"^\d{4}\.\d{2}\.\d{2}$")
CLOCK_TEXT_RE = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")


@dataclass
class Coercion:
    row_number: int | None
    field: str
    original_value: str
    new_value: Any
    reason: str


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_falsy(value: Any) -> bool:
    """Blank, zero, or False; spreadsheet exports treat all three as 'no value'."""
    if is_blank(value):
        return True
    if isinstance(value, bool):
        return not value
    if is_number(value):
        return value == 0
    return False


def is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def number_text(value: Any) -> str:
    if is_number(value):
        as_float = float(value)
        if math.isfinite(as_float) and as_float.is_integer():
            return str(int(as_float))
        return repr(as_float)
    return str(value)


def to_text(value: Any) -> str:
    if is_blank(value):
        return ""
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if is_number(value):
        return number_text(value)
    return str(value).strip()


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


# ── dates ─────────────────────────────────────────────────────────────────────

def serial_to_date(serial: float) -> str | None:
    """
    Render a spreadsheet date serial as YYYY-MM-DD.

    Returns None for serials outside the representable range. The time of
    day is dropped unless it is within a ten-thousandth of a second of
    midnight, in which case the value rounds up to the next day.
    """
    if serial < 0 or serial > EXCEL_MAX_SERIAL:
        return None

    days = int(math.floor(serial))
    seconds = 86400 * (serial - days)
    if seconds - math.floor(seconds) > 0.9999 and math.floor(seconds) + 1 >= 86400:
        days += 1

    if days == 0:
        return "1900-01-00"
    if days == EXCEL_PHANTOM_LEAP_SERIAL:
        return "1900-02-29"
    if days < EXCEL_PHANTOM_LEAP_SERIAL:
        return (EXCEL_EPOCH_PRE_LEAP + timedelta(days=days)).strftime("%Y-%m-%d")
    return (EXCEL_EPOCH + timedelta(days=days)).strftime("%Y-%m-%d")


def parse_excel_date(value: Any) -> tuple[str, str]:
    """Return (YYYY-MM-DD or pass-through text, coercion reason or "")."""
    if is_falsy(value):
        return "", ""

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return "", ""
        if ISO_DATE_RE.match(text):
            return text, ""
        if SLASH_DATE_RE.match(text):
            return text.replace("/", "-"), ""
        if DOT_DATE_RE.match(text):
            return text.replace(".", "-"), ""
        return text, "Unrecognised date text kept as-is"

    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d"), ""

    if is_number(value):
        rendered = serial_to_date(float(value))
        if rendered is None:
            return number_text(value), "Date serial outside the spreadsheet range kept as text"
        return rendered, ""

    return str(value), "Unsupported date value stringified"


# ── times ─────────────────────────────────────────────────────────────────────

def fraction_to_clock(value: float) -> str:
    fraction = value - math.floor(value)
    total_minutes = int(round_half_up(fraction * 24 * 60))
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def clock_fraction(value: time) -> float:
    """Seconds since midnight as a fraction of a day."""
    seconds = value.hour * 3600 + value.minute * 60 + value.second + value.microsecond / 1e6
    return seconds / 86400


def parse_time(value: Any) -> tuple[str, str]:
    if is_falsy(value):
        return "", ""

    if isinstance(value, str):
        text = value.strip()
        if text and not CLOCK_TEXT_RE.match(text):
            return text, "Time text kept as-is"
        return text, ""

    if isinstance(value, datetime):
        return fraction_to_clock(clock_fraction(value.time())), ""
    if isinstance(value, time):
        return fraction_to_clock(clock_fraction(value)), ""

    if is_number(value):
        if not math.isfinite(float(value)):
            return "", "Non-finite time value cleared"
        return fraction_to_clock(float(value)), ""

    return str(value), "Unsupported time value stringified"


# ── numbers / text ────────────────────────────────────────────────────────────

def parse_number(value: Any) -> tuple[float, str]:
    if is_blank(value):
        return 0, ""

    if isinstance(value, bool):
        return float(value), ""

    if is_number(value):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0, ""
        try:
            number = float(text)
        except ValueError:
            return 0, "Non-numeric value replaced with 0"
    else:
        return 0, "Non-numeric value replaced with 0"

    if not math.isfinite(number):
        return 0, "Non-finite value replaced with 0"
    return round_half_up(number, 2), ""


def parse_text(value: Any) -> str:
    if is_falsy(value):
        return ""
    return to_text(value)


def normalize_cell(
    field: str,
    value: Any,
    notes: list[Coercion] | None = None,
    row_number: int | None = None,
) -> Any:
    """Convert one raw cell into the canonical representation of ``field``."""
    if field in DATE_FIELDS:
        result, reason = parse_excel_date(value)
    elif field in TIME_FIELDS:
        result, reason = parse_time(value)
    elif field in HOUR_FIELDS:
        result, reason = parse_number(value)
    else:
        result, reason = parse_text(value), ""

    if reason and notes is not None:
        notes.append(Coercion(row_number, field, to_text(value), result, reason))
    return result
