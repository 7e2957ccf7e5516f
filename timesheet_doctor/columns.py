"""
Header mapping for attendance exports.

Spreadsheet exports name the same column in slightly different ways
("총 근로시간", "총근로시간", "총  근로시간 "). Every header is normalised and
looked up in a fixed synonym table so the rest of the pipeline only ever sees
the canonical field names below.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from timesheet_doctor.errors import MissingRequiredColumn

CANONICAL_FIELDS = (
    "date",
    "name",
    "clock_in",
    "clock_out",
    "category",
    "department",
    "workplace",
    "total_hours",
    "regular_hours",
    "overtime_hours",
    "break_time",
    "annual_leave",
)

DATE_FIELDS = ("date",)
TIME_FIELDS = ("clock_in", "clock_out")
HOUR_FIELDS = ("total_hours", "regular_hours", "overtime_hours", "break_time")
TEXT_FIELDS = ("name", "category", "department", "workplace", "annual_leave")

COLUMN_MAP = {
    "날짜": "date",
    "이름": "name",
    "출근시간": "clock_in",
    "퇴근시간": "clock_out",
    "구분": "category",
    "부서": "department",
    "근무지": "workplace",
    "총 근로시간": "total_hours",
    "총근로시간": "total_hours",
    "정규시간": "regular_hours",
    "연장 근로시간": "overtime_hours",
    "연장근로시간": "overtime_hours",
    "휴게시간": "break_time",
    "연차 사용여부": "annual_leave",
    "연차사용여부": "annual_leave",
    "연차": "annual_leave",
}

# Checked in this order; the first missing one is reported.
REQUIRED_FIELDS = (
    ("date", "날짜"),
    ("name", "이름"),
)

FIELD_LABELS = {
    "date": "날짜",
    "name": "이름",
    "clock_in": "출근시간",
    "clock_out": "퇴근시간",
    "category": "구분",
    "department": "부서",
    "workplace": "근무지",
    "total_hours": "총 근로시간",
    "regular_hours": "정규시간",
    "overtime_hours": "연장 근로시간",
    "break_time": "휴게시간",
    "annual_leave": "연차 사용여부",
}

WHITESPACE_RUN_RE = re.compile(r"\s+")


def normalize_column_name(header: Any) -> str:
    return WHITESPACE_RUN_RE.sub(" ", str(header)).strip()


def map_columns(headers: Iterable[Any]) -> dict[Any, str]:
    """Return {original header: canonical field} for every recognised header."""
    mapping: dict[Any, str] = {}
    for header in headers:
        field = COLUMN_MAP.get(normalize_column_name(header))
        if field:
            mapping[header] = field
    return mapping


def require_columns(mapping: dict[Any, str]) -> None:
    mapped = set(mapping.values())
    for field, header in REQUIRED_FIELDS:
        if field not in mapped:
            raise MissingRequiredColumn(field, header)


def unmapped_headers(headers: Iterable[Any], mapping: dict[Any, str]) -> list[str]:
    return [str(header) for header in headers if header not in mapping]
