"""
Aggregate reports over stored attendance records.

Everything here works on a pandas DataFrame with the canonical columns, so
the same functions serve the CLI, the web page, and tests without a
database round-trip.
"""

from __future__ import annotations

from typing import Any, Iterable

import pandas as pd

from timesheet_doctor.cells import round_half_up
from timesheet_doctor.columns import CANONICAL_FIELDS
from timesheet_doctor.errors import InvalidReportField
from timesheet_doctor.models import AttendanceRecord

PIVOT_KEY_FIELDS = ("name", "category", "department", "workplace", "date", "annual_leave")
PIVOT_VALUE_FIELDS = ("total_hours", "regular_hours", "overtime_hours", "break_time")
PIVOT_AGGREGATIONS = {
    "sum": "sum",
    "avg": "mean",
    "count": "size",
    "min": "min",
    "max": "max",
}

SUMMED_HOURS = ["total_hours", "regular_hours", "overtime_hours"]


def records_frame(records: Iterable[AttendanceRecord]) -> pd.DataFrame:
    frame = pd.DataFrame([record.to_dict() for record in records], columns=list(CANONICAL_FIELDS))
    for column in PIVOT_VALUE_FIELDS:
        frame[column] = pd.to_numeric(frame[column], errors="coerce").fillna(0.0).astype(float)
    return frame


def filter_dates(frame: pd.DataFrame, start: str | None = None, end: str | None = None) -> pd.DataFrame:
    if start:
        frame = frame[frame["date"] >= start]
    if end:
        frame = frame[frame["date"] <= end]
    return frame


def _rounded(value: Any) -> Any:
    if isinstance(value, float):
        return round_half_up(value, 2)
    return value


def _to_rows(frame: pd.DataFrame) -> list[dict[str, Any]]:
    rows = []
    for item in frame.to_dict(orient="records"):
        rows.append({key: _rounded(value) for key, value in item.items()})
    return rows


def _group_totals(frame: pd.DataFrame, key: str, hours: list[str]) -> pd.DataFrame:
    grouped = frame.groupby(key, sort=True)
    result = grouped[hours].sum()
    result.insert(0, "count", grouped.size())
    return result.reset_index()


def by_worker(frame: pd.DataFrame) -> list[dict[str, Any]]:
    if frame.empty:
        return []
    grouped = frame.groupby("name", sort=True)
    result = grouped[SUMMED_HOURS].sum()
    result.insert(0, "days", grouped.size())
    result["avg_hours"] = grouped["total_hours"].mean()
    result = result.reset_index().sort_values(
        ["total_hours", "name"], ascending=[False, True], kind="mergesort"
    )
    return _to_rows(result)


def by_dimension(frame: pd.DataFrame, key: str) -> list[dict[str, Any]]:
    if frame.empty:
        return []
    return _to_rows(_group_totals(frame, key, SUMMED_HOURS))


def daily_trend(frame: pd.DataFrame) -> list[dict[str, Any]]:
    if frame.empty:
        return []
    return _to_rows(_group_totals(frame, "date", ["total_hours", "overtime_hours"]))


def monthly_trend(frame: pd.DataFrame) -> list[dict[str, Any]]:
    if frame.empty:
        return []
    monthly = frame.assign(month=frame["date"].str.slice(0, 7))
    return _to_rows(_group_totals(monthly, "month", ["total_hours", "overtime_hours"]))


def build_stats(frame: pd.DataFrame) -> dict[str, list[dict[str, Any]]]:
    return {
        "by_worker": by_worker(frame),
        "by_category": by_dimension(frame, "category"),
        "by_department": by_dimension(frame, "department"),
        "by_workplace": by_dimension(frame, "workplace"),
        "daily_trend": daily_trend(frame),
        "monthly_trend": monthly_trend(frame),
    }


def validate_pivot(row_field: str, col_field: str, value_field: str, agg: str) -> None:
    if row_field not in PIVOT_KEY_FIELDS or col_field not in PIVOT_KEY_FIELDS:
        raise InvalidReportField("유효하지 않은 필드입니다.")
    if value_field not in PIVOT_VALUE_FIELDS:
        raise InvalidReportField("유효하지 않은 값 필드입니다.")
    if agg not in PIVOT_AGGREGATIONS:
        raise InvalidReportField("유효하지 않은 집계 함수입니다.")


def build_pivot(
    frame: pd.DataFrame,
    row_field: str = "name",
    col_field: str = "department",
    value_field: str = "total_hours",
    agg: str = "sum",
) -> dict[str, Any]:
    """
    Cross-tabulate ``value_field`` by ``row_field`` x ``col_field``.

    Returns ``columns`` (sorted distinct column keys) and ``data`` (one dict
    per row key holding ``row_key`` plus a value per column key that has
    data). Combinations with no records are omitted rather than zero-filled.
    """
    validate_pivot(row_field, col_field, value_field, agg)

    keyed = pd.DataFrame(
        {
            "row_key": frame[row_field].astype(str),
            "col_key": frame[col_field].astype(str),
            "value": frame[value_field],
        }
    )
    columns = sorted(keyed["col_key"].unique().tolist())

    data: list[dict[str, Any]] = []
    if not keyed.empty:
        groups = keyed.groupby(["row_key", "col_key"], sort=True)
        if agg == "count":
            grouped = groups.size()
        else:
            grouped = groups["value"].agg(PIVOT_AGGREGATIONS[agg])
        current: dict[str, Any] | None = None
        for (row_key, col_key), value in grouped.items():
            if current is None or current["row_key"] != row_key:
                current = {"row_key": row_key}
                data.append(current)
            current[col_key] = round_half_up(float(value), 2)

    return {
        "columns": columns,
        "data": data,
        "row_field": row_field,
        "col_field": col_field,
        "value_field": value_field,
        "agg": agg,
    }
