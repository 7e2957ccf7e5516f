"""
Rule-based anomaly detection for one upload batch.

Duplicates are grouped by the exact (date, name) key. Warning rules run
independently per record, so a single row can raise several warnings.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from timesheet_doctor.models import AttendanceRecord, DuplicateEntry, RelatedRecord, WarningEntry

OVERTIME_LIMIT_HOURS = 4
LONG_SHIFT_LIMIT_HOURS = 12
INCONSISTENCY_TOLERANCE_HOURS = 0.5

WARNING_RULES: dict[str, dict[str, Any]] = {
    "excessive_overtime": {
        "type": "overtime",
        "severity": "high",
        "description": f"Overtime hours above {OVERTIME_LIMIT_HOURS} on a single day.",
        "evidence": "연장 근로시간 column is greater than the limit.",
    },
    "missing_punch": {
        "type": "missing_data",
        "severity": "medium",
        "description": "Clock-in or clock-out time is empty.",
        "evidence": "출근시간 or 퇴근시간 is blank after normalisation.",
    },
    "hours_inconsistent": {
        "type": "inconsistency",
        "severity": "medium",
        "description": (
            "Clock times minus break time disagree with the recorded total by more than "
            f"{INCONSISTENCY_TOLERANCE_HOURS} hours."
        ),
        "evidence": (
            "(퇴근시간 - 출근시간) - 휴게시간 vs 총 근로시간. Shifts that cross midnight are not "
            "wrapped and always disagree."
        ),
    },
    "long_shift": {
        "type": "pattern",
        "severity": "high",
        "description": f"Total hours above {LONG_SHIFT_LIMIT_HOURS} on a single day.",
        "evidence": "총 근로시간 column is greater than the limit.",
    },
    "duplicate_entry": {
        "type": "duplicate",
        "severity": "medium",
        "description": "The same worker appears more than once on the same date.",
        "evidence": "Two or more rows share an identical (날짜, 이름) pair.",
    },
}


def format_hours(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def _warning(rule_id: str, record: AttendanceRecord, message: str) -> WarningEntry:
    rule = WARNING_RULES[rule_id]
    return WarningEntry(
        type=rule["type"],
        severity=rule["severity"],
        message=message,
        related_records=(RelatedRecord(record.date, record.name),),
    )


def find_duplicates(records: Iterable[AttendanceRecord]) -> list[DuplicateEntry]:
    groups: dict[tuple[str, str], int] = {}
    for record in records:
        key = (record.date, record.name)
        groups[key] = groups.get(key, 0) + 1

    duplicates = []
    for (date, name), count in groups.items():
        if count > 1:
            duplicates.append(
                DuplicateEntry(
                    date=date,
                    name=name,
                    count=count,
                    details=f"{name}님이 {date}에 {count}건 중복 등록되었습니다.",
                )
            )
    return duplicates


def parse_clock(value: str) -> float | None:
    """'HH:MM' (seconds ignored) -> hours as a float; None when unparseable."""
    parts = value.split(":")
    if len(parts) < 2:
        return None
    try:
        hours = float(parts[0])
        minutes = float(parts[1])
    except ValueError:
        return None
    return hours + minutes / 60


def expected_hours(record: AttendanceRecord) -> float | None:
    start = parse_clock(record.clock_in)
    end = parse_clock(record.clock_out)
    if start is None or end is None:
        return None
    return (end - start) - record.break_time


def check_record(record: AttendanceRecord) -> list[WarningEntry]:
    warnings = []

    if record.overtime_hours > OVERTIME_LIMIT_HOURS:
        warnings.append(
            _warning(
                "excessive_overtime",
                record,
                f"{record.name}님이 {record.date}에 연장근로 {format_hours(record.overtime_hours)}시간으로 "
                "과도한 초과근무가 감지되었습니다.",
            )
        )

    if not record.clock_in or not record.clock_out:
        missing = "출근시간" if not record.clock_in else "퇴근시간"
        warnings.append(
            _warning(
                "missing_punch",
                record,
                f"{record.name}님의 {record.date} 기록에 {missing}이 누락되었습니다.",
            )
        )

    if record.clock_in and record.clock_out and record.total_hours > 0:
        expected = expected_hours(record)
        if expected is not None and abs(expected - record.total_hours) > INCONSISTENCY_TOLERANCE_HOURS:
            warnings.append(
                _warning(
                    "hours_inconsistent",
                    record,
                    f"{record.name}님의 {record.date} 기록에서 출퇴근 시간 기준 예상 근로시간"
                    f"({expected:.1f}h)과 기록된 총 근로시간({record.total_hours:.1f}h)이 불일치합니다.",
                )
            )

    if record.total_hours > LONG_SHIFT_LIMIT_HOURS:
        warnings.append(
            _warning(
                "long_shift",
                record,
                f"{record.name}님이 {record.date}에 총 {format_hours(record.total_hours)}시간 근무로 "
                "장시간 근로가 감지되었습니다.",
            )
        )

    return warnings


def find_warnings(records: Iterable[AttendanceRecord]) -> list[WarningEntry]:
    warnings: list[WarningEntry] = []
    for record in records:
        warnings.extend(check_record(record))
    return warnings


def detect(records: Sequence[AttendanceRecord]) -> tuple[list[DuplicateEntry], list[WarningEntry]]:
    return find_duplicates(records), find_warnings(records)
