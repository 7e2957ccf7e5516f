from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

WARNING_TYPES = ("overtime", "missing_data", "inconsistency", "pattern", "other")
SEVERITIES = ("low", "medium", "high")


@dataclass
class AttendanceRecord:
    date: str
    name: str
    clock_in: str = ""
    clock_out: str = ""
    category: str = ""
    department: str = ""
    workplace: str = ""
    total_hours: float = 0
    regular_hours: float = 0
    overtime_hours: float = 0
    break_time: float = 0
    annual_leave: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AttendanceRecord":
        return cls(
            date=payload.get("date") or "",
            name=payload.get("name") or "",
            clock_in=payload.get("clock_in") or "",
            clock_out=payload.get("clock_out") or "",
            category=payload.get("category") or "",
            department=payload.get("department") or "",
            workplace=payload.get("workplace") or "",
            total_hours=payload.get("total_hours") or 0,
            regular_hours=payload.get("regular_hours") or 0,
            overtime_hours=payload.get("overtime_hours") or 0,
            break_time=payload.get("break_time") or 0,
            annual_leave=payload.get("annual_leave") or "",
        )


@dataclass(frozen=True)
class RelatedRecord:
    date: str
    name: str


@dataclass(frozen=True)
class DuplicateEntry:
    date: str
    name: str
    count: int
    details: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WarningEntry:
    type: str
    severity: str
    message: str
    related_records: tuple[RelatedRecord, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "relatedRecords": [asdict(item) for item in self.related_records],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "WarningEntry":
        return cls(
            type=payload["type"],
            severity=payload["severity"],
            message=payload["message"],
            related_records=tuple(
                RelatedRecord(item["date"], item["name"])
                for item in payload.get("relatedRecords") or []
            ),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """Findings for one upload. Serialised once and stored next to the upload."""

    duplicates: tuple[DuplicateEntry, ...] = ()
    warnings: tuple[WarningEntry, ...] = ()
    summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "duplicates": [entry.to_dict() for entry in self.duplicates],
            "warnings": [entry.to_dict() for entry in self.warnings],
            "summary": self.summary,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AnalysisResult":
        return cls(
            duplicates=tuple(DuplicateEntry(**item) for item in payload.get("duplicates") or []),
            warnings=tuple(WarningEntry.from_dict(item) for item in payload.get("warnings") or []),
            summary=payload.get("summary") or "",
        )

    @classmethod
    def from_json(cls, raw: str | None) -> "AnalysisResult":
        if not raw:
            return cls()
        return cls.from_dict(json.loads(raw))

    @property
    def issue_count(self) -> int:
        return len(self.duplicates) + len(self.warnings)
