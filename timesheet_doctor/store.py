"""
Persistence for uploads and their attendance records.

The store is built explicitly from an engine; nothing here opens a
connection at import time. ``save_upload`` writes the upload row and every
record inside one transaction, so a failure leaves no trace of the upload.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from timesheet_doctor.models import AnalysisResult, AttendanceRecord

logger = logging.getLogger(__name__)

Base = declarative_base()

INSERT_BATCH_SIZE = 100
DEFAULT_PAGE_LIMIT = 100
MAX_PAGE_LIMIT = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadRow(Base):
    __tablename__ = "uploads"

    id = Column(String(36), primary_key=True)
    filename = Column(String, nullable=False)
    original_filename = Column(String, nullable=False)
    record_count = Column(Integer, nullable=False, default=0)
    ai_analysis = Column(Text)
    uploaded_at = Column(DateTime, nullable=False, default=_utcnow)


class AttendanceRow(Base):
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    upload_id = Column(String(36), ForeignKey("uploads.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    clock_in = Column(String, default="")
    clock_out = Column(String, default="")
    category = Column(String, default="", index=True)
    department = Column(String, default="", index=True)
    workplace = Column(String, default="", index=True)
    total_hours = Column(Float, default=0)
    regular_hours = Column(Float, default=0)
    overtime_hours = Column(Float, default=0)
    break_time = Column(Float, default=0)
    annual_leave = Column(String, default="")
    created_at = Column(DateTime, nullable=False, default=_utcnow)


RECORD_COLUMNS = (
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

FILTER_COLUMNS = {
    "name": AttendanceRow.name,
    "category": AttendanceRow.category,
    "department": AttendanceRow.department,
    "workplace": AttendanceRow.workplace,
    "upload_id": AttendanceRow.upload_id,
}


@dataclass(frozen=True)
class UploadSummary:
    id: str
    filename: str
    original_filename: str
    record_count: int
    uploaded_at: datetime
    analysis: AnalysisResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "original_filename": self.original_filename,
            "record_count": self.record_count,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "ai_analysis": self.analysis.to_dict(),
        }


@dataclass(frozen=True)
class RecordFilter:
    start_date: str | None = None
    end_date: str | None = None
    name: str | None = None
    category: str | None = None
    department: str | None = None
    workplace: str | None = None
    upload_id: str | None = None


@dataclass(frozen=True)
class RecordPage:
    records: list[AttendanceRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [record.to_dict() for record in self.records],
            "pagination": {
                "total": self.total,
                "page": self.page,
                "limit": self.limit,
                "total_pages": self.total_pages,
            },
        }


def clamp_page(page: int | None, limit: int | None) -> tuple[int, int]:
    page = max(1, int(page or 1))
    limit = DEFAULT_PAGE_LIMIT if limit is None else int(limit)
    return page, min(MAX_PAGE_LIMIT, max(1, limit))


def _row_to_record(row: AttendanceRow) -> AttendanceRecord:
    return AttendanceRecord(**{column: getattr(row, column) for column in RECORD_COLUMNS})


def _row_to_summary(row: UploadRow) -> UploadSummary:
    return UploadSummary(
        id=row.id,
        filename=row.filename,
        original_filename=row.original_filename,
        record_count=row.record_count,
        uploaded_at=row.uploaded_at,
        analysis=AnalysisResult.from_json(row.ai_analysis),
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _apply_filters(stmt, filters: RecordFilter):
    if filters.start_date:
        stmt = stmt.where(AttendanceRow.date >= filters.start_date)
    if filters.end_date:
        stmt = stmt.where(AttendanceRow.date <= filters.end_date)
    for key, column in FILTER_COLUMNS.items():
        value = getattr(filters, key)
        if value:
            stmt = stmt.where(column == value)
    return stmt


class UploadStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs: Any) -> "UploadStore":
        engine = create_engine(url, future=True, pool_pre_ping=True, **engine_kwargs)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        store = cls(engine)
        store.create_schema()
        return store

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    # ── writes ────────────────────────────────────────────────────────────

    def _insert_records(self, session: Session, upload_id: str, records: Sequence[AttendanceRecord]) -> None:
        for start in range(0, len(records), INSERT_BATCH_SIZE):
            batch = records[start:start + INSERT_BATCH_SIZE]
            now = _utcnow()
            session.execute(
                insert(AttendanceRow),
                [dict(record.to_dict(), upload_id=upload_id, created_at=now) for record in batch],
            )

    def save_upload(
        self,
        original_filename: str,
        extension: str,
        records: Sequence[AttendanceRecord],
        analysis: AnalysisResult,
    ) -> str:
        """Persist one upload and all of its records; returns the new upload id."""
        upload_id = str(uuid.uuid4())
        suffix = extension.lstrip(".")
        records = list(records)

        with self.sessions.begin() as session:
            session.add(
                UploadRow(
                    id=upload_id,
                    filename=f"{upload_id}.{suffix}" if suffix else upload_id,
                    original_filename=original_filename,
                    record_count=len(records),
                    ai_analysis=analysis.to_json(),
                    uploaded_at=_utcnow(),
                )
            )
            session.flush()
            self._insert_records(session, upload_id, records)

        logger.info("stored upload %s (%d records) from %s", upload_id, len(records), original_filename)
        return upload_id

    def delete_upload(self, upload_id: str) -> bool:
        with self.sessions.begin() as session:
            row = session.get(UploadRow, upload_id)
            if row is None:
                return False
            session.execute(delete(AttendanceRow).where(AttendanceRow.upload_id == upload_id))
            session.delete(row)
        logger.info("deleted upload %s", upload_id)
        return True

    # ── reads ─────────────────────────────────────────────────────────────

    def list_uploads(self) -> list[UploadSummary]:
        with self.sessions() as session:
            rows = session.scalars(
                select(UploadRow).order_by(UploadRow.uploaded_at.desc(), UploadRow.id)
            ).all()
            return [_row_to_summary(row) for row in rows]

    def get_upload(self, upload_id: str) -> UploadSummary | None:
        with self.sessions() as session:
            row = session.get(UploadRow, upload_id)
            return _row_to_summary(row) if row is not None else None

    def records_for_upload(self, upload_id: str) -> list[AttendanceRecord]:
        with self.sessions() as session:
            rows = session.scalars(
                select(AttendanceRow)
                .where(AttendanceRow.upload_id == upload_id)
                .order_by(AttendanceRow.id)
            ).all()
            return [_row_to_record(row) for row in rows]

    def count_records(self, filters: RecordFilter | None = None) -> int:
        stmt = _apply_filters(select(func.count(AttendanceRow.id)), filters or RecordFilter())
        with self.sessions() as session:
            return session.scalar(stmt) or 0

    def query_records(
        self,
        filters: RecordFilter | None = None,
        page: int | None = 1,
        limit: int | None = DEFAULT_PAGE_LIMIT,
    ) -> RecordPage:
        filters = filters or RecordFilter()
        page, limit = clamp_page(page, limit)
        stmt = (
            _apply_filters(select(AttendanceRow), filters)
            .order_by(AttendanceRow.date.desc(), AttendanceRow.name.asc(), AttendanceRow.id)
            .limit(limit)
            .offset((page - 1) * limit)
        )
        total = self.count_records(filters)
        with self.sessions() as session:
            rows = session.scalars(stmt).all()
            records = [_row_to_record(row) for row in rows]
        return RecordPage(records=records, total=total, page=page, limit=limit)

    def all_records(self, filters: RecordFilter | None = None) -> list[AttendanceRecord]:
        """Every matching record, unpaginated, in storage order."""
        stmt = _apply_filters(select(AttendanceRow), filters or RecordFilter()).order_by(AttendanceRow.id)
        with self.sessions() as session:
            return [_row_to_record(row) for row in session.scalars(stmt)]

    def filter_options(self) -> dict[str, Any]:
        def distinct(column, skip_empty: bool) -> list[str]:
            stmt = select(column).distinct().order_by(column)
            if skip_empty:
                stmt = stmt.where(column != "")
            return list(session.scalars(stmt))

        with self.sessions() as session:
            min_date, max_date = session.execute(
                select(func.min(AttendanceRow.date), func.max(AttendanceRow.date))
            ).one()
            return {
                "names": distinct(AttendanceRow.name, skip_empty=False),
                "categories": distinct(AttendanceRow.category, skip_empty=True),
                "departments": distinct(AttendanceRow.department, skip_empty=True),
                "workplaces": distinct(AttendanceRow.workplace, skip_empty=True),
                "date_range": {"min_date": min_date, "max_date": max_date},
            }


def summaries_to_dicts(items: Iterable[UploadSummary]) -> list[dict[str, Any]]:
    return [item.to_dict() for item in items]
