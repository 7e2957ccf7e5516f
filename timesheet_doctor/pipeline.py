"""
Upload pipeline: bytes in, persisted upload out.

    extension check -> load -> build records -> detect -> summarise -> persist

Every structural problem is raised before the store is touched. Store
errors propagate unchanged so callers can tell them apart from bad input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from timesheet_doctor.cells import Coercion
from timesheet_doctor.errors import EmptyDataset
from timesheet_doctor.loader import check_extension, load_bytes
from timesheet_doctor.models import AnalysisResult, AttendanceRecord
from timesheet_doctor.records import build_records
from timesheet_doctor.store import UploadStore
from timesheet_doctor.summarizer import TextGenerator, analyze_attendance

logger = logging.getLogger(__name__)


@dataclass
class IngestContext:
    store: UploadStore
    text_client: TextGenerator | None = None


@dataclass
class PreparedUpload:
    filename: str
    extension: str
    records: list[AttendanceRecord]
    analysis: AnalysisResult
    dropped_rows: list[int] = field(default_factory=list)
    coercions: list[Coercion] = field(default_factory=list)
    ignored_columns: list[str] = field(default_factory=list)
    load_warnings: list[str] = field(default_factory=list)

    @property
    def dropped_count(self) -> int:
        return len(self.dropped_rows)


@dataclass(frozen=True)
class IngestResult:
    upload_id: str
    filename: str
    record_count: int
    dropped_count: int
    analysis: AnalysisResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "uploadId": self.upload_id,
            "filename": self.filename,
            "recordCount": self.record_count,
            "droppedCount": self.dropped_count,
            "analysis": self.analysis.to_dict(),
        }


def analyze_bytes(data: bytes, filename: str, text_client: TextGenerator | None = None) -> PreparedUpload:
    """Parse and analyse an upload without writing anything."""
    extension = check_extension(filename)
    loaded = load_bytes(data, filename)
    built = build_records(loaded["dataframe"])

    if not built.records:
        raise EmptyDataset()

    analysis = analyze_attendance(built.records, text_client)
    logger.info(
        "analysed %s: %d records, %d dropped, %d duplicates, %d warnings",
        filename,
        len(built.records),
        built.dropped_count,
        len(analysis.duplicates),
        len(analysis.warnings),
    )
    return PreparedUpload(
        filename=filename,
        extension=extension,
        records=built.records,
        analysis=analysis,
        dropped_rows=built.dropped_rows,
        coercions=built.coercions,
        ignored_columns=built.ignored_columns,
        load_warnings=list(loaded["warnings"]),
    )


def persist(prepared: PreparedUpload, store: UploadStore) -> IngestResult:
    upload_id = store.save_upload(
        prepared.filename,
        prepared.extension,
        prepared.records,
        prepared.analysis,
    )
    return IngestResult(
        upload_id=upload_id,
        filename=prepared.filename,
        record_count=len(prepared.records),
        dropped_count=prepared.dropped_count,
        analysis=prepared.analysis,
    )


def ingest(data: bytes, filename: str, context: IngestContext) -> IngestResult:
    prepared = analyze_bytes(data, filename, context.text_client)
    return persist(prepared, context.store)
