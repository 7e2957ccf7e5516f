"""
Record builder: raw DataFrame -> list of canonical AttendanceRecord.

Rows keep their input order. Rows without a date or a name after
normalisation are dropped; their spreadsheet row numbers are reported in
``BuildResult.dropped_rows`` so callers can surface the count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

import pandas as pd

from timesheet_doctor.cells import Coercion, normalize_cell
from timesheet_doctor.columns import map_columns, require_columns, unmapped_headers
from timesheet_doctor.errors import EmptyDataset
from timesheet_doctor.models import AttendanceRecord

logger = logging.getLogger(__name__)

# Header occupies spreadsheet row 1, so DataFrame index 0 is row 2.
FIRST_DATA_ROW = 2


@dataclass
class BuildResult:
    records: list[AttendanceRecord]
    dropped_rows: list[int] = field(default_factory=list)
    coercions: list[Coercion] = field(default_factory=list)
    ignored_columns: list[str] = field(default_factory=list)

    @property
    def dropped_count(self) -> int:
        return len(self.dropped_rows)


def is_complete(record: AttendanceRecord) -> bool:
    return bool(record.date) and bool(record.name)


def drop_incomplete(records: Iterable[AttendanceRecord]) -> list[AttendanceRecord]:
    return [record for record in records if is_complete(record)]


def build_records(df: pd.DataFrame) -> BuildResult:
    if len(df.index) == 0:
        raise EmptyDataset("엑셀 파일에 데이터가 없습니다.")

    headers = list(df.columns)
    mapping = map_columns(headers)
    require_columns(mapping)

    records: list[AttendanceRecord] = []
    dropped: list[int] = []
    coercions: list[Coercion] = []

    for offset, row in enumerate(df.itertuples(index=False, name=None)):
        row_number = offset + FIRST_DATA_ROW
        values: dict[str, object] = {}
        for position, header in enumerate(headers):
            field_name = mapping.get(header)
            if field_name is None:
                continue
            values[field_name] = normalize_cell(field_name, row[position], coercions, row_number)

        record = AttendanceRecord.from_dict(values)
        if not is_complete(record):
            dropped.append(row_number)
            continue
        records.append(record)

    ignored = unmapped_headers(headers, mapping)
    logger.debug(
        "built %d records (%d dropped, %d coercions, ignored columns: %s)",
        len(records),
        len(dropped),
        len(coercions),
        ignored,
    )
    return BuildResult(records=records, dropped_rows=dropped, coercions=coercions, ignored_columns=ignored)
