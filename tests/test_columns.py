import unittest

from timesheet_doctor.columns import (
    CANONICAL_FIELDS,
    COLUMN_MAP,
    map_columns,
    normalize_column_name,
    require_columns,
    unmapped_headers,
)
from timesheet_doctor.errors import IngestError, MissingRequiredColumn


class ColumnMappingTests(unittest.TestCase):
    def test_every_synonym_targets_a_canonical_field(self):
        for header, field in COLUMN_MAP.items():
            self.assertIn(field, CANONICAL_FIELDS, header)

    def test_whitespace_runs_are_collapsed_before_lookup(self):
        self.assertEqual(normalize_column_name("  총  근로시간\t"), "총 근로시간")
        mapping = map_columns([" 날짜 ", "이름", "총\n근로시간", "연장근로시간"])
        self.assertEqual(
            mapping,
            {
                " 날짜 ": "date",
                "이름": "name",
                "총\n근로시간": "total_hours",
                "연장근로시간": "overtime_hours",
            },
        )

    def test_short_annual_leave_header_is_recognised(self):
        self.assertEqual(map_columns(["연차"]), {"연차": "annual_leave"})

    def test_unknown_headers_are_reported_not_mapped(self):
        headers = ["날짜", "이름", "비고", 7]
        mapping = map_columns(headers)
        self.assertEqual(unmapped_headers(headers, mapping), ["비고", "7"])

    def test_missing_date_is_reported_before_missing_name(self):
        with self.assertRaises(MissingRequiredColumn) as ctx:
            require_columns(map_columns(["부서", "근무지"]))
        self.assertEqual(ctx.exception.field, "date")
        self.assertEqual(ctx.exception.message, "필수 컬럼 '날짜'을(를) 찾을 수 없습니다.")
        self.assertIsInstance(ctx.exception, IngestError)

    def test_missing_name_only(self):
        with self.assertRaises(MissingRequiredColumn) as ctx:
            require_columns(map_columns(["날짜", "부서"]))
        self.assertEqual(ctx.exception.header, "이름")

    def test_complete_mapping_passes(self):
        require_columns(map_columns(["날짜", "이름"]))


if __name__ == "__main__":
    unittest.main()
