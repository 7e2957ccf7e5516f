import io
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from openpyxl import Workbook

from timesheet_doctor.errors import EmptyDataset, MissingRequiredColumn, UnsupportedFormat
from timesheet_doctor.pipeline import IngestContext, analyze_bytes, ingest
from timesheet_doctor.store import UploadStore
from timesheet_doctor.summarizer import template_summary

HEADER = ["날짜", "이름", "출근시간", "퇴근시간", "휴게시간", "총 근로시간"]
KIM_ROW = ["2024-01-05", "Kim", "09:00", "18:00", 1, 8]


def xlsx(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class FakeClient:
    def generate(self, prompt):
        return "AI 요약"


class AnalyzeBytesTests(unittest.TestCase):
    def test_duplicate_kim_scenario(self):
        prepared = analyze_bytes(xlsx([HEADER, KIM_ROW, KIM_ROW]), "kim.xlsx")
        self.assertEqual(len(prepared.records), 2)
        self.assertEqual(len(prepared.analysis.duplicates), 1)
        self.assertEqual(prepared.analysis.duplicates[0].count, 2)
        self.assertEqual([w for w in prepared.analysis.warnings if w.type == "inconsistency"], [])
        self.assertEqual(prepared.analysis.summary, template_summary(2, 1, 0))

    def test_serial_dates_and_fractions_from_a_workbook(self):
        prepared = analyze_bytes(xlsx([HEADER, [45000, "Lee", 0.375, 0.75, 1, 8]]), "lee.xlsx")
        record = prepared.records[0]
        self.assertEqual((record.date, record.clock_in, record.clock_out), ("2023-03-15", "09:00", "18:00"))
        self.assertEqual(prepared.analysis.warnings, ())

    def test_time_formatted_clock_cells_round_to_the_minute(self):
        wb = Workbook()
        ws = wb.active
        ws.append(HEADER)
        ws.append(["2024-01-05", "Kim", (9 * 3600 + 40) / 86400, 0.75, 1, 8])
        ws.append(["2024-01-06", "Kim", 0.375, (17 * 3600 + 59 * 60 + 36) / 86400, 1, 8])
        ws["C2"].number_format = "hh:mm"
        ws["D2"].number_format = "h:mm:ss"
        ws["C3"].number_format = "h:mm:ss"
        ws["D3"].number_format = "hh:mm"
        buffer = io.BytesIO()
        wb.save(buffer)

        prepared = analyze_bytes(buffer.getvalue(), "formatted.xlsx")
        self.assertEqual(
            [(r.clock_in, r.clock_out) for r in prepared.records],
            [("09:01", "18:00"), ("09:00", "18:00")],
        )
        self.assertEqual([w for w in prepared.analysis.warnings if w.type == "inconsistency"], [])

    def test_csv_blank_cells_keep_serials_and_fractions_numeric(self):
        raw = (
            "날짜,이름,출근시간,퇴근시간,휴게시간,총 근로시간\n"
            "45296,Kim,0.375,0.75,1,8\n"
            ",Lee,0.375,,1,8\n"
            "45296,Park,0.375,,1,8\n"
        ).encode("utf-8")
        prepared = analyze_bytes(raw, "punches.csv")
        self.assertEqual(
            [(r.date, r.name, r.clock_in, r.clock_out) for r in prepared.records],
            [("2024-01-05", "Kim", "09:00", "18:00"), ("2024-01-05", "Park", "09:00", "")],
        )
        self.assertEqual(prepared.dropped_count, 1)
        flagged = {record.name for w in prepared.analysis.warnings for record in w.related_records}
        self.assertEqual(flagged, {"Park"})

    def test_dropped_rows_are_counted(self):
        prepared = analyze_bytes(xlsx([HEADER, KIM_ROW, ["", "Lee", "09:00", "18:00", 1, 8]]), "kim.xlsx")
        self.assertEqual(prepared.dropped_count, 1)
        self.assertEqual(len(prepared.records), 1)

    def test_all_rows_dropped_is_an_empty_dataset(self):
        with self.assertRaises(EmptyDataset) as ctx:
            analyze_bytes(xlsx([HEADER, ["", "Lee", "09:00", "18:00", 1, 8]]), "kim.xlsx")
        self.assertEqual(ctx.exception.message, "유효한 근태 데이터가 없습니다.")

    def test_header_only_sheet_is_an_empty_dataset(self):
        with self.assertRaises(EmptyDataset):
            analyze_bytes(xlsx([HEADER]), "empty.xlsx")

    def test_missing_columns(self):
        with self.assertRaises(MissingRequiredColumn):
            analyze_bytes(xlsx([["부서", "근무지"], ["생산팀", "평택"]]), "wrong.xlsx")

    def test_csv_upload(self):
        raw = "날짜,이름,출근시간,퇴근시간,휴게시간,총 근로시간\n2024-01-05,Kim,09:00,18:00,1,8\n".encode("cp949")
        prepared = analyze_bytes(raw, "kim.csv")
        self.assertEqual(prepared.records[0].total_hours, 8)
        self.assertEqual(prepared.extension, ".csv")

    def test_client_summary_is_used(self):
        prepared = analyze_bytes(xlsx([HEADER, KIM_ROW]), "kim.xlsx", FakeClient())
        self.assertEqual(prepared.analysis.summary, "AI 요약")


class IngestTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = UploadStore.from_url(f"sqlite:///{Path(self.tmpdir.name) / 'ingest.db'}")
        self.context = IngestContext(store=self.store)

    def tearDown(self):
        self.store.dispose()
        self.tmpdir.cleanup()

    def test_ingest_persists_upload_and_records(self):
        result = ingest(xlsx([HEADER, KIM_ROW, KIM_ROW]), "kim.xlsx", self.context)
        payload = result.to_dict()
        self.assertEqual(payload["recordCount"], 2)
        self.assertEqual(payload["droppedCount"], 0)
        self.assertEqual(payload["filename"], "kim.xlsx")
        self.assertEqual(len(payload["analysis"]["duplicates"]), 1)

        upload = self.store.get_upload(result.upload_id)
        self.assertEqual(upload.record_count, 2)
        self.assertEqual(upload.analysis, result.analysis)
        self.assertEqual(len(self.store.records_for_upload(result.upload_id)), 2)

    def test_structural_errors_write_nothing(self):
        for raw, name, error in (
            (xlsx([["부서"], ["생산팀"]]), "wrong.xlsx", MissingRequiredColumn),
            (xlsx([HEADER]), "empty.xlsx", EmptyDataset),
            (b"{}", "kim.json", UnsupportedFormat),
        ):
            with self.assertRaises(error):
                ingest(raw, name, self.context)
        self.assertEqual(self.store.list_uploads(), [])

    def test_store_errors_propagate_unchanged(self):
        failure = RuntimeError("database is locked")
        with mock.patch.object(self.store, "save_upload", side_effect=failure):
            with self.assertRaises(RuntimeError) as ctx:
                ingest(xlsx([HEADER, KIM_ROW]), "kim.xlsx", self.context)
        self.assertIs(ctx.exception, failure)


if __name__ == "__main__":
    unittest.main()
