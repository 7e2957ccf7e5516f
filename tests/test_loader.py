import builtins
import io
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from openpyxl import Workbook

from timesheet_doctor.errors import UnsupportedFormat
from timesheet_doctor.loader import MAX_UPLOAD_BYTES, load_bytes, load_file


def workbook_bytes(rows, extra_sheet=False) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "근태"
    for row in rows:
        ws.append(row)
    if extra_sheet:
        wb.create_sheet("메모").append(["참고"])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class WorkbookLoaderTests(unittest.TestCase):
    def test_numeric_cells_keep_native_types(self):
        raw = workbook_bytes(
            [
                ["날짜", "이름", "출근시간", "총 근로시간"],
                [45000, "김철수", 0.5, 8],
            ]
        )
        result = load_bytes(raw, "attendance.xlsx")
        df = result["dataframe"]
        self.assertEqual(result["detected_format"], "xlsx")
        self.assertEqual(result["sheet_name"], "근태")
        self.assertEqual(list(df.columns), ["날짜", "이름", "출근시간", "총 근로시간"])
        self.assertEqual(df.iloc[0]["날짜"], 45000)
        self.assertEqual(df.iloc[0]["출근시간"], 0.5)
        self.assertEqual(result["warnings"], [])

    def test_only_the_first_sheet_is_read(self):
        raw = workbook_bytes([["날짜", "이름"], ["2024-01-05", "김철수"]], extra_sheet=True)
        result = load_bytes(raw, "attendance.xlsx")
        self.assertEqual(result["sheet_names"], ["근태", "메모"])
        self.assertEqual(len(result["dataframe"]), 1)
        self.assertEqual(len(result["warnings"]), 1)
        self.assertIn("메모", result["warnings"][0])

    def test_corrupt_workbook_raises_value_error(self):
        with self.assertRaisesRegex(ValueError, "Could not open workbook"):
            load_bytes(b"definitely not a zip", "broken.xlsx")

    def test_missing_xlrd_raises_clear_importerror(self):
        original_import = builtins.__import__

        def fake_import(name, globals=None, locals=None, fromlist=(), level=0):
            if name == "xlrd":
                raise ImportError("simulated missing xlrd")
            return original_import(name, globals, locals, fromlist, level)

        with mock.patch("builtins.__import__", side_effect=fake_import):
            with self.assertRaisesRegex(ImportError, "pip install xlrd"):
                load_bytes(b"not-a-real-xls", "legacy.xls")


class CsvLoaderTests(unittest.TestCase):
    def test_cp949_csv_decodes(self):
        text = "날짜,이름,부서,총 근로시간\n2024-01-05,김철수,생산팀,8\n2024-01-05,이영희,품질팀,7.5\n"
        result = load_bytes(text.encode("cp949"), "export.csv")
        df = result["dataframe"]
        self.assertEqual(list(df.columns), ["날짜", "이름", "부서", "총 근로시간"])
        self.assertEqual(df.iloc[0]["이름"], "김철수")
        self.assertEqual(df.iloc[1]["부서"], "품질팀")
        self.assertEqual(result["delimiter"], ",")

    def test_utf8_bom_and_semicolons(self):
        text = "\ufeff날짜;이름;휴게시간\n2024-01-05;김철수;1\n2024-01-06;김철수;\n"
        result = load_bytes(text.encode("utf-8"), "export.csv")
        df = result["dataframe"]
        self.assertEqual(result["delimiter"], ";")
        self.assertEqual(list(df.columns), ["날짜", "이름", "휴게시간"])
        self.assertEqual(df.iloc[1]["휴게시간"], "")

    def test_numeric_csv_columns_are_inferred(self):
        text = "날짜,이름\n45000,김철수\n"
        df = load_bytes(text.encode("utf-8"), "export.csv")["dataframe"]
        self.assertEqual(int(df.iloc[0]["날짜"]), 45000)

    def test_blank_cell_does_not_turn_a_column_into_text(self):
        text = "날짜,이름,퇴근시간\n45296,Kim,0.75\n,Lee,\n45296,Park,\n"
        df = load_bytes(text.encode("utf-8"), "export.csv")["dataframe"]
        self.assertEqual(df["날짜"].tolist(), [45296.0, "", 45296.0])
        self.assertEqual(df["퇴근시간"].tolist(), [0.75, "", ""])
        self.assertEqual(df["이름"].tolist(), ["Kim", "Lee", "Park"])

    def test_only_numeric_looking_text_is_converted(self):
        text = "날짜,이름,출근시간\n2024-01-05,nan,09:00\n2024-01-06,1e3x, .5 \n"
        df = load_bytes(text.encode("utf-8"), "export.csv")["dataframe"]
        self.assertEqual(df.iloc[0].tolist(), ["2024-01-05", "nan", "09:00"])
        self.assertEqual(df.iloc[1].tolist(), ["2024-01-06", "1e3x", 0.5])


class UploadGuardTests(unittest.TestCase):
    def test_unsupported_extension(self):
        with self.assertRaises(UnsupportedFormat) as ctx:
            load_bytes(b"{}", "attendance.json")
        self.assertEqual(ctx.exception.extension, ".json")

    def test_extension_check_is_case_insensitive(self):
        raw = workbook_bytes([["날짜", "이름"], ["2024-01-05", "김철수"]])
        self.assertEqual(load_bytes(raw, "ATTENDANCE.XLSX")["detected_format"], "xlsx")

    def test_oversized_upload(self):
        with self.assertRaisesRegex(ValueError, "limit"):
            load_bytes(b"x" * (MAX_UPLOAD_BYTES + 1), "big.csv")

    def test_load_file_reads_from_disk(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "attendance.csv"
            path.write_text("날짜,이름\n2024-01-05,김철수\n", encoding="utf-8")
            self.assertEqual(len(load_file(path)["dataframe"]), 1)
            with self.assertRaises(FileNotFoundError):
                load_file(Path(tmpdir) / "missing.csv")


if __name__ == "__main__":
    unittest.main()
