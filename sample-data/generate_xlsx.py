#!/usr/bin/env python3
"""
Generates sample-data/attendance_sample.xlsx, a January attendance export
with the problems timesheet-doctor is meant to catch.

Run from the repo root:
    python sample-data/generate_xlsx.py

Problems baked in:
  Sheet "1월 근태"
    - Dates as spreadsheet serials (45296 = 2024-01-05) mixed with
      "2024/01/08" and "2024.01.09" text
    - Clock times as day fractions (0.375 = 09:00) mixed with "HH:MM" text
    - Header whitespace: "총  근로시간" and " 부서 "
    - Duplicate entry: 김철수 on 2024-01-05 twice
    - Excessive overtime: 이영희 with 5 overtime hours
    - Long shift: 박민수 with 13 total hours
    - Missing clock-out: 최지훈 on 2024-01-09
    - Hours that do not add up: 정수빈 records 6h for a 09:00-18:00 day
    - Overnight shift: 한동욱 22:00-06:00 (reported as inconsistent)
    - Row without a name (dropped on ingest)
    - Unmapped "비고" column (ignored on ingest)
  Sheet "메모"
    - Second sheet; only the first sheet is read
"""

from pathlib import Path
import openpyxl

OUTPUT = Path(__file__).parent / "attendance_sample.xlsx"

wb = openpyxl.Workbook()

# ── Sheet 1: attendance ───────────────────────────────────────────────────────
ws = wb.active
ws.title = "1월 근태"

headers = [
    "날짜", "이름", "출근시간", "퇴근시간", "구분", " 부서 ", "근무지",
    "총  근로시간", "정규시간", "연장 근로시간", "휴게시간", "연차 사용여부", "비고",
]
ws.append(headers)

data = [
    # 날짜         이름      출근     퇴근     구분    부서      근무지  총   정규 연장 휴게 연차  비고
    [45296,       "김철수", 0.375,   0.75,    "주간", "생산팀", "평택", 8,   8,   0,   1,   "N",  ""],
    [45296,       "김철수", "09:00", "18:00", "주간", "생산팀", "평택", 8,   8,   0,   1,   "N",  "재입력"],
    [45296,       "이영희", "08:00", "22:00", "주간", "품질팀", "평택", 13,  8,   5,   1,   "N",  ""],
    ["2024/01/08", "박민수", "07:00", "20:00", "주간", "생산팀", "화성", 13, 8,   5,   0,   "N",  ""],
    ["2024.01.09", "최지훈", "09:00", None,    "주간", "물류팀", "화성", 8,   8,   0,   1,   "N",  "퇴근 누락"],
    ["2024-01-09", "정수빈", "09:00", "18:00", "주간", "품질팀", "평택", 6,   6,   0,   1,   "N",  ""],
    ["2024-01-10", "한동욱", "22:00", "06:00", "야간", "생산팀", "평택", 7,   7,   0,   1,   "N",  ""],
    ["2024-01-10", None,     "09:00", "18:00", "주간", "생산팀", "평택", 8,   8,   0,   1,   "N",  "이름 없음"],
    ["2024-01-11", "김철수", None,    None,    "연차", "생산팀", "평택", 0,   0,   0,   0,   "Y",  ""],
]

for row in data:
    ws.append(row)

# Show the serial and fraction cells as raw numbers the way many exports do
for cell in ws["A"][1:4]:
    cell.number_format = "General"
for cell in ws["C"][1:2] + ws["D"][1:2]:
    cell.number_format = "General"

# ── Sheet 2: notes ────────────────────────────────────────────────────────────
ws_notes = wb.create_sheet("메모")
ws_notes.append(["작성자", "인사팀"])
ws_notes.append(["비고", "1월 근태 마감본"])

wb.save(OUTPUT)
print(f"Created: {OUTPUT}")
