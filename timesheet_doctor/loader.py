"""
loader.py — upload loader for timesheet-doctor

Supports: .xlsx .xls .csv

Public API:
    result = load_bytes(raw, "근태_2024-01.xlsx")
    df     = result["dataframe"]

Result dict keys:
    dataframe         — pandas DataFrame (header row -> columns)
    detected_format   — "csv", "xlsx" or "xls"
    detected_encoding — encoding name for CSV; None for workbooks
    delimiter         — delimiter char for CSV; None otherwise
    sheet_name        — sheet that was read for workbooks; None otherwise
    sheet_names       — all sheet names for workbooks; None otherwise
    original_rows     — row count including header row
    original_columns  — column count
    warnings          — list of warning strings

Workbook cells keep their native types so numeric date serials and time
fractions reach the cell normaliser untouched.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from collections import Counter
from pathlib import Path

import chardet
import pandas as pd

from timesheet_doctor.errors import UnsupportedFormat

logger = logging.getLogger(__name__)

TEXT_FORMATS  = {".csv"}
EXCEL_FORMATS = {".xlsx", ".xls"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

NUMERIC_TEXT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> tuple[str, float]:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "unknown"
    confidence = round(result.get("confidence") or 0.0, 2)
    return detected, confidence


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8 (BOM stripped)
      2. Try CP949 (Korean Windows exports)
      3. Try preferred_encoding (chardet result)
      4. CP1252 with replace (never crashes)

    Also strips embedded null bytes so downstream parsers don't choke.
    """
    if raw.startswith(b"\xef\xbb\xbf"):
        raw = raw[3:]

    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", "cp949", preferred_encoding):
            if not enc or enc == "unknown":
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines)


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer CSV delimiter from sample lines.

    Uses csv.Sniffer first; falls back to scoring each candidate delimiter by
    column-count consistency and column width.
    """
    sample_lines = [l for l in text.splitlines() if l.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            sniffed = csv.Sniffer().sniff(sample, delimiters=",;\t|")
            return sniffed.delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in [",", ";", "\t", "|"]:
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue

        widths = [len(row) for row in rows]
        mode_width, mode_count = Counter(widths).most_common(1)[0]
        score = (mode_width * 2.0) + (mode_count / len(widths)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim

    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# CELL TYPING
# ══════════════════════════════════════════════════════════════════════════════

def _type_cell(value):
    """Numeric-looking CSV text becomes a float; everything else is kept."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if NUMERIC_TEXT_RE.match(text):
        return float(text)
    return value


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(raw: bytes, suffix: str) -> dict:
    """Load a .csv upload into a pandas DataFrame."""
    detected, confidence = _detect_encoding(raw)
    enc = detected if detected != "unknown" else "utf-8"
    text = _read_text_safely(raw, enc)
    delimiter = _detect_delimiter(text)

    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=sep,
            dtype=str,
            engine="python",
            on_bad_lines="skip",
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()
    except Exception as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    # Typed per cell: a blank in a column must not turn its serials into text.
    for column in df.columns:
        df[column] = df[column].map(_type_cell)

    warnings: list[str] = []
    if detected != "unknown" and confidence < 0.5:
        warnings.append(f"Low-confidence encoding detection ({detected}, {confidence})")

    return {
        "dataframe":         df,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": enc,
        "delimiter":         delimiter,
        "sheet_name":        None,
        "sheet_names":       None,
        "original_rows":     len(df) + 1,
        "original_columns":  len(df.columns),
        "warnings":          warnings,
    }


def _load_excel(raw: bytes, suffix: str) -> dict:
    """
    Load the first sheet of an .xlsx or .xls workbook.

    Other sheets are ignored with a warning.
    """
    # .xls requires xlrd; give a clear error if missing.
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(
                ".xls files require xlrd — run: pip install xlrd"
            )

    try:
        with pd.ExcelFile(io.BytesIO(raw)) as xf:
            all_sheets = list(xf.sheet_names)
            if not all_sheets:
                raise ValueError("Workbook has no sheets")
            chosen_name = all_sheets[0]
            df = xf.parse(sheet_name=chosen_name, dtype=object)
    except ImportError:
        raise
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    warnings: list[str] = []
    if len(all_sheets) > 1:
        others = [s for s in all_sheets if s != chosen_name]
        warnings.append(
            f"Multiple sheets found ({len(all_sheets)} total); "
            f"used '{chosen_name}'. Ignored: {others}"
        )

    return {
        "dataframe":         df,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        chosen_name,
        "sheet_names":       all_sheets,
        "original_rows":     len(df) + 1,
        "original_columns":  len(df.columns),
        "warnings":          warnings,
    }


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def file_extension(filename: str) -> str:
    return Path(filename).suffix.lower()


def check_extension(filename: str) -> str:
    suffix = file_extension(filename)
    if suffix not in ALL_FORMATS:
        raise UnsupportedFormat(suffix, sorted(ALL_FORMATS))
    return suffix


def load_bytes(raw: bytes, filename: str) -> dict:
    """
    Load an uploaded spreadsheet into a pandas DataFrame.

    Raises:
        UnsupportedFormat  if the extension is not .xlsx/.xls/.csv.
        ValueError         if the file is too large or unreadable.
        ImportError        if a required optional dependency is missing.
    """
    suffix = check_extension(filename)

    if len(raw) > MAX_UPLOAD_BYTES:
        raise ValueError(
            f"Upload is {len(raw)} bytes; the limit is {MAX_UPLOAD_BYTES} bytes"
        )

    logger.debug("loading %s (%d bytes)", filename, len(raw))
    if suffix in TEXT_FORMATS:
        return _load_text(raw, suffix)
    return _load_excel(raw, suffix)


def load_file(path: "str | Path") -> dict:
    """
    Load a spreadsheet from disk.

    Raises:
        FileNotFoundError  if the file does not exist.
        plus everything load_bytes raises.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return load_bytes(path.read_bytes(), path.name)
