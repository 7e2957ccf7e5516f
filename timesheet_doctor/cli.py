from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from timesheet_doctor import __version__ as TOOL_VERSION
from timesheet_doctor.anomalies import WARNING_RULES
from timesheet_doctor.config import Settings, build_context, build_text_client
from timesheet_doctor.contracts import build_run_summary, wrap_payload
from timesheet_doctor.errors import IngestError, InvalidReportField, TimesheetDoctorError
from timesheet_doctor.models import AnalysisResult
from timesheet_doctor.pipeline import PreparedUpload, analyze_bytes, ingest
from timesheet_doctor.reports import (
    PIVOT_AGGREGATIONS,
    PIVOT_KEY_FIELDS,
    PIVOT_VALUE_FIELDS,
    build_pivot,
    build_stats,
    records_frame,
)
from timesheet_doctor.store import DEFAULT_PAGE_LIMIT, RecordFilter, UploadStore


EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_ANALYZE_ISSUES = 3
EXIT_STORE_FAILED = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class TimesheetDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    level = logging.WARNING
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, SQLAlchemyError):
        return EXIT_STORE_FAILED
    if isinstance(exc, (IngestError, ImportError, UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    return EXIT_COMMAND_ERROR


def load_settings(args: argparse.Namespace) -> Settings:
    return Settings.from_env().with_database_url(getattr(args, "db", None))


def open_store(args: argparse.Namespace) -> UploadStore:
    settings = load_settings(args)
    try:
        return UploadStore.from_url(settings.database_url)
    except SQLAlchemyError as exc:
        raise CliError(f"Could not open database: {exc}", EXIT_STORE_FAILED) from exc


def read_input(path_arg: str) -> tuple[Path, bytes]:
    input_path = Path(path_arg)
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    return input_path, input_path.read_bytes()


def record_filter_from_args(args: argparse.Namespace) -> RecordFilter:
    return RecordFilter(
        start_date=getattr(args, "start", None),
        end_date=getattr(args, "end", None),
        name=getattr(args, "name", None),
        category=getattr(args, "category", None),
        department=getattr(args, "department", None),
        workplace=getattr(args, "workplace", None),
        upload_id=getattr(args, "upload_id", None),
    )


# ── rendering ─────────────────────────────────────────────────────────────────

def render_analysis_text(analysis: AnalysisResult) -> list[str]:
    lines = [f"Summary: {analysis.summary}"]
    if analysis.duplicates:
        lines.append(f"Duplicates ({len(analysis.duplicates)}):")
        lines.extend(f"  - {entry.details}" for entry in analysis.duplicates)
    if analysis.warnings:
        lines.append(f"Warnings ({len(analysis.warnings)}):")
        lines.extend(f"  - [{entry.severity}] {entry.type}: {entry.message}" for entry in analysis.warnings)
    return lines


def render_prepared_text(title: str, prepared: PreparedUpload) -> str:
    lines = [
        title,
        f"File: {prepared.filename}",
        f"Records: {len(prepared.records)}",
        f"Dropped rows: {prepared.dropped_count}",
    ]
    if prepared.ignored_columns:
        lines.append(f"Ignored columns: {', '.join(prepared.ignored_columns)}")
    lines.extend(f"Loader warning: {warning}" for warning in prepared.load_warnings)
    lines.extend(render_analysis_text(prepared.analysis))
    return "\n".join(lines)


def render_table(rows: list[dict[str, Any]], columns: list[str]) -> str:
    if not rows:
        return "(no rows)"
    widths = {column: len(column) for column in columns}
    for row in rows:
        for column in columns:
            widths[column] = max(widths[column], len(str(row.get(column, ""))))
    header = "  ".join(column.ljust(widths[column]) for column in columns)
    body = [
        "  ".join(str(row.get(column, "")).ljust(widths[column]) for column in columns)
        for row in rows
    ]
    return "\n".join([header, *body])


# ── parser ────────────────────────────────────────────────────────────────────

def add_common_flags(parser: argparse.ArgumentParser, *, db: bool = False) -> None:
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="More human logs")
    if db:
        parser.add_argument("--db", help="Database URL (overrides TIMESHEET_DOCTOR_DATABASE_URL)")


def add_date_range(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", help="First date to include (YYYY-MM-DD)")
    parser.add_argument("--end", help="Last date to include (YYYY-MM-DD)")


def build_parser() -> argparse.ArgumentParser:
    parser = TimesheetDoctorArgumentParser(prog="timesheet-doctor")
    subparsers = parser.add_subparsers(dest="command", required=True, parser_class=TimesheetDoctorArgumentParser)

    ingest_cmd = subparsers.add_parser("ingest", help="Parse, analyse and store an attendance spreadsheet.")
    ingest_cmd.add_argument("input", help="Input file path (.xlsx, .xls, .csv)")
    add_common_flags(ingest_cmd, db=True)

    analyze = subparsers.add_parser("analyze", help="Parse and analyse a spreadsheet without storing it.")
    analyze.add_argument("input", help="Input file path (.xlsx, .xls, .csv)")
    analyze.add_argument("--output", help="Write the analysis JSON to this path")
    add_common_flags(analyze)

    uploads = subparsers.add_parser("uploads", help="Inspect or delete stored uploads.")
    uploads_sub = uploads.add_subparsers(dest="uploads_command", required=True, parser_class=TimesheetDoctorArgumentParser)
    uploads_list = uploads_sub.add_parser("list", help="List uploads, newest first.")
    add_common_flags(uploads_list, db=True)
    uploads_show = uploads_sub.add_parser("show", help="Show one upload and its analysis.")
    uploads_show.add_argument("upload_id", help="Upload id")
    add_common_flags(uploads_show, db=True)
    uploads_delete = uploads_sub.add_parser("delete", help="Delete an upload and its records.")
    uploads_delete.add_argument("upload_id", help="Upload id")
    add_common_flags(uploads_delete, db=True)

    records = subparsers.add_parser("records", help="Query stored attendance records.")
    add_date_range(records)
    records.add_argument("--name", help="Worker name")
    records.add_argument("--category", help="Work category")
    records.add_argument("--department", help="Department")
    records.add_argument("--workplace", help="Workplace")
    records.add_argument("--upload-id", dest="upload_id", help="Only records from this upload")
    records.add_argument("--page", type=int, default=1, help="Page number (1-based)")
    records.add_argument("--limit", type=int, default=DEFAULT_PAGE_LIMIT, help="Records per page (1-1000)")
    add_common_flags(records, db=True)

    filters = subparsers.add_parser("filters", help="List distinct filter values and the stored date range.")
    add_common_flags(filters, db=True)

    stats = subparsers.add_parser("stats", help="Aggregate hours by worker, dimension and period.")
    add_date_range(stats)
    add_common_flags(stats, db=True)

    pivot = subparsers.add_parser("pivot", help="Cross-tabulate an hour field.")
    pivot.add_argument("--rows", default="name", choices=PIVOT_KEY_FIELDS, help="Row field")
    pivot.add_argument("--cols", default="department", choices=PIVOT_KEY_FIELDS, help="Column field")
    pivot.add_argument("--value", default="total_hours", choices=PIVOT_VALUE_FIELDS, help="Value field")
    pivot.add_argument("--agg", default="sum", choices=sorted(PIVOT_AGGREGATIONS), help="Aggregation")
    add_date_range(pivot)
    add_common_flags(pivot, db=True)

    explain = subparsers.add_parser("explain", help="Explain a stable rule id.")
    explain.add_argument("rule_id", help="Rule identifier")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    explain.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    explain.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    subparsers.add_parser("version", help="Print version")
    return parser


# ── commands ──────────────────────────────────────────────────────────────────

def exit_code_for_analysis(analysis: AnalysisResult) -> int:
    if analysis.issue_count:
        return EXIT_ANALYZE_ISSUES
    return EXIT_SUCCESS


def analysis_metrics(prepared: PreparedUpload) -> dict[str, int]:
    return {
        "record_count": len(prepared.records),
        "dropped_count": prepared.dropped_count,
        "duplicate_count": len(prepared.analysis.duplicates),
        "warning_count": len(prepared.analysis.warnings),
    }


def run_analyze(args: argparse.Namespace) -> int:
    input_path, data = read_input(args.input)
    try:
        prepared = analyze_bytes(data, input_path.name, build_text_client(load_settings(args)))
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)

    payload = wrap_payload(
        "timesheet_doctor.analysis",
        {
            "file": input_path.name,
            "records": [record.to_dict() for record in prepared.records],
            "dropped_rows": prepared.dropped_rows,
            "ignored_columns": prepared.ignored_columns,
            "analysis": prepared.analysis.to_dict(),
        },
        build_run_summary(
            command="analyze",
            input_file=str(input_path),
            metrics=analysis_metrics(prepared),
            warnings=prepared.load_warnings,
        ),
    )
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_dumps(payload), encoding="utf-8")

    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(render_prepared_text("timesheet-doctor analyze", prepared), quiet=args.quiet)
        if args.output:
            emit_human(f"Analysis written: {args.output}", quiet=args.quiet)
    return exit_code_for_analysis(prepared.analysis)


def run_ingest(args: argparse.Namespace) -> int:
    input_path, data = read_input(args.input)
    settings = load_settings(args)
    try:
        context = build_context(settings)
    except SQLAlchemyError as exc:
        eprint(f"Could not open database: {exc}")
        return EXIT_STORE_FAILED

    try:
        result = ingest(data, input_path.name, context)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)
    finally:
        context.store.dispose()

    if args.json:
        maybe_emit_json_stdout(
            wrap_payload(
                "timesheet_doctor.ingest",
                result.to_dict(),
                build_run_summary(
                    command="ingest",
                    input_file=str(input_path),
                    metrics={
                        "record_count": result.record_count,
                        "dropped_count": result.dropped_count,
                        "duplicate_count": len(result.analysis.duplicates),
                        "warning_count": len(result.analysis.warnings),
                    },
                ),
            ),
            True,
        )
    else:
        lines = [
            "timesheet-doctor ingest",
            f"Upload: {result.upload_id}",
            f"File: {result.filename}",
            f"Records: {result.record_count}",
            f"Dropped rows: {result.dropped_count}",
        ]
        lines.extend(render_analysis_text(result.analysis))
        emit_human("\n".join(lines), quiet=args.quiet)
    return EXIT_SUCCESS


def run_uploads(args: argparse.Namespace) -> int:
    store = open_store(args)
    try:
        if args.uploads_command == "list":
            items = [item.to_dict() for item in store.list_uploads()]
            if args.json:
                maybe_emit_json_stdout({"uploads": items}, True)
            else:
                emit_human(
                    render_table(items, ["id", "original_filename", "record_count", "uploaded_at"]),
                    quiet=args.quiet,
                )
            return EXIT_SUCCESS

        if args.uploads_command == "show":
            upload = store.get_upload(args.upload_id)
            if upload is None:
                raise CliError(f"Upload not found: {args.upload_id}", EXIT_COMMAND_ERROR)
            if args.json:
                maybe_emit_json_stdout(upload.to_dict(), True)
            else:
                lines = [
                    f"Upload: {upload.id}",
                    f"File: {upload.original_filename}",
                    f"Stored as: {upload.filename}",
                    f"Records: {upload.record_count}",
                    f"Uploaded at: {upload.uploaded_at.isoformat()}",
                ]
                lines.extend(render_analysis_text(upload.analysis))
                emit_human("\n".join(lines), quiet=args.quiet)
            return EXIT_SUCCESS

        if args.uploads_command == "delete":
            deleted = store.delete_upload(args.upload_id)
            if not deleted:
                raise CliError(f"Upload not found: {args.upload_id}", EXIT_COMMAND_ERROR)
            if args.json:
                maybe_emit_json_stdout({"deleted": args.upload_id, "success": True}, True)
            else:
                emit_human(f"Deleted upload {args.upload_id}", quiet=args.quiet)
            return EXIT_SUCCESS

        raise CliError(f"Unknown uploads command: {args.uploads_command}", EXIT_COMMAND_ERROR)
    finally:
        store.dispose()


def run_records(args: argparse.Namespace) -> int:
    store = open_store(args)
    try:
        page = store.query_records(record_filter_from_args(args), args.page, args.limit)
    finally:
        store.dispose()

    payload = page.to_dict()
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(
            render_table(
                payload["records"],
                ["date", "name", "clock_in", "clock_out", "category", "department", "total_hours", "overtime_hours"],
            ),
            quiet=args.quiet,
        )
        pagination = payload["pagination"]
        emit_human(
            f"Page {pagination['page']}/{pagination['total_pages']} ({pagination['total']} records)",
            quiet=args.quiet,
        )
    return EXIT_SUCCESS


def run_filters(args: argparse.Namespace) -> int:
    store = open_store(args)
    try:
        options = store.filter_options()
    finally:
        store.dispose()

    if args.json:
        maybe_emit_json_stdout(options, True)
    else:
        date_range = options["date_range"]
        emit_human(
            "\n".join(
                [
                    f"Names: {', '.join(options['names']) or '-'}",
                    f"Categories: {', '.join(options['categories']) or '-'}",
                    f"Departments: {', '.join(options['departments']) or '-'}",
                    f"Workplaces: {', '.join(options['workplaces']) or '-'}",
                    f"Dates: {date_range['min_date'] or '-'} .. {date_range['max_date'] or '-'}",
                ]
            ),
            quiet=args.quiet,
        )
    return EXIT_SUCCESS


def load_frame(args: argparse.Namespace):
    store = open_store(args)
    try:
        records = store.all_records(RecordFilter(start_date=args.start, end_date=args.end))
    finally:
        store.dispose()
    return records_frame(records)


def run_stats(args: argparse.Namespace) -> int:
    stats = build_stats(load_frame(args))
    if args.json:
        maybe_emit_json_stdout(stats, True)
        return EXIT_SUCCESS

    sections = [
        ("By worker", stats["by_worker"], ["name", "days", "total_hours", "regular_hours", "overtime_hours", "avg_hours"]),
        ("By category", stats["by_category"], ["category", "count", "total_hours", "overtime_hours"]),
        ("By department", stats["by_department"], ["department", "count", "total_hours", "overtime_hours"]),
        ("By workplace", stats["by_workplace"], ["workplace", "count", "total_hours", "overtime_hours"]),
        ("Monthly", stats["monthly_trend"], ["month", "count", "total_hours", "overtime_hours"]),
    ]
    blocks = [f"{title}\n{render_table(rows, columns)}" for title, rows, columns in sections]
    emit_human("\n\n".join(blocks), quiet=args.quiet)
    return EXIT_SUCCESS


def run_pivot(args: argparse.Namespace) -> int:
    try:
        pivot = build_pivot(load_frame(args), args.rows, args.cols, args.value, args.agg)
    except InvalidReportField as exc:
        raise CliError(exc.message, EXIT_COMMAND_ERROR) from exc

    if args.json:
        maybe_emit_json_stdout(pivot, True)
    else:
        emit_human(render_table(pivot["data"], ["row_key", *pivot["columns"]]), quiet=args.quiet)
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    rule = WARNING_RULES.get(args.rule_id)
    if rule is None:
        eprint(f"Unknown rule id: {args.rule_id}")
        return EXIT_COMMAND_ERROR
    payload = {
        "rule_id": args.rule_id,
        "type": rule["type"],
        "severity": rule["severity"],
        "description": rule["description"],
        "evidence": rule["evidence"],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Rule: {args.rule_id}",
                    f"Type: {payload['type']}",
                    f"Severity: {payload['severity']}",
                    f"What it does: {payload['description']}",
                    f"What triggers it: {payload['evidence']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


COMMANDS = {
    "analyze": run_analyze,
    "ingest": run_ingest,
    "uploads": run_uploads,
    "records": run_records,
    "filters": run_filters,
    "stats": run_stats,
    "pivot": run_pivot,
    "explain": run_explain,
}


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(getattr(args, "quiet", False), getattr(args, "verbose", False))
        if args.command == "version":
            return run_version()
        handler = COMMANDS.get(args.command)
        if handler is None:
            raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
        return handler(args)
    except CliError as exc:
        eprint(str(exc))
        return exc.code
    except SQLAlchemyError as exc:
        eprint(f"Database error: {exc}")
        return EXIT_STORE_FAILED
    except TimesheetDoctorError as exc:
        eprint(exc.message)
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())
