"""Shared versioned contracts for timesheet-doctor outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from timesheet_doctor import __version__ as TOOL_VERSION

CONTRACT_VERSIONS = {
    "timesheet_doctor.analysis": "1.0.0",
    "timesheet_doctor.ingest": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    input_file: str | None,
    status: str = "ok",
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "timesheet-doctor",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": input_file,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def wrap_payload(name: str, payload: dict[str, Any], run_summary: dict[str, Any]) -> dict[str, Any]:
    """Attach the contract envelope and run summary to a machine payload."""
    contract = build_contract(name)
    wrapped = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
    }
    wrapped.update(payload)
    wrapped["run_summary"] = run_summary
    return wrapped
