"""
Natural-language summary for an analysed upload.

Without a text-generation client the summary is a fixed template built from
the counts. With a client, a bounded excerpt of the records and the rule
findings are sent as a prompt; any failure there falls back to a template
that says detailed analysis was unavailable.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

import requests

from timesheet_doctor.anomalies import detect
from timesheet_doctor.errors import SummaryUnavailable
from timesheet_doctor.models import AnalysisResult, AttendanceRecord, DuplicateEntry, WarningEntry

logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_TOKENS = 1500
PROMPT_RECORD_LIMIT = 100


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class AnthropicTextClient:
    """Minimal Messages API client; raises on anything but a non-empty text reply."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        url: str = ANTHROPIC_MESSAGES_URL,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.url = url
        self.session = session or requests.Session()

    def generate(self, prompt: str) -> str:
        response = self.session.post(
            self.url,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.model,
                "max_tokens": self.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return extract_text(response.json())


def extract_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise SummaryUnavailable("Unexpected response shape from text generation service")
    content = payload.get("content")
    if not isinstance(content, list) or not content:
        raise SummaryUnavailable("Text generation response has no content")
    first = content[0]
    if not isinstance(first, dict) or first.get("type") != "text":
        raise SummaryUnavailable("Text generation response did not start with a text block")
    text = (first.get("text") or "").strip()
    if not text:
        raise SummaryUnavailable("Text generation response was empty")
    return text


def _record_line(record: AttendanceRecord) -> str:
    return (
        f"{record.date} | {record.name} | {record.clock_in}-{record.clock_out} | "
        f"{record.category} | {record.department} | {record.workplace} | "
        f"총{record.total_hours:g}h | 정규{record.regular_hours:g}h | "
        f"연장{record.overtime_hours:g}h | 휴게{record.break_time:g}h | 연차:{record.annual_leave}"
    )


def build_prompt(
    records: Sequence[AttendanceRecord],
    duplicates: Sequence[DuplicateEntry],
    warnings: Sequence[WarningEntry],
) -> str:
    snippet = "\n".join(_record_line(record) for record in records[:PROMPT_RECORD_LIMIT])
    duplicate_info = ""
    if duplicates:
        duplicate_info = "\n\n발견된 중복:\n" + "\n".join(entry.details for entry in duplicates)
    warning_info = ""
    if warnings:
        warning_info = "\n\n기본 점검 결과:\n" + "\n".join(entry.message for entry in warnings)

    return (
        "당신은 근태 관리 전문가입니다. 다음 근태 데이터를 분석하고 우려스러운 패턴이나 "
        "이상사항을 한국어로 요약해주세요.\n\n"
        f"근태 데이터 (총 {len(records)}건, 처음 {PROMPT_RECORD_LIMIT}건 표시):\n"
        f"{snippet}"
        f"{duplicate_info}"
        f"{warning_info}\n\n"
        "다음을 확인해주세요:\n"
        "1. 중복 기록 외에 추가적인 이상 패턴\n"
        "2. 근로기준법 관점에서 우려되는 사항 (주 52시간, 야간근로 등)\n"
        "3. 데이터 일관성 문제\n"
        "4. 전반적인 근태 현황 요약\n\n"
        "간결하게 3-5문장으로 요약해주세요."
    )


def template_summary(record_count: int, duplicate_count: int, warning_count: int) -> str:
    parts = [f"총 {record_count}건의 근태 기록을 분석했습니다."]
    if duplicate_count > 0:
        parts.append(f"{duplicate_count}건의 중복 기록이 발견되었습니다.")
    if warning_count > 0:
        parts.append(f"{warning_count}건의 주의사항이 발견되었습니다.")
    if duplicate_count == 0 and warning_count == 0:
        parts.append("특별한 이상사항은 발견되지 않았습니다.")
    return " ".join(parts)


def fallback_summary(record_count: int, duplicate_count: int, warning_count: int) -> str:
    return (
        f"총 {record_count}건 분석 완료. 중복 {duplicate_count}건, "
        f"주의사항 {warning_count}건 발견. (AI 상세 분석 불가)"
    )


def summarize(
    records: Sequence[AttendanceRecord],
    duplicates: Sequence[DuplicateEntry],
    warnings: Sequence[WarningEntry],
    client: TextGenerator | None = None,
) -> str:
    if client is None:
        return template_summary(len(records), len(duplicates), len(warnings))

    try:
        return client.generate(build_prompt(records, duplicates, warnings))
    except Exception as exc:
        # Summary text is optional; ingestion must never fail because of it.
        logger.warning("Detailed summary unavailable, using fallback: %s", exc)
        return fallback_summary(len(records), len(duplicates), len(warnings))


def analyze_attendance(
    records: Sequence[AttendanceRecord],
    client: TextGenerator | None = None,
) -> AnalysisResult:
    duplicates, warnings = detect(records)
    summary = summarize(records, duplicates, warnings, client)
    return AnalysisResult(duplicates=tuple(duplicates), warnings=tuple(warnings), summary=summary)
