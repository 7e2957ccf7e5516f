"""Exception types shared by the ingestion pipeline, store, and CLI."""

from __future__ import annotations


class TimesheetDoctorError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class IngestError(TimesheetDoctorError):
    """Structural problem with an upload, detected before anything is written."""


class MissingRequiredColumn(IngestError):
    def __init__(self, field: str, header: str) -> None:
        super().__init__(f"필수 컬럼 '{header}'을(를) 찾을 수 없습니다.")
        self.field = field
        self.header = header


class EmptyDataset(IngestError):
    def __init__(self, message: str = "유효한 근태 데이터가 없습니다.") -> None:
        super().__init__(message)


class UnsupportedFormat(IngestError):
    def __init__(self, extension: str, supported: list[str]) -> None:
        super().__init__(
            f"지원하지 않는 파일 형식입니다: '{extension or '[missing extension]'}' "
            f"({', '.join(supported)}만 가능)"
        )
        self.extension = extension


class SummaryUnavailable(TimesheetDoctorError):
    """The text-generation service could not produce a summary."""


class InvalidReportField(TimesheetDoctorError):
    pass
