"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping

from timesheet_doctor.pipeline import IngestContext
from timesheet_doctor.store import UploadStore
from timesheet_doctor.summarizer import DEFAULT_MODEL, DEFAULT_TIMEOUT_SECONDS, AnthropicTextClient

DEFAULT_DATABASE_URL = "sqlite:///timesheet-doctor.db"
DATABASE_URL_VARS = ("TIMESHEET_DOCTOR_DATABASE_URL", "DATABASE_URL", "POSTGRES_URL")


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    anthropic_api_key: str | None = None
    model: str = DEFAULT_MODEL
    summary_timeout: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        database_url = DEFAULT_DATABASE_URL
        for name in DATABASE_URL_VARS:
            if env.get(name):
                database_url = env[name]
                break

        raw_timeout = env.get("TIMESHEET_DOCTOR_SUMMARY_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT_SECONDS
        except ValueError:
            raise ValueError(
                f"TIMESHEET_DOCTOR_SUMMARY_TIMEOUT must be a number of seconds, got {raw_timeout!r}"
            )

        return cls(
            database_url=database_url,
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            model=env.get("TIMESHEET_DOCTOR_MODEL") or DEFAULT_MODEL,
            summary_timeout=timeout,
        )

    def with_database_url(self, url: str | None) -> "Settings":
        if not url:
            return self
        return replace(self, database_url=url)


def build_text_client(settings: Settings) -> AnthropicTextClient | None:
    if not settings.anthropic_api_key:
        return None
    return AnthropicTextClient(
        settings.anthropic_api_key,
        model=settings.model,
        timeout=settings.summary_timeout,
    )


def build_context(settings: Settings) -> IngestContext:
    return IngestContext(
        store=UploadStore.from_url(settings.database_url),
        text_client=build_text_client(settings),
    )
