#!/usr/bin/env python3
from __future__ import annotations

from typing import Optional

import pandas as pd
import streamlit as st

from timesheet_doctor.config import Settings, build_context
from timesheet_doctor.errors import IngestError
from timesheet_doctor.loader import ALL_FORMATS, MAX_UPLOAD_BYTES
from timesheet_doctor.models import AnalysisResult
from timesheet_doctor.pipeline import IngestContext, ingest
from timesheet_doctor.reports import (
    PIVOT_AGGREGATIONS,
    PIVOT_KEY_FIELDS,
    PIVOT_VALUE_FIELDS,
    build_pivot,
    build_stats,
    records_frame,
)
from timesheet_doctor.store import RecordFilter

PAGE_LIMIT = 100
SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@st.cache_resource(show_spinner=False)
def load_context() -> IngestContext:
    return build_context(Settings.from_env())


def ensure_state() -> None:
    st.session_state.setdefault("last_result", None)
    st.session_state.setdefault("records_page", 1)


def set_visuals() -> None:
    st.set_page_config(page_title="timesheet-doctor", page_icon="🗓️", layout="wide")


def render_analysis(analysis: AnalysisResult) -> None:
    st.markdown(f"**요약**: {analysis.summary}")

    if analysis.duplicates:
        st.subheader(f"중복 기록 ({len(analysis.duplicates)})")
        st.dataframe(
            pd.DataFrame([entry.to_dict() for entry in analysis.duplicates]),
            width="stretch",
            hide_index=True,
        )

    if analysis.warnings:
        st.subheader(f"주의사항 ({len(analysis.warnings)})")
        rows = [
            {
                "severity": entry.severity,
                "type": entry.type,
                "message": entry.message,
                "records": ", ".join(f"{item.date} {item.name}" for item in entry.related_records),
            }
            for entry in sorted(analysis.warnings, key=lambda w: SEVERITY_ORDER.get(w.severity, 9))
        ]
        st.dataframe(pd.DataFrame(rows), width="stretch", hide_index=True)

    if not analysis.duplicates and not analysis.warnings:
        st.success("특별한 이상사항은 발견되지 않았습니다.")


def render_upload(context: IngestContext) -> None:
    uploaded = st.file_uploader(
        "근태 파일 업로드",
        type=[ext.lstrip(".") for ext in sorted(ALL_FORMATS)],
        key="upload_input",
    )
    st.caption(f"지원 형식: {', '.join(sorted(ALL_FORMATS))} (최대 {MAX_UPLOAD_BYTES // (1024 * 1024)}MB)")

    if st.button("분석 및 저장", type="primary", disabled=uploaded is None):
        with st.spinner("분석 중입니다..."):
            try:
                result = ingest(uploaded.getvalue(), uploaded.name, context)
            except (IngestError, ValueError, ImportError) as exc:
                st.error(str(exc))
                return
            except Exception as exc:
                st.error(f"업로드 저장 중 오류가 발생했습니다: {exc}")
                return
        st.session_state["last_result"] = result

    result = st.session_state.get("last_result")
    if result is None:
        return
    st.success(f"{result.filename}: {result.record_count}건 저장 (제외 {result.dropped_count}건)")
    render_analysis(result.analysis)


def render_history(context: IngestContext) -> None:
    uploads = context.store.list_uploads()
    if not uploads:
        st.info("저장된 업로드가 없습니다.")
        return

    for upload in uploads:
        label = f"{upload.original_filename} · {upload.record_count}건 · {upload.uploaded_at:%Y-%m-%d %H:%M}"
        with st.expander(label):
            render_analysis(upload.analysis)
            if st.button("삭제", key=f"delete-{upload.id}"):
                context.store.delete_upload(upload.id)
                st.rerun()


def select_option(label: str, options: list[str], key: str) -> Optional[str]:
    choice = st.selectbox(label, ["(전체)", *options], key=key)
    return None if choice == "(전체)" else choice


def render_records(context: IngestContext) -> None:
    options = context.store.filter_options()
    date_range = options["date_range"]

    cols = st.columns(3)
    with cols[0]:
        start = st.text_input("시작일", value=date_range["min_date"] or "", key="records_start")
        name = select_option("이름", options["names"], "records_name")
    with cols[1]:
        end = st.text_input("종료일", value=date_range["max_date"] or "", key="records_end")
        category = select_option("구분", options["categories"], "records_category")
    with cols[2]:
        department = select_option("부서", options["departments"], "records_department")
        workplace = select_option("근무지", options["workplaces"], "records_workplace")

    filters = RecordFilter(
        start_date=start or None,
        end_date=end or None,
        name=name,
        category=category,
        department=department,
        workplace=workplace,
    )
    page_number = st.number_input("페이지", min_value=1, value=st.session_state["records_page"], step=1)
    page = context.store.query_records(filters, int(page_number), PAGE_LIMIT)

    st.caption(f"{page.total}건 중 {page.page}/{max(page.total_pages, 1)} 페이지")
    st.dataframe(
        pd.DataFrame([record.to_dict() for record in page.records]),
        width="stretch",
        hide_index=True,
    )


def render_reports(context: IngestContext) -> None:
    cols = st.columns(2)
    with cols[0]:
        start = st.text_input("시작일", key="reports_start")
    with cols[1]:
        end = st.text_input("종료일", key="reports_end")

    frame = records_frame(context.store.all_records(RecordFilter(start_date=start or None, end_date=end or None)))
    stats = build_stats(frame)

    st.subheader("근로자별")
    st.dataframe(pd.DataFrame(stats["by_worker"]), width="stretch", hide_index=True)
    st.subheader("월별")
    st.dataframe(pd.DataFrame(stats["monthly_trend"]), width="stretch", hide_index=True)

    for title, key in (("구분별", "by_category"), ("부서별", "by_department"), ("근무지별", "by_workplace")):
        with st.expander(title):
            st.dataframe(pd.DataFrame(stats[key]), width="stretch", hide_index=True)

    st.subheader("피벗")
    pivot_cols = st.columns(4)
    row_field = pivot_cols[0].selectbox("행", PIVOT_KEY_FIELDS, index=0)
    col_field = pivot_cols[1].selectbox("열", PIVOT_KEY_FIELDS, index=PIVOT_KEY_FIELDS.index("department"))
    value_field = pivot_cols[2].selectbox("값", PIVOT_VALUE_FIELDS, index=0)
    agg = pivot_cols[3].selectbox("집계", list(PIVOT_AGGREGATIONS), index=0)

    pivot = build_pivot(frame, row_field, col_field, value_field, agg)
    if pivot["data"]:
        table = pd.DataFrame(pivot["data"]).set_index("row_key").reindex(columns=pivot["columns"])
        st.dataframe(table, width="stretch")
    else:
        st.info("표시할 데이터가 없습니다.")


def main() -> None:
    set_visuals()
    ensure_state()

    st.title("timesheet-doctor")
    st.caption("근태 엑셀/CSV 파일을 업로드하면 정규화 후 중복과 이상 근무를 점검하고 저장합니다.")

    try:
        context = load_context()
    except Exception as exc:
        st.error(f"데이터베이스에 연결할 수 없습니다: {exc}")
        return

    upload_tab, history_tab, records_tab, reports_tab = st.tabs(["업로드", "업로드 이력", "근태 기록", "통계"])
    with upload_tab:
        render_upload(context)
    with history_tab:
        render_history(context)
    with records_tab:
        render_records(context)
    with reports_tab:
        render_reports(context)


if __name__ == "__main__":
    main()
