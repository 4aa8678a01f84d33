from __future__ import annotations

from io import BytesIO, StringIO

import pandas as pd

from deal_engine.export import (
    EXPORT_METRICS,
    EXPORT_SHEET_NAME,
    build_export_frame,
    export_csv_bytes,
    export_excel_bytes,
    export_file_stem,
)
from deal_engine.ratios import run_financial_analysis


def test_export_frame_has_one_row_per_metric_and_one_column_per_period(base_financials):
    analysis = run_financial_analysis(base_financials, as_of_year=2099)
    frame = build_export_frame(analysis)
    assert list(frame["Metric"]) == EXPORT_METRICS
    assert list(frame.columns[1:]) == [str(p) for p in analysis["Period"]]
    revenue = frame[frame["Metric"] == "Revenue"].iloc[0]
    assert revenue[str(analysis.iloc[0]["Period"])] == analysis.iloc[0]["Revenue"]


def test_formatted_export_uses_currency_and_whole_days(base_financials):
    analysis = run_financial_analysis(base_financials, as_of_year=2099)
    frame = build_export_frame(analysis, formatted=True)
    first_period = str(analysis.iloc[0]["Period"])
    assert frame[frame["Metric"] == "Revenue"].iloc[0][first_period].startswith("$")
    dso = frame[frame["Metric"] == "DSO (Days)"].iloc[0][first_period]
    assert dso.isdigit()


def test_csv_export_round_trips(base_financials):
    analysis = run_financial_analysis(base_financials, as_of_year=2099)
    parsed = pd.read_csv(StringIO(export_csv_bytes(analysis).decode("utf-8")))
    assert list(parsed["Metric"]) == EXPORT_METRICS


def test_excel_export_writes_analysis_and_extra_sheets(base_financials):
    analysis = run_financial_analysis(base_financials, as_of_year=2099)
    extra = {"Benchmarks": pd.DataFrame({"Metric": ["Gross Margin"], "Value": [0.4]})}
    workbook = pd.ExcelFile(BytesIO(export_excel_bytes(analysis, extra)), engine="openpyxl")
    assert workbook.sheet_names == [EXPORT_SHEET_NAME, "Benchmarks"]


def test_export_file_stem_is_filesystem_safe():
    assert export_file_stem("Acme Co. / East") == "Acme_Co____East_analysis"
    assert export_file_stem("") == "financial_analysis"
