"""Spreadsheet export of the derived analysis (metric rows x period columns)."""

from __future__ import annotations

from io import BytesIO

import pandas as pd

from deal_engine.numeric import format_currency, format_day_count


EXPORT_METRICS = [
    "Revenue",
    "Gross Profit",
    "EBITDA",
    "Normalized EBITDA",
    "Normalized SDE",
    "Net Income",
    "Net Working Capital",
    "DSO (Days)",
    "DPO (Days)",
]
DAY_COUNT_METRICS = {"DSO (Days)", "DPO (Days)"}
EXPORT_SHEET_NAME = "Financial Analysis"


def build_export_frame(analysis_df: pd.DataFrame, formatted: bool = False) -> pd.DataFrame:
    """One row per exported metric and one column per displayed period.

    With ``formatted=True`` values become display strings (currency, or whole
    days for DSO/DPO) instead of numbers.
    """
    periods = [str(p) for p in analysis_df["Period"]]
    rows = []
    for metric in EXPORT_METRICS:
        row: dict = {"Metric": metric}
        for period, value in zip(periods, analysis_df[metric]):
            if formatted:
                row[period] = format_day_count(value) if metric in DAY_COUNT_METRICS else format_currency(value)
            else:
                row[period] = float(value)
        rows.append(row)
    return pd.DataFrame(rows, columns=["Metric", *periods])


def export_csv_bytes(analysis_df: pd.DataFrame, formatted: bool = False) -> bytes:
    return build_export_frame(analysis_df, formatted=formatted).to_csv(index=False).encode("utf-8")


def export_excel_bytes(analysis_df: pd.DataFrame, extra_frames: dict[str, pd.DataFrame] | None = None) -> bytes:
    frames = {EXPORT_SHEET_NAME: build_export_frame(analysis_df)}
    frames.update(extra_frames or {})
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        for sheet_name, frame in frames.items():
            frame.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    output.seek(0)
    return output.getvalue()


def export_file_stem(company_name: str) -> str:
    stem = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in str(company_name or "").strip())
    return f"{stem or 'financial'}_analysis"
