"""Bring external financial statements into the period records.

Two inputs are supported: a tabular statement (CSV or Excel, one metric per row
and one period per column) and the JSON record produced by the automated
document scan.
"""

from __future__ import annotations

import json
from copy import deepcopy
from io import BytesIO
from pathlib import Path
from typing import Any

import pandas as pd

from deal_engine.numeric import parse_amount
from deal_engine.schema import new_period


METRIC_ALIASES: dict[str, list[str]] = {
    "revenue": ["Revenue", "Sales", "Total Revenue", "Turnover"],
    "cogs": ["COGS", "Cost of Goods Sold", "Cost of Sales", "Cost of Revenue"],
    "operating_expenses": ["OpEx", "Operating Expenses", "SG&A", "Selling, General & Administrative", "SGA"],
    "depreciation": ["Depreciation"],
    "amortization": ["Amortization", "Amortisation"],
    "interest_expense": ["Interest", "Interest Expense", "Finance Costs"],
    "taxes": ["Taxes", "Income Tax Expense", "Provision for Income Taxes"],
    "cash": ["Cash", "Cash and Cash Equivalents"],
    "accounts_receivable": ["A/R", "Accounts Receivable", "Receivables", "Trade Debtors"],
    "inventory": ["Inventory", "Stock", "Inventories"],
    "other_current_assets": ["Other Current Assets"],
    "long_term_assets": [
        "Long-Term Assets",
        "Fixed Assets",
        "Non-Current Assets",
        "PP&E",
        "Property, Plant, and Equipment",
    ],
    "accounts_payable": ["A/P", "Accounts Payable", "Payables", "Trade Creditors"],
    "short_term_debt": ["Short-Term Debt", "Current Portion of Debt", "Current Debt"],
    "other_current_liabilities": [
        "Other Current Liabilities",
        "Accrued Expenses",
        "Accrued Liabilities",
        "Other Current Liab.",
    ],
    "long_term_debt": ["Long-Term Debt", "Non-Current Liabilities", "Debt"],
    "shareholder_equity": [
        "Equity",
        "Shareholder Equity",
        "Stockholder Equity",
        "Total Equity",
        "Shareholders Equity",
    ],
}

_ALIAS_LOOKUP = {alias.strip().lower(): key for key, aliases in METRIC_ALIASES.items() for alias in aliases}

SCAN_FIELD_MAP = {
    "Revenue": "revenue",
    "COGS": "cogs",
    "OpEx": "operating_expenses",
    "Depreciation": "depreciation",
    "Amortization": "amortization",
    "Interest": "interest_expense",
    "Taxes": "taxes",
}

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def metric_key_for_label(label: Any) -> str | None:
    if label is None or (isinstance(label, float) and pd.isna(label)):
        return None
    return _ALIAS_LOOKUP.get(str(label).strip().lower())


def is_ytd_column(name: Any) -> bool:
    lowered = str(name).lower()
    return "ytd" in lowered or "ttm" in lowered


def import_statement_frame(df: pd.DataFrame, financials: dict) -> tuple[dict, list[str]]:
    """Replace periods (and YTD actuals) with the columns of an imported statement.

    The first column holds metric labels, matched through ``METRIC_ALIASES``;
    unknown labels are skipped. A column whose name mentions YTD or TTM becomes
    the YTD actuals, every other column becomes a historic period.
    """
    if df.shape[1] < 2:
        raise ValueError("Statement must have a metric column and at least one period column.")

    warnings: list[str] = []
    metric_col = df.columns[0]
    period_cols = list(df.columns[1:])
    imported = {str(col): new_period(str(col).strip()) for col in period_cols}

    unmatched = []
    for _, row in df.iterrows():
        key = metric_key_for_label(row[metric_col])
        if key is None:
            label = row[metric_col]
            if label is not None and not (isinstance(label, float) and pd.isna(label)) and str(label).strip():
                unmatched.append(str(label).strip())
            continue
        for col in period_cols:
            imported[str(col)][key] = parse_amount(row[col])
    if unmatched:
        warnings.append(f"Ignored unrecognized rows: {', '.join(unmatched)}.")

    updated = deepcopy(financials)
    periods = []
    for col in period_cols:
        period = imported[str(col)]
        if is_ytd_column(col):
            updated["ytd_actuals"] = period
        else:
            periods.append(period)
    if periods:
        updated["periods"] = periods
    else:
        warnings.append("No historic period columns found; existing periods were kept.")
    return updated, warnings


def read_statement_file(name: str, raw_bytes: bytes) -> pd.DataFrame:
    suffix = Path(str(name)).suffix.lower()
    buffer = BytesIO(raw_bytes)
    if suffix == ".csv":
        return pd.read_csv(buffer, dtype=object, keep_default_na=False)
    if suffix in EXCEL_SUFFIXES:
        return pd.read_excel(buffer, dtype=object, engine="openpyxl").fillna("")
    raise ValueError(f"Unsupported statement file type: {suffix or name}")


def parse_scan_payload(raw_json: str | bytes) -> list[dict]:
    """Scanned periods from the document-scan JSON response."""
    try:
        payload = json.loads(raw_json)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Scan result is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Scan result must be a JSON object.")
    if payload.get("error"):
        raise ValueError(str(payload["error"]))
    periods = payload.get("periods")
    if not isinstance(periods, list):
        raise ValueError("Scan result has no periods list.")
    return [p for p in periods if isinstance(p, dict)]


def merge_scanned_periods(periods: list[dict], scanned: list[dict]) -> tuple[list[dict], int, int]:
    """Merge scanned income-statement lines by exact period name.

    Returns ``(periods, added, updated)``. Matching periods are updated in
    place; unmatched years are appended as new periods.
    """
    merged = deepcopy(periods)
    added = 0
    updated = 0
    for item in scanned:
        name = str(item.get("year", ""))
        values = {field: parse_amount(item.get(label) or 0) for label, field in SCAN_FIELD_MAP.items()}
        existing = next((p for p in merged if p.get("period_name") == name), None)
        if existing is not None:
            existing.update(values)
            updated += 1
        else:
            period = new_period(name)
            period.update(values)
            merged.append(period)
            added += 1
    return merged, added, updated
