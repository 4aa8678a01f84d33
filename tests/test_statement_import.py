from __future__ import annotations

import json
from copy import deepcopy
from io import BytesIO

import pandas as pd
import pytest

from deal_engine.statement_import import (
    import_statement_frame,
    is_ytd_column,
    merge_scanned_periods,
    metric_key_for_label,
    parse_scan_payload,
    read_statement_file,
)


def test_alias_lookup_is_case_insensitive_and_trimmed():
    assert metric_key_for_label("  sales ") == "revenue"
    assert metric_key_for_label("TURNOVER") == "revenue"
    assert metric_key_for_label("Cost of Goods Sold") == "cogs"
    assert metric_key_for_label("SG&A") == "operating_expenses"
    assert metric_key_for_label("Trade Debtors") == "accounts_receivable"
    assert metric_key_for_label("EBITDA") is None
    assert metric_key_for_label(None) is None


def test_ytd_and_ttm_columns_are_detected():
    assert is_ytd_column("YTD 2025")
    assert is_ytd_column("ttm")
    assert not is_ytd_column("2024")


def test_import_statement_frame_replaces_periods_and_ytd(base_financials):
    df = pd.DataFrame(
        {
            "Line Item": ["Sales", "Cost of Sales", "Operating Expenses", "Receivables", "Headcount"],
            "2023": ["1,000,000", "600,000", "250,000", "90,000", "12"],
            "2024": ["1,200,000", "700,000", "260,000", "110,000", "14"],
            "YTD 2025": ["800,000", "470,000", "180,000", "120,000", "15"],
        }
    )
    updated, warnings = import_statement_frame(df, deepcopy(base_financials))
    assert [p["period_name"] for p in updated["periods"]] == ["2023", "2024"]
    assert updated["periods"][1]["revenue"] == 1_200_000.0
    assert updated["periods"][0]["accounts_receivable"] == 90_000.0
    assert updated["periods"][0]["cash"] == 0.0
    assert updated["ytd_actuals"]["revenue"] == 800_000.0
    assert updated["add_backs"] == base_financials["add_backs"]
    assert warnings == ["Ignored unrecognized rows: Headcount."]


def test_import_with_only_ytd_columns_keeps_existing_periods(base_financials):
    df = pd.DataFrame({"Metric": ["Revenue"], "TTM": ["500"]})
    updated, warnings = import_statement_frame(df, base_financials)
    assert updated["periods"] == base_financials["periods"]
    assert updated["ytd_actuals"]["revenue"] == 500.0
    assert any("existing periods were kept" in w for w in warnings)


def test_import_requires_a_period_column(base_financials):
    with pytest.raises(ValueError):
        import_statement_frame(pd.DataFrame({"Metric": ["Revenue"]}), base_financials)


def test_read_statement_file_csv_and_excel():
    csv_bytes = b"Metric,2024\nRevenue,\"1,000\"\nCOGS,400\n"
    df = read_statement_file("pnl.csv", csv_bytes)
    assert list(df.columns) == ["Metric", "2024"]
    assert df.iloc[0]["2024"] == "1,000"

    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        pd.DataFrame({"Metric": ["Revenue"], "2024": [1000]}).to_excel(writer, index=False)
    xl = read_statement_file("pnl.XLSX", output.getvalue())
    assert xl.iloc[0]["Metric"] == "Revenue"

    with pytest.raises(ValueError):
        read_statement_file("pnl.pdf", b"%PDF")


def test_parse_scan_payload_errors():
    with pytest.raises(ValueError):
        parse_scan_payload("{not json")
    with pytest.raises(ValueError):
        parse_scan_payload("[]")
    with pytest.raises(ValueError, match="Could not parse"):
        parse_scan_payload(json.dumps({"error": "Could not parse financial data from file."}))
    with pytest.raises(ValueError):
        parse_scan_payload(json.dumps({"periods": "2024"}))
    assert parse_scan_payload(json.dumps({"periods": [{"year": "2024"}, "junk"]})) == [{"year": "2024"}]


def test_merge_scanned_periods_updates_by_exact_name_and_appends(base_financials):
    periods = deepcopy(base_financials["periods"])
    existing_name = periods[0]["period_name"]
    scanned = [
        {"year": existing_name, "Revenue": 3_000_000, "COGS": 1_800_000, "OpEx": 700_000},
        {"year": "1999", "Revenue": 10, "Taxes": None},
    ]
    merged, added, updated = merge_scanned_periods(periods, scanned)
    assert (added, updated) == (1, 1)
    assert len(merged) == len(periods) + 1
    assert merged[0]["revenue"] == 3_000_000.0
    assert merged[0]["operating_expenses"] == 700_000.0
    assert merged[0]["cash"] == periods[0]["cash"]
    assert merged[-1]["period_name"] == "1999"
    assert merged[-1]["taxes"] == 0.0
    assert periods[0]["revenue"] != 3_000_000.0
