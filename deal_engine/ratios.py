"""Per-period ratio, working-capital, and benchmark analysis."""

from __future__ import annotations

from datetime import datetime

import numpy as np
import pandas as pd

from deal_engine.normalization import add_back_totals, annualization_factor, income_statement, normalize_earnings
from deal_engine.numeric import format_day_count, format_percent, format_ratio, parse_amount
from deal_engine.schema import BALANCE_SHEET_FIELDS, INCOME_STATEMENT_FIELDS, PERIOD_FIELD_LABELS, period_year


YTD_ANNUALIZED_ID = "ytd-annualized"

ANALYSIS_COLUMNS = [
    "Period ID",
    "Period",
    "Annualized",
    *[PERIOD_FIELD_LABELS[f] for f in INCOME_STATEMENT_FIELDS],
    "Gross Profit",
    "EBITDA",
    "EBIT",
    "Net Income",
    "Other Add-Backs",
    "Owner Comp Add-Back",
    "Normalized EBITDA",
    "Normalized SDE",
    *[PERIOD_FIELD_LABELS[f] for f in BALANCE_SHEET_FIELDS],
    "Total Current Assets",
    "Total Assets",
    "Total Current Liabilities",
    "Net Working Capital",
    "Revenue Growth",
    "Gross Margin",
    "EBITDA Margin",
    "Net Margin",
    "Current Ratio",
    "Quick Ratio",
    "DSO (Days)",
    "DPO (Days)",
]

LOWER_IS_BETTER_METRICS = {"DSO (Days)", "DPO (Days)"}

BENCHMARK_ROWS = [
    ("Gross Margin", "gross_margin", format_percent),
    ("EBITDA Margin", "ebitda_margin", format_percent),
    ("Net Margin", None, format_percent),
    ("Current Ratio", "current_ratio", format_ratio),
    ("Quick Ratio", None, format_ratio),
    ("DSO (Days)", "dso", format_day_count),
    ("DPO (Days)", "dpo", format_day_count),
]

COMMON_SIZE_ROWS = {
    "revenue": ["Revenue", "COGS", "Gross Profit", "OpEx", "EBITDA", "Net Income"],
    "assets": [PERIOD_FIELD_LABELS[f] for f in BALANCE_SHEET_FIELDS] + ["Total Current Assets", "Total Current Liabilities"],
}


def _safe_div(a: float, b: float) -> float:
    return float(a / b) if b else 0.0


def _sort_key(indexed: tuple[int, dict]) -> tuple[int, int]:
    idx, period = indexed
    year = period_year(period.get("period_name"))
    if year is None:
        return (1, idx)
    return (0, year)


def annualized_ytd_period(ytd_actuals: dict, as_of_year: int) -> dict:
    period = dict(ytd_actuals)
    period["id"] = YTD_ANNUALIZED_ID
    period["period_name"] = f"{int(as_of_year)} (Ann.)"
    return period


def order_periods(periods: list[dict], ytd_actuals: dict | None = None, as_of_year: int | None = None) -> list[dict]:
    """Chronological order by the leading year in each period name.

    When YTD actuals are given, an annualized copy named ``"<year> (Ann.)"`` is
    slotted in at ``as_of_year`` (default: the current calendar year). Periods
    without a leading year go last in entry order.
    """
    candidates = list(periods)
    if ytd_actuals is not None:
        year = int(as_of_year) if as_of_year is not None else datetime.now().year
        candidates.append(annualized_ytd_period(ytd_actuals, year))
    return [p for _, p in sorted(enumerate(candidates), key=_sort_key)]


def period_metrics(
    period: dict,
    prev_period: dict | None,
    totals,
    factor: float = 1.0,
) -> dict:
    """Every derived metric for one period, keyed by display column name."""
    lines = income_statement(period, factor)
    earnings = normalize_earnings(lines["ebitda"], totals)
    bs = {field: parse_amount(period.get(field, 0.0)) for field in BALANCE_SHEET_FIELDS}

    total_current_assets = bs["cash"] + bs["accounts_receivable"] + bs["inventory"] + bs["other_current_assets"]
    total_assets = total_current_assets + bs["long_term_assets"]
    total_current_liabilities = bs["accounts_payable"] + bs["short_term_debt"] + bs["other_current_liabilities"]
    net_working_capital = (bs["accounts_receivable"] + bs["inventory"] + bs["other_current_assets"]) - (
        bs["accounts_payable"] + bs["other_current_liabilities"]
    )

    revenue = lines["revenue"]
    cogs = lines["cogs"]
    prev_revenue = parse_amount(prev_period.get("revenue", 0.0)) if prev_period else 0.0
    prev_ar = parse_amount(prev_period.get("accounts_receivable", 0.0)) if prev_period else bs["accounts_receivable"]
    prev_ap = parse_amount(prev_period.get("accounts_payable", 0.0)) if prev_period else bs["accounts_payable"]
    avg_ar = (bs["accounts_receivable"] + prev_ar) / 2
    avg_ap = (bs["accounts_payable"] + prev_ap) / 2

    row = {
        "Period ID": period.get("id", ""),
        "Period": str(period.get("period_name", "")),
        "Annualized": factor != 1.0,
    }
    row.update({PERIOD_FIELD_LABELS[f]: lines[f] for f in INCOME_STATEMENT_FIELDS})
    row.update(
        {
            "Gross Profit": lines["gross_profit"],
            "EBITDA": lines["ebitda"],
            "EBIT": lines["ebit"],
            "Net Income": lines["net_income"],
            "Other Add-Backs": totals.other,
            "Owner Comp Add-Back": totals.owner_comp,
            "Normalized EBITDA": earnings.normalized_ebitda,
            "Normalized SDE": earnings.normalized_sde,
        }
    )
    row.update({PERIOD_FIELD_LABELS[f]: bs[f] for f in BALANCE_SHEET_FIELDS})
    row.update(
        {
            "Total Current Assets": total_current_assets,
            "Total Assets": total_assets,
            "Total Current Liabilities": total_current_liabilities,
            "Net Working Capital": net_working_capital,
            "Revenue Growth": _safe_div(revenue - prev_revenue, prev_revenue),
            "Gross Margin": _safe_div(lines["gross_profit"], revenue),
            "EBITDA Margin": _safe_div(lines["ebitda"], revenue),
            "Net Margin": _safe_div(lines["net_income"], revenue),
            "Current Ratio": _safe_div(total_current_assets, total_current_liabilities),
            "Quick Ratio": _safe_div(bs["cash"] + bs["accounts_receivable"], total_current_liabilities),
            "DSO (Days)": _safe_div(avg_ar, revenue) * 365,
            "DPO (Days)": _safe_div(avg_ap, cogs) * 365,
        }
    )
    return row


def run_financial_analysis(financials: dict, as_of_year: int | None = None) -> pd.DataFrame:
    """Recompute every displayed period (historic plus annualized YTD) in chronological order."""
    totals = add_back_totals(financials.get("add_backs", []), financials.get("owner_comp_add_back", 0.0))
    factor = annualization_factor(financials.get("ytd_months", 12))
    ordered = order_periods(financials.get("periods", []), financials.get("ytd_actuals"), as_of_year)

    rows = []
    for idx, period in enumerate(ordered):
        prev_period = ordered[idx - 1] if idx > 0 else None
        period_factor = factor if period.get("id") == YTD_ANNUALIZED_ID else 1.0
        rows.append(period_metrics(period, prev_period, totals, period_factor))
    return pd.DataFrame(rows, columns=ANALYSIS_COLUMNS)


def ytd_actuals_metrics(financials: dict) -> dict:
    """Metrics for the raw, non-annualized YTD figures."""
    totals = add_back_totals(financials.get("add_backs", []), financials.get("owner_comp_add_back", 0.0))
    return period_metrics(financials.get("ytd_actuals", {}), None, totals, 1.0)


def nwc_peg(analysis_df: pd.DataFrame) -> float:
    """Average net working capital across the displayed periods."""
    if analysis_df.empty:
        return 0.0
    return float(analysis_df["Net Working Capital"].mean())


def compare_to_benchmark(metric: str, value: float, benchmark: float) -> str:
    if not benchmark or not np.isfinite(value):
        return "neutral"
    if metric in LOWER_IS_BETTER_METRICS:
        if value < benchmark:
            return "better"
        if value > benchmark:
            return "worse"
        return "neutral"
    if value > benchmark:
        return "better"
    if value < benchmark:
        return "worse"
    return "neutral"


def benchmark_table(analysis_df: pd.DataFrame, benchmarks: dict) -> pd.DataFrame:
    rows = []
    for metric, benchmark_key, formatter in BENCHMARK_ROWS:
        benchmark = float(benchmarks.get(benchmark_key, 0.0)) if benchmark_key else 0.0
        for _, r in analysis_df.iterrows():
            value = float(r[metric])
            rows.append(
                {
                    "Metric": metric,
                    "Period": r["Period"],
                    "Value": value,
                    "Display": formatter(value),
                    "Benchmark": benchmark,
                    "Status": compare_to_benchmark(metric, value, benchmark),
                }
            )
    return pd.DataFrame(rows, columns=["Metric", "Period", "Value", "Display", "Benchmark", "Status"])


def common_size(analysis_df: pd.DataFrame, base: str) -> pd.DataFrame:
    """Express income lines as a share of revenue, or balance lines as a share of total assets."""
    if base not in COMMON_SIZE_ROWS:
        raise ValueError(f"Unsupported common-size base: {base}")
    denominator_col = "Revenue" if base == "revenue" else "Total Assets"
    out = analysis_df[["Period"]].copy()
    for col in COMMON_SIZE_ROWS[base]:
        out[col] = [_safe_div(n, d) for n, d in zip(analysis_df[col], analysis_df[denominator_col])]
    return out
