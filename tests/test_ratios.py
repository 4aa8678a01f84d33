from __future__ import annotations

from copy import deepcopy

import pytest

from deal_engine.ratios import (
    YTD_ANNUALIZED_ID,
    benchmark_table,
    common_size,
    compare_to_benchmark,
    nwc_peg,
    order_periods,
    period_metrics,
    run_financial_analysis,
    ytd_actuals_metrics,
)
from deal_engine.normalization import AddBackTotals
from deal_engine.schema import new_period


NO_ADD_BACKS = AddBackTotals(other=0.0, owner_comp=0.0)


def _period(name: str, **values) -> dict:
    period = new_period(name)
    period.update({k: float(v) for k, v in values.items()})
    return period


def test_order_periods_sorts_by_year_and_slots_in_annualized_ytd():
    periods = [_period("2023"), _period("Budget"), _period("2021"), _period("2022")]
    ytd = _period("YTD Actuals")
    ordered = order_periods(periods, ytd, as_of_year=2024)
    assert [p["period_name"] for p in ordered] == ["2021", "2022", "2023", "2024 (Ann.)", "Budget"]
    assert ordered[3]["id"] == YTD_ANNUALIZED_ID


def test_zero_revenue_ratios_resolve_to_zero_not_nan():
    row = period_metrics(_period("2024", cogs=100, operating_expenses=50), None, NO_ADD_BACKS)
    for col in ("Gross Margin", "EBITDA Margin", "Net Margin", "Revenue Growth", "DSO (Days)"):
        assert row[col] == 0.0
    assert row["Current Ratio"] == 0.0
    assert row["Quick Ratio"] == 0.0


def test_working_capital_and_liquidity_ratios():
    period = _period(
        "2024",
        revenue=365_000,
        cogs=182_500,
        cash=50,
        accounts_receivable=100,
        inventory=30,
        other_current_assets=20,
        long_term_assets=300,
        accounts_payable=40,
        short_term_debt=30,
        other_current_liabilities=30,
    )
    row = period_metrics(period, None, NO_ADD_BACKS)
    assert row["Total Current Assets"] == 200
    assert row["Total Assets"] == 500
    assert row["Total Current Liabilities"] == 100
    assert row["Net Working Capital"] == 80
    assert row["Current Ratio"] == 2.0
    assert row["Quick Ratio"] == 1.5
    # No prior period: the period's own AR and AP are the averages.
    assert abs(row["DSO (Days)"] - 0.1) < 1e-9
    assert abs(row["DPO (Days)"] - 0.08) < 1e-9


def test_growth_and_days_use_the_prior_period():
    prior = _period("2023", revenue=1_000, accounts_receivable=100, accounts_payable=50)
    current = _period("2024", revenue=1_250, cogs=500, accounts_receivable=150, accounts_payable=70)
    row = period_metrics(current, prior, NO_ADD_BACKS)
    assert row["Revenue Growth"] == 0.25
    assert abs(row["DSO (Days)"] - 125 / 1_250 * 365) < 1e-9
    assert abs(row["DPO (Days)"] - 60 / 500 * 365) < 1e-9


def test_run_financial_analysis_annualizes_only_the_ytd_row(base_financials):
    financials = deepcopy(base_financials)
    df = run_financial_analysis(financials, as_of_year=2099)
    ytd_row = df[df["Period ID"] == YTD_ANNUALIZED_ID].iloc[0]
    assert bool(ytd_row["Annualized"]) is True
    assert abs(ytd_row["Revenue"] - financials["ytd_actuals"]["revenue"] * 12 / 9) < 1e-6
    assert ytd_row["Cash"] == financials["ytd_actuals"]["cash"]
    assert not df[df["Period ID"] != YTD_ANNUALIZED_ID]["Annualized"].any()
    assert df.iloc[-1]["Period ID"] == YTD_ANNUALIZED_ID


def test_ytd_actuals_metrics_are_not_annualized(base_financials):
    row = ytd_actuals_metrics(base_financials)
    assert row["Revenue"] == base_financials["ytd_actuals"]["revenue"]
    assert row["Annualized"] is False


def test_nwc_peg_averages_every_displayed_period(base_financials):
    df = run_financial_analysis(base_financials, as_of_year=2099)
    assert len(df) == 3
    assert abs(nwc_peg(df) - df["Net Working Capital"].sum() / 3) < 1e-9


@pytest.mark.parametrize(
    ("metric", "value", "benchmark", "expected"),
    [
        ("Gross Margin", 0.50, 0.45, "better"),
        ("Gross Margin", 0.40, 0.45, "worse"),
        ("Current Ratio", 1.5, 1.5, "neutral"),
        ("DSO (Days)", 30.0, 45.0, "better"),
        ("DSO (Days)", 60.0, 45.0, "worse"),
        ("DPO (Days)", 20.0, 30.0, "better"),
        ("EBITDA Margin", 0.2, 0.0, "neutral"),
    ],
)
def test_benchmark_comparison_inverts_for_days_metrics(metric, value, benchmark, expected):
    assert compare_to_benchmark(metric, value, benchmark) == expected


def test_benchmark_table_covers_every_period(base_financials):
    df = run_financial_analysis(base_financials, as_of_year=2099)
    table = benchmark_table(df, base_financials["benchmarks"])
    assert set(table["Period"]) == set(df["Period"])
    assert set(table["Status"]) <= {"better", "worse", "neutral"}
    net_margin = table[table["Metric"] == "Net Margin"]
    assert (net_margin["Status"] == "neutral").all()


def test_common_size_shares_and_unknown_base(base_financials):
    df = run_financial_analysis(base_financials, as_of_year=2099)
    by_revenue = common_size(df, "revenue")
    assert (by_revenue["Revenue"] == 1.0).all()
    by_assets = common_size(df, "assets")
    first = df.iloc[0]
    assert abs(by_assets.iloc[0]["Cash"] - first["Cash"] / first["Total Assets"]) < 1e-12
    with pytest.raises(ValueError):
        common_size(df, "equity")
