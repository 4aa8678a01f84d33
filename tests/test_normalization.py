from __future__ import annotations

from copy import deepcopy

from deal_engine.normalization import (
    AddBackTotals,
    add_back_totals,
    add_backs_by_category,
    annualization_factor,
    income_statement,
    normalize_earnings,
    sde_waterfall,
)
from deal_engine.ratios import run_financial_analysis


def test_income_statement_subtotals_follow_the_standard_bridge():
    period = {
        "revenue": 1_000_000,
        "cogs": 600_000,
        "operating_expenses": 250_000,
        "depreciation": 20_000,
        "amortization": 5_000,
        "interest_expense": 10_000,
        "taxes": 15_000,
    }
    lines = income_statement(period)
    assert lines["gross_profit"] == 400_000
    assert lines["ebitda"] == 150_000
    assert lines["ebit"] == 125_000
    assert lines["net_income"] == 100_000


def test_annualization_only_scales_revenue_cogs_and_opex():
    period = {"revenue": 900, "cogs": 300, "operating_expenses": 150, "depreciation": 30, "taxes": 12}
    lines = income_statement(period, annualization_factor(9))
    assert abs(lines["revenue"] - 1200.0) < 1e-9
    assert abs(lines["cogs"] - 400.0) < 1e-9
    assert abs(lines["operating_expenses"] - 200.0) < 1e-9
    assert lines["depreciation"] == 30.0
    assert lines["taxes"] == 12.0


def test_annualization_is_idempotent_for_a_full_year(base_financials):
    period = base_financials["ytd_actuals"]
    assert annualization_factor(12) == 1.0
    assert income_statement(period, annualization_factor(12)) == income_statement(period)


def test_annualization_factor_treats_non_positive_months_as_one():
    assert annualization_factor(0) == 12.0
    assert annualization_factor(-3) == 12.0
    assert annualization_factor("") == 12.0
    assert annualization_factor(6) == 2.0
    assert annualization_factor(18) == 1.0


def test_normalized_ebitda_excludes_owner_comp_and_sde_restores_it():
    totals = AddBackTotals(other=40_000.0, owner_comp=120_000.0)
    earnings = normalize_earnings(300_000.0, totals)
    assert earnings.normalized_ebitda == 340_000.0
    assert earnings.normalized_sde == 460_000.0
    assert totals.total == 160_000.0


def test_normalization_identities_hold_for_every_displayed_period(base_financials):
    financials = deepcopy(base_financials)
    df = run_financial_analysis(financials, as_of_year=2030)
    other = sum(a["amount"] for a in financials["add_backs"])
    owner = financials["owner_comp_add_back"]
    for _, row in df.iterrows():
        assert abs(row["Normalized EBITDA"] - (row["EBITDA"] + other)) < 1e-6
        assert abs(row["Normalized SDE"] - (row["Normalized EBITDA"] + owner)) < 1e-6


def test_add_back_totals_parse_text_amounts():
    add_backs = [{"amount": "15,000"}, {"amount": "abc"}, {"amount": 2_500}]
    totals = add_back_totals(add_backs, "$120,000")
    assert totals.other == 17_500.0
    assert totals.owner_comp == 120_000.0


def test_add_backs_by_category_routes_unknown_categories_to_other():
    add_backs = [
        {"amount": 10_000, "category": "Personal"},
        {"amount": 5_000, "category": "Personal"},
        {"amount": 7_000, "category": "Mystery"},
    ]
    by_category = add_backs_by_category(add_backs)
    assert by_category["Personal"] == 15_000.0
    assert by_category["Other"] == 7_000.0
    assert by_category["One-Time"] == 0.0


def test_sde_waterfall_steps_bridge_net_income_to_sde():
    totals = AddBackTotals(other=40_000.0, owner_comp=120_000.0)
    steps = dict(sde_waterfall(net_income=200_000.0, ebitda=300_000.0, totals=totals))
    assert steps["+ I/T/D/A"] == 100_000.0
    assert steps["Normalized EBITDA"] == 340_000.0
    assert steps["Net Income"] + steps["+ I/T/D/A"] == steps["EBITDA"]
    assert steps["EBITDA"] + steps["+ Other Add-Backs"] == steps["Normalized EBITDA"]
    assert steps["Normalized EBITDA"] + steps["+ Owner Comp"] == steps["Normalized SDE"]
