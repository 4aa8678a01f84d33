"""Three-year operating projection: year 1 by month, years 2 and 3 as annual steps."""

from __future__ import annotations

import math
from copy import deepcopy

import pandas as pd

from deal_engine.deal_structure import SIMPLE_SELLER_DEBT_SERVICE_RATE, SIMPLE_SENIOR_DEBT_SERVICE_RATE
from deal_engine.normalization import annualization_factor
from deal_engine.numeric import parse_amount, parse_whole, round_half_up
from deal_engine.schema import period_year


PROJECTION_COLUMNS = [
    "Revenue",
    "COGS",
    "Gross Profit",
    "OpEx",
    "EBITDA",
    "Debt Service",
    "EBT",
    "Taxes",
    "Net Income",
    "CapEx",
    "Free Cash Flow",
]


def _step(revenue: float, opex: float, a: dict, debt_service: float, capex: float) -> dict:
    cogs = revenue * a["cogs_pct"]
    gross_profit = revenue - cogs
    ebitda = gross_profit - opex
    ebt = ebitda - debt_service
    taxes = ebt * a["tax_rate"] if ebt > 0 else 0.0
    return {
        "Revenue": revenue,
        "COGS": cogs,
        "Gross Profit": gross_profit,
        "OpEx": opex,
        "EBITDA": ebitda,
        "Debt Service": debt_service,
        "EBT": ebt,
        "Taxes": taxes,
        "Net Income": ebt - taxes,
        "CapEx": capex,
        "Free Cash Flow": ebitda - taxes - capex,
    }


def _numeric_assumptions(assumptions: dict) -> dict:
    return {
        "start_revenue": parse_amount(assumptions.get("starting_revenue")),
        "growth_monthly": parse_amount(assumptions.get("revenue_growth_y1_monthly")),
        "growth_y2": parse_amount(assumptions.get("revenue_growth_y2_annual")),
        "growth_y3": parse_amount(assumptions.get("revenue_growth_y3_annual")),
        "cogs_pct": parse_amount(assumptions.get("cogs_pct_of_revenue")),
        "opex_percent_mode": assumptions.get("opex_mode", "percent_of_revenue") != "fixed_amount",
        "opex_pct": parse_amount(assumptions.get("opex_pct_of_revenue")),
        "opex_fixed": parse_amount(assumptions.get("opex_fixed_amount")),
        "opex_growth": parse_amount(assumptions.get("opex_growth_annual")),
        "capex": parse_amount(assumptions.get("annual_capex")),
        "debt_service": parse_amount(assumptions.get("annual_debt_service")),
        "tax_rate": parse_amount(assumptions.get("effective_tax_rate")),
    }


def run_projection(assumptions: dict) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Return ``(monthly_df, annual_df)``.

    Monthly revenue compounds from ``starting_revenue / 12``, so month 1 already
    carries one month of growth. Year 1 is the column sum of the twelve months;
    years 2 and 3 grow off the prior year's revenue with full-year debt service
    and capex. Missing assumptions count as 0.
    """
    a = _numeric_assumptions(assumptions)

    monthly_rows = []
    last_month_revenue = a["start_revenue"] / 12
    for month in range(1, 13):
        revenue = last_month_revenue * (1 + a["growth_monthly"])
        opex = revenue * a["opex_pct"] if a["opex_percent_mode"] else a["opex_fixed"] / 12
        row = {"Month": f"M{month}"}
        row.update(_step(revenue, opex, a, a["debt_service"] / 12, a["capex"] / 12))
        monthly_rows.append(row)
        last_month_revenue = revenue
    monthly_df = pd.DataFrame(monthly_rows, columns=["Month", *PROJECTION_COLUMNS])

    year_one = {"Year": "Y1 Total"}
    year_one.update({col: math.fsum(monthly_df[col]) for col in PROJECTION_COLUMNS})
    annual_rows = [year_one]
    prior = year_one
    for year, growth in ((2, a["growth_y2"]), (3, a["growth_y3"])):
        revenue = prior["Revenue"] * (1 + growth)
        opex = revenue * a["opex_pct"] if a["opex_percent_mode"] else prior["OpEx"] * (1 + a["opex_growth"])
        row = {"Year": f"Y{year}"}
        row.update(_step(revenue, opex, a, a["debt_service"], a["capex"]))
        annual_rows.append(row)
        prior = row
    annual_df = pd.DataFrame(annual_rows, columns=["Year", *PROJECTION_COLUMNS])
    return monthly_df, annual_df


def _latest_period(periods: list[dict]) -> dict | None:
    dated = [(period_year(p.get("period_name")), idx, p) for idx, p in enumerate(periods)]
    dated = [item for item in dated if item[0] is not None]
    if dated:
        return max(dated, key=lambda item: (item[0], -item[1]))[2]
    return periods[0] if periods else None


def assumptions_from_analysis(
    assumptions: dict,
    financials: dict | None = None,
    deal_inputs: dict | None = None,
) -> tuple[dict, bool]:
    """Seed projection assumptions from the analysis and the deal structure.

    Returns ``(updated_assumptions, loaded_something)``. Starting revenue, EBITDA
    and cost ratios come from the most recent historic period, or from the YTD
    actuals when they cover a full year (or when there are no historic periods,
    annualized). Annual debt service uses the simple-mode rules of thumb.
    """
    updated = deepcopy(assumptions)
    loaded = False

    if financials:
        ytd_months = parse_whole(financials.get("ytd_months")) or 12
        latest = _latest_period(financials.get("periods", []))
        if ytd_months == 12 or latest is None:
            base = financials.get("ytd_actuals", {})
            factor = annualization_factor(ytd_months)
        else:
            base = latest
            factor = 1.0

        revenue = parse_amount(base.get("revenue")) * factor
        cogs = parse_amount(base.get("cogs")) * factor
        opex = parse_amount(base.get("operating_expenses")) * factor
        updated["starting_revenue"] = float(round_half_up(revenue))
        updated["starting_ebitda"] = float(round_half_up(revenue - cogs - opex))
        if revenue > 0:
            updated["cogs_pct_of_revenue"] = round(cogs / revenue * 100, 1) / 100
            updated["opex_pct_of_revenue"] = round(opex / revenue * 100, 1) / 100
        loaded = True

    if deal_inputs:
        debt_service = (
            parse_amount(deal_inputs.get("senior_loan_amount")) * SIMPLE_SENIOR_DEBT_SERVICE_RATE
            + parse_amount(deal_inputs.get("amortizing_note_amount")) * SIMPLE_SELLER_DEBT_SERVICE_RATE
        )
        updated["annual_debt_service"] = float(round_half_up(debt_service))
        loaded = True

    return updated, loaded
