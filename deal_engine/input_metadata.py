"""Input help text, typical ranges, and advisory range checks for deal and projection inputs."""

from __future__ import annotations

from typing import Any

from deal_engine.numeric import parse_amount


INPUT_HELP: dict[str, str] = {
    "sde": "Seller's discretionary earnings used to price the deal.",
    "asking_multiple": "Purchase multiple applied to SDE to get enterprise value.",
    "owner_salary": "Market salary you will draw; it comes out of cash before debt service.",
    "closing_costs": "Legal, diligence, lender and other one-time fees paid at close.",
    "liquidity_months": "Months of debt service to hold back as a cash reserve (advanced mode).",
    "senior_loan_amount": "Bank or SBA loan principal.",
    "senior_term_years": "Senior loan amortization term.",
    "senior_annual_rate": "Senior loan annual interest rate.",
    "amortizing_note_amount": "Primary seller note that is paid from day one.",
    "amortizing_note_term_years": "Term of the primary seller note when it amortizes.",
    "amortizing_note_annual_rate": "Annual rate on the primary seller note.",
    "standby_note_amount": "Seller note on full standby; no payments while the senior loan is outstanding.",
    "standby_note_annual_rate": "Accruing rate on the standby note.",
    "standby_note_term_years": "Term of the standby note once payments begin.",
    "forgivable_note_amount": "Seller note forgiven if the stated condition is met.",
    "forgiveness_period_years": "Years until the forgivable note is forgiven.",
    "stress_test_pct": "Downside haircut applied to SDE when the stress test is on.",
    "starting_revenue": "Annual revenue the projection starts from.",
    "starting_ebitda": "Annual EBITDA at the start of the projection, for reference.",
    "revenue_growth_y1_monthly": "Month-over-month revenue growth during year 1.",
    "revenue_growth_y2_annual": "Revenue growth of year 2 over year 1.",
    "revenue_growth_y3_annual": "Revenue growth of year 3 over year 2.",
    "cogs_pct_of_revenue": "Cost of goods sold as a share of revenue.",
    "opex_pct_of_revenue": "Operating expenses as a share of revenue (percent mode).",
    "opex_fixed_amount": "Annual operating expenses in year 1 (fixed mode).",
    "opex_growth_annual": "Annual growth of fixed operating expenses in years 2 and 3.",
    "annual_capex": "Annual capital expenditures.",
    "annual_debt_service": "Annual principal and interest paid on acquisition debt.",
    "effective_tax_rate": "Tax rate applied to positive pre-tax income.",
}

INPUT_GUIDANCE: dict[str, dict[str, Any]] = {
    "asking_multiple": {"min": 1.5, "max": 6.0, "note": "Main-street and lower-middle-market deals usually price at 2x to 5x SDE."},
    "senior_term_years": {"min": 5, "max": 25, "note": "SBA 7(a) acquisition loans typically run 10 years."},
    "senior_annual_rate": {"min": 0.05, "max": 0.15, "note": "Prime-plus pricing for acquisition debt."},
    "amortizing_note_term_years": {"min": 2, "max": 10, "note": "Seller notes usually amortize over 3 to 7 years."},
    "amortizing_note_annual_rate": {"min": 0.0, "max": 0.12, "note": "Seller notes often carry a below-bank rate."},
    "standby_note_annual_rate": {"min": 0.0, "max": 0.12, "note": "Standby notes typically accrue at a modest rate."},
    "liquidity_months": {"min": 0, "max": 12, "note": "Lenders commonly like to see 3 to 6 months of debt service in reserve."},
    "stress_test_pct": {"min": 0.05, "max": 0.4, "note": "A 10% to 20% SDE haircut is a common downside case."},
    "revenue_growth_y1_monthly": {"min": -0.05, "max": 0.05, "note": "1% a month already compounds to about 12.7% a year."},
    "revenue_growth_y2_annual": {"min": -0.2, "max": 0.4, "note": "Sustained growth above 30% a year is rare for small businesses."},
    "revenue_growth_y3_annual": {"min": -0.2, "max": 0.4, "note": "Sustained growth above 30% a year is rare for small businesses."},
    "cogs_pct_of_revenue": {"min": 0.1, "max": 0.85, "note": "Services businesses sit at the low end, distribution at the high end."},
    "opex_pct_of_revenue": {"min": 0.05, "max": 0.5, "note": "Operating expenses as a share of revenue."},
    "opex_growth_annual": {"min": 0.0, "max": 0.1, "note": "Fixed costs usually grow near inflation."},
    "effective_tax_rate": {"min": 0.0, "max": 0.4, "note": "Combined federal and state rate on pre-tax income."},
}


def _fmt(v: float) -> str:
    if abs(v - round(v)) < 1e-9:
        return f"{int(round(v))}"
    return f"{v:.3f}".rstrip("0").rstrip(".")


def help_with_guidance(key: str, base_help: str | None = None) -> str:
    text = base_help if base_help is not None else INPUT_HELP.get(key, "")
    g = INPUT_GUIDANCE.get(key)
    if not g:
        return text
    return f"{text} Reasonable range: {_fmt(g['min'])} to {_fmt(g['max'])}. {g['note']}".strip()


def advisory_warnings(inputs: dict) -> list[str]:
    """Plain-language notes for inputs outside their typical range; never blocks calculation."""
    warnings: list[str] = []
    for key, g in INPUT_GUIDANCE.items():
        if key not in inputs:
            continue
        v = parse_amount(inputs[key])
        if v < g["min"] or v > g["max"]:
            warnings.append(
                f"{key}={v:.3f} is outside the recommended range [{_fmt(g['min'])}, {_fmt(g['max'])}]."
            )
    return warnings
