"""Default workspace records for the acquisition workbench."""

from __future__ import annotations

from datetime import datetime


_THIS_YEAR = datetime.now().year


def _period(period_id: str, name: str, **values: float) -> dict:
    record = {
        "id": period_id,
        "period_name": name,
        "revenue": 0.0,
        "cogs": 0.0,
        "operating_expenses": 0.0,
        "depreciation": 0.0,
        "amortization": 0.0,
        "interest_expense": 0.0,
        "taxes": 0.0,
        "cash": 0.0,
        "accounts_receivable": 0.0,
        "inventory": 0.0,
        "other_current_assets": 0.0,
        "long_term_assets": 0.0,
        "accounts_payable": 0.0,
        "short_term_debt": 0.0,
        "other_current_liabilities": 0.0,
        "long_term_debt": 0.0,
        "shareholder_equity": 0.0,
    }
    record.update({k: float(v) for k, v in values.items()})
    return record


DEFAULT_BENCHMARKS = {
    "gross_margin": 0.45,
    "ebitda_margin": 0.15,
    "current_ratio": 1.5,
    "dso": 45.0,
    "dpo": 30.0,
}

DEFAULT_FINANCIALS = {
    "company_name": "Example B2B Services Co.",
    "periods": [
        _period(
            "period-prior-1",
            str(_THIS_YEAR - 1),
            revenue=2_500_000,
            cogs=1_500_000,
            operating_expenses=600_000,
            depreciation=55_000,
            amortization=10_000,
            interest_expense=35_000,
            taxes=75_000,
            cash=200_000,
            accounts_receivable=300_000,
            inventory=120_000,
            other_current_assets=25_000,
            long_term_assets=450_000,
            accounts_payable=140_000,
            short_term_debt=40_000,
            other_current_liabilities=35_000,
            long_term_debt=250_000,
            shareholder_equity=630_000,
        ),
        _period(
            "period-prior-2",
            str(_THIS_YEAR - 2),
            revenue=2_200_000,
            cogs=1_320_000,
            operating_expenses=550_000,
            depreciation=50_000,
            amortization=10_000,
            interest_expense=40_000,
            taxes=60_000,
            cash=150_000,
            accounts_receivable=250_000,
            inventory=100_000,
            other_current_assets=20_000,
            long_term_assets=400_000,
            accounts_payable=120_000,
            short_term_debt=50_000,
            other_current_liabilities=30_000,
            long_term_debt=300_000,
            shareholder_equity=420_000,
        ),
    ],
    "add_backs": [
        {
            "id": "addback-auto",
            "description": "Owner's Personal Auto Expense",
            "amount": 15_000.0,
            "category": "Owner Discretionary Expenses",
        },
        {
            "id": "addback-legal",
            "description": "One-Time Legal Fee for Lawsuit",
            "amount": 25_000.0,
            "category": "Non-recurring Expenses",
        },
    ],
    "ytd_months": 9,
    "ytd_actuals": _period(
        "period-ytd",
        "YTD Actuals",
        revenue=2_100_000,
        cogs=1_260_000,
        operating_expenses=525_000,
        depreciation=45_000,
        amortization=7_500,
        interest_expense=25_000,
        taxes=60_000,
        cash=250_000,
        accounts_receivable=350_000,
        inventory=140_000,
        other_current_assets=30_000,
        long_term_assets=480_000,
        accounts_payable=160_000,
        short_term_debt=30_000,
        other_current_liabilities=40_000,
        long_term_debt=220_000,
        shareholder_equity=800_000,
    ),
    "owner_comp_add_back": 120_000.0,
    "financial_notes": (
        "Example B2B services business. Strong revenue growth and stable gross margins; "
        "working capital needs grow with revenue."
    ),
    "add_back_notes": (
        "Owner compensation set to a market rate for a general manager. Other add-backs are "
        "clear, non-recurring personal or one-time business expenses."
    ),
    "benchmarks": dict(DEFAULT_BENCHMARKS),
}

DEFAULT_DEAL_INPUTS = {
    "sde": 500_000.0,
    "asking_multiple": 3.0,
    "owner_salary": 120_000.0,
    "closing_costs": 40_000.0,
    "liquidity_months": 3,
    "senior_loan_amount": 1_050_000.0,
    "senior_term_years": 10,
    "senior_annual_rate": 0.095,
    "amortizing_note_amount": 150_000.0,
    "amortizing_note_term_years": 5,
    "amortizing_note_annual_rate": 0.06,
    "amortizing_note_type": "interest_only",
    "standby_note_amount": 150_000.0,
    "standby_note_annual_rate": 0.06,
    "standby_note_term_years": 10,
    "forgivable_note_amount": 150_000.0,
    "forgiveness_period_years": 2,
    "forgiveness_condition": "Seller stays on as full-time consultant for the forgiveness period.",
    "calculation_mode": "simple",
    "stress_test_enabled": False,
    "stress_test_pct": 0.10,
}

DEFAULT_PROJECTION = {
    "starting_revenue": 2_500_000.0,
    "starting_ebitda": 375_000.0,
    "revenue_growth_y1_monthly": 0.01,
    "revenue_growth_y2_annual": 0.10,
    "revenue_growth_y3_annual": 0.08,
    "cogs_pct_of_revenue": 0.60,
    "opex_mode": "percent_of_revenue",
    "opex_pct_of_revenue": 0.25,
    "opex_fixed_amount": 500_000.0,
    "opex_growth_annual": 0.03,
    "annual_capex": 25_000.0,
    "annual_debt_service": 136_500.0,
    "effective_tax_rate": 0.25,
}

DEFAULT_BUY_BOX = {
    "geography": {"value": "Texas", "weight": 2},
    "industry_type": {"value": "B2B Facility Services", "weight": 3},
    "min_sde": {"value": 400_000.0, "weight": 3},
    "max_sde": {"value": 800_000.0, "weight": 3},
    "customer_concentration": {"value": 30.0, "weight": 2},
    "min_recurring_revenue": {"value": 0.0, "weight": 1},
    "growth_levers": {"sales": False, "ops": False, "consolidation": False, "weight": 1},
    "industry_trends": {"value": "Fragmented", "weight": 1},
    "industry_expertise": [],
    "seller_role": {"value": "operator", "weight": 2},
    "team_strength": {"value": "Has a manager in place", "weight": 2},
    "business_model": {"value": "asset_light", "weight": 1},
    "system_messiness": {"value": 3, "weight": 1},
    "my_primary_role": {"value": "manager", "weight": 1},
    "desired_culture": "Professional, team-oriented",
    "desired_culture_rationale": "",
    "personal_goal": "Flexibility",
    "personal_goal_rationale": "",
}

DEFAULTS = {
    "financials": DEFAULT_FINANCIALS,
    "deal_inputs": DEFAULT_DEAL_INPUTS,
    "projection": DEFAULT_PROJECTION,
    "buy_box": DEFAULT_BUY_BOX,
}
