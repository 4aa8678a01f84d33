"""Purchase price, financing mix, debt service, and DSCR for a proposed deal."""

from __future__ import annotations

from dataclasses import dataclass, field

import pandas as pd

from deal_engine.numeric import parse_amount, parse_whole


SIMPLE_SENIOR_DEBT_SERVICE_RATE = 0.13
SIMPLE_SELLER_DEBT_SERVICE_RATE = 0.05
DSCR_THRESHOLDS = {"simple": 1.25, "advanced": 1.50}
DEBT_FIELDS = (
    "senior_loan_amount",
    "amortizing_note_amount",
    "standby_note_amount",
    "forgivable_note_amount",
)
DEBT_EXCEEDS_EV_MESSAGE = "Total debt cannot exceed EV."


@dataclass
class DealStructureResult:
    mode: str
    stressed: bool
    enterprise_value: float
    total_seller_financing: float
    buyer_equity: float
    senior_monthly_payment: float
    senior_annual_debt_service: float
    seller_annual_debt_service: float
    total_annual_debt_service: float
    sde_for_calculation: float
    cash_available_for_debt_service: float
    dscr: float
    net_cash_flow_to_owner: float
    liquidity_reserve_target: float
    total_cash_to_close: float
    dscr_threshold: float
    validation_errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_low_dscr(self) -> bool:
        return self.dscr < self.dscr_threshold

    @property
    def total_debt(self) -> float:
        return self.enterprise_value - self.buyer_equity


def amortizing_payment(principal: float, annual_rate: float, term_years) -> float:
    """Level monthly payment that retires principal over term_years at annual_rate."""
    principal = parse_amount(principal)
    n = parse_whole(term_years) * 12
    if n <= 0:
        return 0.0
    r = parse_amount(annual_rate) / 12
    if r == 0:
        return principal / n
    return principal * r / (1 - (1 + r) ** -n)


def dscr_threshold(mode: str) -> float:
    return DSCR_THRESHOLDS["advanced" if mode == "advanced" else "simple"]


def dscr_is_healthy(dscr: float, mode: str) -> bool:
    """A DSCR exactly at the mode's threshold still counts as healthy."""
    return float(dscr) >= dscr_threshold(mode)


def debt_validation_errors(inputs: dict, enterprise_value: float) -> dict[str, str]:
    total_debt = sum(parse_amount(inputs.get(k, 0.0)) for k in DEBT_FIELDS)
    if total_debt > enterprise_value:
        return {k: DEBT_EXCEEDS_EV_MESSAGE for k in DEBT_FIELDS}
    return {}


def run_deal_structure(inputs: dict, stressed: bool | None = None) -> DealStructureResult:
    """Compute the full deal structure.

    ``stressed`` overrides ``inputs["stress_test_enabled"]``; when stressed,
    SDE is haircut by ``stress_test_pct`` before debt coverage is measured.
    Debt above enterprise value is reported in ``validation_errors`` and the
    rest of the calculation runs on the amounts as entered.
    """
    mode = "advanced" if inputs.get("calculation_mode") == "advanced" else "simple"
    if stressed is None:
        stressed = bool(inputs.get("stress_test_enabled", False))

    sde = parse_amount(inputs.get("sde"))
    senior_loan = parse_amount(inputs.get("senior_loan_amount"))
    amortizing_note = parse_amount(inputs.get("amortizing_note_amount"))
    standby_note = parse_amount(inputs.get("standby_note_amount"))
    forgivable_note = parse_amount(inputs.get("forgivable_note_amount"))

    enterprise_value = sde * parse_amount(inputs.get("asking_multiple"))
    total_seller_financing = amortizing_note + standby_note + forgivable_note
    buyer_equity = enterprise_value - senior_loan - total_seller_financing

    senior_monthly = amortizing_payment(
        senior_loan, inputs.get("senior_annual_rate", 0.0), inputs.get("senior_term_years", 0)
    )
    if mode == "advanced":
        senior_annual = senior_monthly * 12
        note_rate = parse_amount(inputs.get("amortizing_note_annual_rate"))
        if inputs.get("amortizing_note_type") == "amortizing":
            seller_annual = (
                amortizing_payment(amortizing_note, note_rate, inputs.get("amortizing_note_term_years", 0)) * 12
            )
        else:
            seller_annual = amortizing_note * note_rate
    else:
        senior_annual = senior_loan * SIMPLE_SENIOR_DEBT_SERVICE_RATE
        seller_annual = amortizing_note * SIMPLE_SELLER_DEBT_SERVICE_RATE
    # Standby and forgivable notes carry no current debt service.
    total_debt_service = senior_annual + seller_annual

    sde_for_calc = sde * (1 - parse_amount(inputs.get("stress_test_pct"))) if stressed else sde
    cash_available = sde_for_calc - parse_amount(inputs.get("owner_salary"))
    dscr = cash_available / total_debt_service if total_debt_service else 0.0

    liquidity_target = (total_debt_service / 12) * parse_whole(inputs.get("liquidity_months", 0))
    cash_to_close = buyer_equity + parse_amount(inputs.get("closing_costs"))
    if mode == "advanced":
        cash_to_close += liquidity_target

    return DealStructureResult(
        mode=mode,
        stressed=bool(stressed),
        enterprise_value=enterprise_value,
        total_seller_financing=total_seller_financing,
        buyer_equity=buyer_equity,
        senior_monthly_payment=senior_monthly,
        senior_annual_debt_service=senior_annual,
        seller_annual_debt_service=seller_annual,
        total_annual_debt_service=total_debt_service,
        sde_for_calculation=sde_for_calc,
        cash_available_for_debt_service=cash_available,
        dscr=dscr,
        net_cash_flow_to_owner=cash_available - total_debt_service,
        liquidity_reserve_target=liquidity_target,
        total_cash_to_close=cash_to_close,
        dscr_threshold=dscr_threshold(mode),
        validation_errors=debt_validation_errors(inputs, enterprise_value),
    )


COMPARISON_ROWS = [
    ("SDE Used", "sde_for_calculation"),
    ("Cash Available for Debt Service", "cash_available_for_debt_service"),
    ("Total Annual Debt Service", "total_annual_debt_service"),
    ("DSCR", "dscr"),
    ("Net Cash Flow to Owner", "net_cash_flow_to_owner"),
]


def stress_comparison(inputs: dict) -> pd.DataFrame:
    base = run_deal_structure(inputs, stressed=False)
    stressed = run_deal_structure(inputs, stressed=True)
    rows = []
    for label, attr in COMPARISON_ROWS:
        base_value = float(getattr(base, attr))
        stressed_value = float(getattr(stressed, attr))
        rows.append(
            {
                "Metric": label,
                "Base": base_value,
                "Stressed": stressed_value,
                "Change": stressed_value - base_value,
            }
        )
    return pd.DataFrame(rows, columns=["Metric", "Base", "Stressed", "Change"])
