"""SDE/EBITDA normalization for a single financial period."""

from __future__ import annotations

from dataclasses import dataclass

from deal_engine.numeric import parse_amount, parse_whole
from deal_engine.schema import ADD_BACK_CATEGORIES, ANNUALIZED_FIELDS, INCOME_STATEMENT_FIELDS


@dataclass(frozen=True)
class AddBackTotals:
    other: float
    owner_comp: float

    @property
    def total(self) -> float:
        return self.other + self.owner_comp


@dataclass(frozen=True)
class NormalizedEarnings:
    normalized_ebitda: float
    normalized_sde: float


def annualization_factor(months_elapsed) -> float:
    """Scale factor that turns a partial-year figure into a full-year run rate.

    Zero or negative month counts are read as one month; a full year or more is
    left as-is.
    """
    months = parse_whole(months_elapsed)
    if months <= 0:
        months = 1
    if months < 12:
        return 12.0 / months
    return 1.0


def income_statement(period: dict, factor: float = 1.0) -> dict[str, float]:
    """Income-statement lines for one period with revenue, COGS and OpEx scaled by factor."""
    lines = {field: parse_amount(period.get(field, 0.0)) for field in INCOME_STATEMENT_FIELDS}
    for field in ANNUALIZED_FIELDS:
        lines[field] = lines[field] * factor

    gross_profit = lines["revenue"] - lines["cogs"]
    ebitda = gross_profit - lines["operating_expenses"]
    ebit = ebitda - lines["depreciation"] - lines["amortization"]
    net_income = ebit - lines["interest_expense"] - lines["taxes"]
    lines.update(
        {
            "gross_profit": gross_profit,
            "ebitda": ebitda,
            "ebit": ebit,
            "net_income": net_income,
        }
    )
    return lines


def add_back_totals(add_backs: list[dict], owner_comp_add_back) -> AddBackTotals:
    other = sum(parse_amount(b.get("amount", 0.0)) for b in add_backs)
    return AddBackTotals(other=float(other), owner_comp=parse_amount(owner_comp_add_back))


def add_backs_by_category(add_backs: list[dict]) -> dict[str, float]:
    totals = {category: 0.0 for category in ADD_BACK_CATEGORIES}
    for item in add_backs:
        category = item.get("category", "Other")
        if category not in totals:
            category = "Other"
        totals[category] += parse_amount(item.get("amount", 0.0))
    return totals


def normalize_earnings(ebitda: float, totals: AddBackTotals) -> NormalizedEarnings:
    # Owner comp is excluded from normalized EBITDA and only restored for SDE.
    normalized_ebitda = ebitda + totals.total - totals.owner_comp
    return NormalizedEarnings(
        normalized_ebitda=normalized_ebitda,
        normalized_sde=normalized_ebitda + totals.owner_comp,
    )


def sde_waterfall(net_income: float, ebitda: float, totals: AddBackTotals) -> list[tuple[str, float]]:
    """Net income to normalized SDE bridge, as (label, amount) steps."""
    earnings = normalize_earnings(ebitda, totals)
    return [
        ("Net Income", net_income),
        ("+ I/T/D/A", ebitda - net_income),
        ("EBITDA", ebitda),
        ("+ Other Add-Backs", totals.other),
        ("Normalized EBITDA", earnings.normalized_ebitda),
        ("+ Owner Comp", totals.owner_comp),
        ("Normalized SDE", earnings.normalized_sde),
    ]
