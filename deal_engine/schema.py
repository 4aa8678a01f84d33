"""Workspace schema constants, record helpers, and migration utilities."""

from __future__ import annotations

import re
from copy import deepcopy
from datetime import datetime
from typing import Any
from uuid import uuid4

from deal_engine.defaults import (
    DEFAULT_BENCHMARKS,
    DEFAULT_BUY_BOX,
    DEFAULT_DEAL_INPUTS,
    DEFAULT_FINANCIALS,
    DEFAULT_PROJECTION,
)
from deal_engine.numeric import parse_amount, parse_whole


SCHEMA_VERSION = 1
DEAL_TYPE = "deal"
WORKSPACE_TYPE = "workspace"
BUY_BOX_PROFILE_TYPE = "buy_box_profile"

RECORD_KEYS = ("financials", "deal_inputs", "projection", "buy_box")

ADD_BACK_CATEGORIES = [
    "Owner Discretionary Expenses",
    "Non-recurring Expenses",
    "Non-operational Expenses",
    "Add-backs for Standardization",
    "Personal",
    "One-Time",
    "Other",
]

INCOME_STATEMENT_FIELDS = (
    "revenue",
    "cogs",
    "operating_expenses",
    "depreciation",
    "amortization",
    "interest_expense",
    "taxes",
)
ANNUALIZED_FIELDS = ("revenue", "cogs", "operating_expenses")
BALANCE_SHEET_FIELDS = (
    "cash",
    "accounts_receivable",
    "inventory",
    "other_current_assets",
    "long_term_assets",
    "accounts_payable",
    "short_term_debt",
    "other_current_liabilities",
    "long_term_debt",
    "shareholder_equity",
)
PERIOD_FIELDS = INCOME_STATEMENT_FIELDS + BALANCE_SHEET_FIELDS

PERIOD_FIELD_LABELS = {
    "revenue": "Revenue",
    "cogs": "COGS",
    "operating_expenses": "OpEx",
    "depreciation": "Depreciation",
    "amortization": "Amortization",
    "interest_expense": "Interest",
    "taxes": "Taxes",
    "cash": "Cash",
    "accounts_receivable": "Accounts Receivable",
    "inventory": "Inventory",
    "other_current_assets": "Other Current Assets",
    "long_term_assets": "Long-Term Assets",
    "accounts_payable": "Accounts Payable",
    "short_term_debt": "Short-Term Debt",
    "other_current_liabilities": "Other Current Liabilities",
    "long_term_debt": "Long-Term Debt",
    "shareholder_equity": "Shareholder Equity",
}

CALCULATION_MODES = {"simple", "advanced"}
NOTE_TYPES = {"interest_only", "amortizing"}
OPEX_MODES = {"percent_of_revenue", "fixed_amount"}

WEIGHTED_CRITERIA = (
    "geography",
    "industry_type",
    "min_sde",
    "max_sde",
    "customer_concentration",
    "min_recurring_revenue",
    "growth_levers",
    "industry_trends",
    "seller_role",
    "team_strength",
    "business_model",
    "system_messiness",
    "my_primary_role",
)
BUY_BOX_TEXT_FIELDS = ("desired_culture", "desired_culture_rationale", "personal_goal", "personal_goal_rationale")
PROFICIENCY_LEVELS = ("Beginner", "Intermediate", "Expert")
MAX_CRITERION_WEIGHT = 5

DEAL_RATE_FIELDS = ("senior_annual_rate", "amortizing_note_annual_rate", "standby_note_annual_rate", "stress_test_pct")
DEAL_WHOLE_FIELDS = (
    "liquidity_months",
    "senior_term_years",
    "amortizing_note_term_years",
    "standby_note_term_years",
    "forgiveness_period_years",
)
PROJECTION_RATE_FIELDS = ("cogs_pct_of_revenue", "opex_pct_of_revenue", "effective_tax_rate")
PROJECTION_GROWTH_FIELDS = (
    "revenue_growth_y1_monthly",
    "revenue_growth_y2_annual",
    "revenue_growth_y3_annual",
    "opex_growth_annual",
)

_NUMERIC_TEXT_RE = re.compile(r"^\s*[-+]?\$?\s*[\d,]*\.?\d*\s*%?\s*$")


def new_id() -> str:
    return uuid4().hex


def _looks_numeric(text: str) -> bool:
    return bool(_NUMERIC_TEXT_RE.match(text)) and any(ch.isdigit() for ch in text)


def _coerce_amount(value: Any, field: str, warnings: list[str]) -> float:
    if isinstance(value, str):
        text = value.strip()
        if text and not _looks_numeric(text):
            warnings.append(f"{field} could not be parsed and was treated as 0.")
            return 0.0
    return parse_amount(value)


def _coerce_rate(value: Any, field: str, warnings: list[str]) -> float:
    if isinstance(value, str) and value.strip().endswith("%"):
        return _coerce_amount(value.strip().rstrip("%"), field, warnings) / 100.0
    return _coerce_amount(value, field, warnings)


def _coerce_bool(value: Any, default: bool, field: str, warnings: list[str]) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        txt = value.strip().lower()
        if txt in {"1", "true", "yes", "y", "on"}:
            return True
        if txt in {"0", "false", "no", "n", "off"}:
            return False
    warnings.append(f"{field} invalid and reset to default.")
    return bool(default)


def _coerce_choice(value: Any, allowed: set[str], default: str, field: str, warnings: list[str]) -> str:
    text = str(value if value is not None else default)
    if text not in allowed:
        warnings.append(f"{field} invalid; reset to {default}.")
        return default
    return text


def _split_known(payload: Any, template: dict, unknown_keys: list[str], prefix: str) -> dict:
    out = deepcopy(template)
    if not isinstance(payload, dict):
        return out
    for k, v in payload.items():
        if k in out:
            out[k] = v
        else:
            unknown_keys.append(f"{prefix}.{k}")
    return out


# --- Periods and add-backs ---


def new_period(name: str | None = None) -> dict:
    period = {"id": new_id(), "period_name": name or str(datetime.now().year)}
    for field in PERIOD_FIELDS:
        period[field] = 0.0
    return period


def period_year(name: Any) -> int | None:
    match = re.match(r"^\s*(\d+)", str(name or ""))
    return int(match.group(1)) if match else None


def next_period_name(periods: list[dict]) -> str:
    years = [y for y in (period_year(p.get("period_name")) for p in periods) if y is not None]
    latest = max(years, default=0)
    return str(latest + 1) if latest > 0 else str(datetime.now().year)


def add_period(periods: list[dict]) -> list[dict]:
    """Return periods with a fresh, empty period for the next year at the front."""
    return [new_period(next_period_name(periods))] + list(periods)


def remove_period(periods: list[dict], period_id: str) -> tuple[list[dict], bool]:
    if len(periods) <= 1:
        return list(periods), False
    remaining = [p for p in periods if p.get("id") != period_id]
    return remaining, len(remaining) != len(periods)


def new_add_back(description: str = "", amount: float = 0.0, category: str = "Other") -> dict:
    return {"id": new_id(), "description": description, "amount": float(amount), "category": category}


def _sanitize_period(raw: Any, warnings: list[str], label: str) -> dict | None:
    if not isinstance(raw, dict):
        warnings.append(f"{label} ignored because entry is not an object.")
        return None
    period = new_period(str(raw.get("period_name", "")).strip() or None)
    if raw.get("id"):
        period["id"] = str(raw["id"])
    for field in PERIOD_FIELDS:
        period[field] = _coerce_amount(raw.get(field, 0.0), f"{label}.{field}", warnings)
    return period


def _sanitize_add_backs(raw_items: Any, warnings: list[str]) -> list[dict]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        warnings.append("add_backs ignored because it is not a list.")
        return []
    sanitized: list[dict] = []
    for idx, item in enumerate(raw_items):
        if not isinstance(item, dict):
            warnings.append(f"add_backs[{idx}] ignored because entry is not an object.")
            continue
        category = str(item.get("category", "Other"))
        if category not in ADD_BACK_CATEGORIES:
            warnings.append(f"add_backs[{idx}].category invalid; reset to Other.")
            category = "Other"
        sanitized.append(
            {
                "id": str(item.get("id") or new_id()),
                "description": str(item.get("description", "")),
                "amount": _coerce_amount(item.get("amount", 0.0), f"add_backs[{idx}].amount", warnings),
                "category": category,
            }
        )
    return sanitized


# --- Record migrations ---


def migrate_financials(raw: Any) -> tuple[dict, list[str], list[str]]:
    """Sanitize a financials record: numeric fields become floats, invalid text becomes 0."""
    warnings: list[str] = []
    unknown_keys: list[str] = []
    data = _split_known(raw, DEFAULT_FINANCIALS, unknown_keys, "financials")

    periods: list[dict] = []
    raw_periods = data.get("periods")
    if isinstance(raw_periods, list):
        for idx, item in enumerate(raw_periods):
            period = _sanitize_period(item, warnings, f"periods[{idx}]")
            if period is not None:
                periods.append(period)
    else:
        warnings.append("periods ignored because it is not a list.")
    if not periods:
        warnings.append("At least one period is required; added an empty period.")
        periods = [new_period()]
    data["periods"] = periods

    ytd = _sanitize_period(data.get("ytd_actuals"), warnings, "ytd_actuals")
    data["ytd_actuals"] = ytd if ytd is not None else new_period("YTD Actuals")

    data["add_backs"] = _sanitize_add_backs(data.get("add_backs"), warnings)
    data["owner_comp_add_back"] = _coerce_amount(data.get("owner_comp_add_back"), "owner_comp_add_back", warnings)
    data["ytd_months"] = int(min(12, max(0, parse_whole(data.get("ytd_months")))))
    for key in ("company_name", "financial_notes", "add_back_notes"):
        data[key] = str(data.get(key) or "")

    benchmarks = _split_known(data.get("benchmarks"), DEFAULT_BENCHMARKS, unknown_keys, "benchmarks")
    for key in ("gross_margin", "ebitda_margin"):
        benchmarks[key] = _coerce_rate(benchmarks[key], f"benchmarks.{key}", warnings)
    for key in ("current_ratio", "dso", "dpo"):
        benchmarks[key] = max(0.0, _coerce_amount(benchmarks[key], f"benchmarks.{key}", warnings))
    data["benchmarks"] = benchmarks

    return data, warnings, sorted(unknown_keys)


def migrate_deal_inputs(raw: Any) -> tuple[dict, list[str], list[str]]:
    warnings: list[str] = []
    unknown_keys: list[str] = []
    data = _split_known(raw, DEFAULT_DEAL_INPUTS, unknown_keys, "deal_inputs")

    for key in ("sde", "owner_salary", "closing_costs", "senior_loan_amount", "amortizing_note_amount",
                "standby_note_amount", "forgivable_note_amount"):
        data[key] = max(0.0, _coerce_amount(data[key], key, warnings))
    data["asking_multiple"] = max(0.0, _coerce_amount(data["asking_multiple"], "asking_multiple", warnings))
    for key in DEAL_RATE_FIELDS:
        data[key] = float(min(1.0, max(0.0, _coerce_rate(data[key], key, warnings))))
    for key in DEAL_WHOLE_FIELDS:
        data[key] = max(0, parse_whole(data[key]))

    data["amortizing_note_type"] = _coerce_choice(
        data["amortizing_note_type"], NOTE_TYPES, "interest_only", "amortizing_note_type", warnings
    )
    data["calculation_mode"] = _coerce_choice(data["calculation_mode"], CALCULATION_MODES, "simple", "calculation_mode", warnings)
    data["stress_test_enabled"] = _coerce_bool(
        data["stress_test_enabled"], DEFAULT_DEAL_INPUTS["stress_test_enabled"], "stress_test_enabled", warnings
    )
    data["forgiveness_condition"] = str(data.get("forgiveness_condition") or "")
    return data, warnings, sorted(unknown_keys)


def migrate_projection(raw: Any) -> tuple[dict, list[str], list[str]]:
    warnings: list[str] = []
    unknown_keys: list[str] = []
    data = _split_known(raw, DEFAULT_PROJECTION, unknown_keys, "projection")

    for key in ("starting_revenue", "starting_ebitda", "opex_fixed_amount", "annual_capex", "annual_debt_service"):
        data[key] = _coerce_amount(data[key], key, warnings)
    for key in ("starting_revenue", "opex_fixed_amount", "annual_capex", "annual_debt_service"):
        data[key] = max(0.0, data[key])
    for key in PROJECTION_RATE_FIELDS:
        data[key] = float(min(1.0, max(0.0, _coerce_rate(data[key], key, warnings))))
    for key in PROJECTION_GROWTH_FIELDS:
        data[key] = float(min(10.0, max(-1.0, _coerce_rate(data[key], key, warnings))))
    data["opex_mode"] = _coerce_choice(data["opex_mode"], OPEX_MODES, "percent_of_revenue", "opex_mode", warnings)
    return data, warnings, sorted(unknown_keys)


def _coerce_weight(value: Any, field: str, warnings: list[str]) -> int:
    weight = parse_whole(value)
    if weight < 0 or weight > MAX_CRITERION_WEIGHT:
        warnings.append(f"{field} weight clamped to [0, {MAX_CRITERION_WEIGHT}].")
    return int(min(MAX_CRITERION_WEIGHT, max(0, weight)))


def migrate_buy_box(raw: Any) -> tuple[dict, list[str], list[str]]:
    warnings: list[str] = []
    unknown_keys: list[str] = []
    data = _split_known(raw, DEFAULT_BUY_BOX, unknown_keys, "buy_box")

    for key in WEIGHTED_CRITERIA:
        template = DEFAULT_BUY_BOX[key]
        item = data.get(key)
        if not isinstance(item, dict):
            warnings.append(f"{key} invalid and reset to default.")
            data[key] = deepcopy(template)
            continue
        criterion = {"weight": _coerce_weight(item.get("weight", 0), key, warnings)}
        if key == "growth_levers":
            for flag in ("sales", "ops", "consolidation"):
                criterion[flag] = _coerce_bool(item.get(flag, False), False, f"{key}.{flag}", warnings)
        elif isinstance(template["value"], str):
            criterion["value"] = str(item.get("value") or "")
        elif isinstance(template["value"], int):
            criterion["value"] = parse_whole(item.get("value", template["value"]))
        else:
            criterion["value"] = max(0.0, _coerce_amount(item.get("value", template["value"]), key, warnings))
        data[key] = criterion

    expertise: list[dict] = []
    raw_expertise = data.get("industry_expertise")
    if isinstance(raw_expertise, list):
        for idx, item in enumerate(raw_expertise):
            if not isinstance(item, dict) or not str(item.get("industry", "")).strip():
                warnings.append(f"industry_expertise[{idx}] ignored because it has no industry.")
                continue
            proficiency = str(item.get("proficiency", "Intermediate"))
            if proficiency not in PROFICIENCY_LEVELS:
                proficiency = "Intermediate"
            expertise.append({"industry": str(item["industry"]).strip(), "proficiency": proficiency})
    data["industry_expertise"] = expertise

    for key in BUY_BOX_TEXT_FIELDS:
        data[key] = str(data.get(key) or "")
    return data, warnings, sorted(unknown_keys)


_MIGRATORS = {
    "financials": migrate_financials,
    "deal_inputs": migrate_deal_inputs,
    "projection": migrate_projection,
    "buy_box": migrate_buy_box,
}


def migrate_records(raw: Any) -> tuple[dict, list[str], list[str]]:
    """Migrate a full workspace (all four records) into the current schema."""
    payload = raw if isinstance(raw, dict) else {}
    records: dict = {}
    warnings: list[str] = []
    unknown_keys: list[str] = [k for k in payload.keys() if k not in _MIGRATORS]
    for key, migrate in _MIGRATORS.items():
        record, record_warnings, record_unknown = migrate(payload.get(key, {}))
        records[key] = record
        warnings.extend(record_warnings)
        unknown_keys.extend(record_unknown)
    return records, warnings, sorted(unknown_keys)


def migrate_import_payload(payload: Any) -> tuple[dict, dict | None, list[str], list[str]]:
    """Parse an imported deal/workspace payload and return migrated records + ui_state."""
    if not isinstance(payload, dict):
        records, _, _ = migrate_records({})
        return records, None, ["Import payload is not a JSON object."], []

    payload_type = payload.get("type")
    if payload_type in {DEAL_TYPE, WORKSPACE_TYPE}:
        ui_state = payload.get("ui_state") if payload_type == WORKSPACE_TYPE else None
        records, warnings, unknown = migrate_records(payload.get("records", {}))
        version = payload.get("schema_version")
        if version != SCHEMA_VERSION:
            warnings.append(f"Imported schema_version={version}; migrated to schema_version={SCHEMA_VERSION}.")
        return records, ui_state, warnings, unknown

    records, warnings, unknown = migrate_records(payload)
    warnings.append("Imported legacy record JSON without bundle metadata.")
    return records, None, warnings, unknown
