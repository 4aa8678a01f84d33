from __future__ import annotations

from copy import deepcopy

from deal_engine.defaults import DEFAULTS
from deal_engine.schema import (
    DEAL_TYPE,
    SCHEMA_VERSION,
    WORKSPACE_TYPE,
    add_period,
    migrate_buy_box,
    migrate_deal_inputs,
    migrate_financials,
    migrate_import_payload,
    migrate_projection,
    migrate_records,
    next_period_name,
    remove_period,
)


def test_defaults_migrate_cleanly():
    records, warnings, unknown = migrate_records(deepcopy(DEFAULTS))
    assert warnings == []
    assert unknown == []
    assert set(records) == {"financials", "deal_inputs", "projection", "buy_box"}


def test_financials_text_amounts_parse_and_junk_becomes_zero_with_warning():
    raw = deepcopy(DEFAULTS["financials"])
    raw["periods"][0]["revenue"] = "$2,750,000"
    raw["periods"][0]["cogs"] = "lots"
    raw["benchmarks"]["gross_margin"] = "40%"
    financials, warnings, _ = migrate_financials(raw)
    assert financials["periods"][0]["revenue"] == 2_750_000.0
    assert financials["periods"][0]["cogs"] == 0.0
    assert financials["benchmarks"]["gross_margin"] == 0.4
    assert any("cogs" in w for w in warnings)


def test_financials_always_keep_at_least_one_period():
    financials, warnings, _ = migrate_financials({"periods": []})
    assert len(financials["periods"]) == 1
    assert any("At least one period" in w for w in warnings)


def test_financials_clamp_ytd_months_and_reset_bad_add_back_category():
    raw = deepcopy(DEFAULTS["financials"])
    raw["ytd_months"] = 15
    raw["add_backs"] = [{"description": "Trip", "amount": "5,000", "category": "Vacation"}, "junk"]
    financials, warnings, _ = migrate_financials(raw)
    assert financials["ytd_months"] == 12
    assert financials["add_backs"] == [
        {"id": financials["add_backs"][0]["id"], "description": "Trip", "amount": 5_000.0, "category": "Other"}
    ]
    assert len(warnings) == 2


def test_deal_inputs_coerce_rates_modes_and_flags():
    raw = deepcopy(DEFAULTS["deal_inputs"])
    raw.update(
        {
            "senior_annual_rate": "9.5%",
            "calculation_mode": "fancy",
            "stress_test_enabled": "yes",
            "senior_term_years": "10 years",
            "legacy_field": 1,
        }
    )
    deal, warnings, unknown = migrate_deal_inputs(raw)
    assert abs(deal["senior_annual_rate"] - 0.095) < 1e-12
    assert deal["calculation_mode"] == "simple"
    assert deal["stress_test_enabled"] is True
    assert deal["senior_term_years"] == 10
    assert unknown == ["deal_inputs.legacy_field"]
    assert any("calculation_mode" in w for w in warnings)


def test_projection_rates_are_clamped():
    raw = deepcopy(DEFAULTS["projection"])
    raw["cogs_pct_of_revenue"] = 1.7
    raw["revenue_growth_y2_annual"] = -3.0
    raw["opex_mode"] = "fixed_amount"
    projection, _, _ = migrate_projection(raw)
    assert projection["cogs_pct_of_revenue"] == 1.0
    assert projection["revenue_growth_y2_annual"] == -1.0
    assert projection["opex_mode"] == "fixed_amount"


def test_buy_box_weights_are_clamped_and_expertise_cleaned():
    raw = deepcopy(DEFAULTS["buy_box"])
    raw["geography"]["weight"] = 9
    raw["industry_expertise"] = [{"industry": "HVAC", "proficiency": "Guru"}, {"industry": " "}]
    buy_box, warnings, _ = migrate_buy_box(raw)
    assert buy_box["geography"]["weight"] == 5
    assert buy_box["industry_expertise"] == [{"industry": "HVAC", "proficiency": "Intermediate"}]
    assert len(warnings) == 2


def test_add_period_prepends_next_year_and_remove_keeps_one():
    periods = deepcopy(DEFAULTS["financials"]["periods"])
    latest = max(int(p["period_name"]) for p in periods)
    assert next_period_name(periods) == str(latest + 1)
    grown = add_period(periods)
    assert grown[0]["period_name"] == str(latest + 1)
    assert grown[0]["revenue"] == 0.0
    assert len(grown) == len(periods) + 1

    remaining, removed = remove_period(grown, grown[0]["id"])
    assert removed is True
    assert remaining == periods

    single, removed = remove_period(periods[:1], periods[0]["id"])
    assert removed is False
    assert single == periods[:1]


def test_import_payload_bundles_and_legacy_records():
    records, _, _ = migrate_records(deepcopy(DEFAULTS))
    workspace = {"type": WORKSPACE_TYPE, "schema_version": SCHEMA_VERSION, "records": records, "ui_state": {"as_of_year": 2030}}
    migrated, ui_state, warnings, unknown = migrate_import_payload(workspace)
    assert migrated == records
    assert ui_state == {"as_of_year": 2030}
    assert warnings == []

    deal = {"type": DEAL_TYPE, "schema_version": 0, "records": records, "ui_state": {"ignored": True}}
    _, ui_state, warnings, _ = migrate_import_payload(deal)
    assert ui_state is None
    assert any("migrated to schema_version" in w for w in warnings)

    _, ui_state, warnings, unknown = migrate_import_payload({"deal_inputs": {"sde": "400,000"}, "extra": 1})
    assert ui_state is None
    assert unknown == ["extra"]
    assert any("legacy" in w.lower() for w in warnings)

    _, _, warnings, _ = migrate_import_payload(["not", "a", "dict"])
    assert warnings == ["Import payload is not a JSON object."]
