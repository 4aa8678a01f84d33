from __future__ import annotations

from copy import deepcopy

from deal_engine.input_metadata import INPUT_GUIDANCE, INPUT_HELP, advisory_warnings, help_with_guidance


def test_help_with_guidance_appends_reasonable_range():
    help_text = help_with_guidance("asking_multiple")
    assert help_text.startswith(INPUT_HELP["asking_multiple"])
    assert "Reasonable range: 1.5 to 6." in help_text


def test_help_without_guidance_is_the_base_text():
    assert help_with_guidance("sde") == INPUT_HELP["sde"]
    assert help_with_guidance("sde", "Custom help.") == "Custom help."
    assert help_with_guidance("not_a_field") == ""


def test_every_guided_input_has_help():
    assert set(INPUT_GUIDANCE) <= set(INPUT_HELP)


def test_defaults_raise_no_advisories(base_deal_inputs, base_projection):
    assert advisory_warnings(base_deal_inputs) == []
    assert advisory_warnings(base_projection) == []


def test_out_of_range_inputs_are_advisory_only(base_deal_inputs):
    inputs = deepcopy(base_deal_inputs)
    inputs["asking_multiple"] = "9"
    inputs["senior_annual_rate"] = 0.02
    warnings = advisory_warnings(inputs)
    assert len(warnings) == 2
    assert any(w.startswith("asking_multiple=9.000") for w in warnings)
