from __future__ import annotations

import uuid

import pytest
from streamlit.testing.v1 import AppTest

import deal_engine.persistence as persistence
import deal_engine.runtime_logging as runtime_logging


def _widget_by_label(widgets, label: str):
    matches = [w for w in widgets if getattr(w, "label", "") == label]
    assert matches, f"Widget not found for label: {label}"
    return matches[0]


def _assert_no_app_exceptions(at: AppTest) -> None:
    assert len(at.exception) == 0


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path):
    original_store = persistence.STORE_DIR
    original_log = runtime_logging.LOG_DIR
    persistence.configure_storage_root(tmp_path)
    runtime_logging.configure_log_root(tmp_path)
    yield tmp_path
    persistence.configure_storage_root(original_store)
    runtime_logging.configure_log_root(original_log)


def test_app_initial_run_has_no_exceptions():
    at = AppTest.from_file("../app.py")
    at.run(timeout=180)
    _assert_no_app_exceptions(at)


def test_workspace_save_and_load_smoke_flow():
    at = AppTest.from_file("../app.py")
    at.run(timeout=180)
    _assert_no_app_exceptions(at)

    save_name = f"smoke_ws_{uuid.uuid4().hex[:8]}"

    at.radio(key="deal__calculation_mode").set_value("advanced")
    at.run(timeout=180)
    _widget_by_label(at.text_input, "Save Name").set_value(save_name)
    at.run(timeout=180)
    _widget_by_label(at.button, "Save Workspace").click()
    at.run(timeout=180)
    _assert_no_app_exceptions(at)
    assert save_name in persistence.list_saved_names("workspace")

    at.radio(key="deal__calculation_mode").set_value("simple")
    at.run(timeout=180)
    _widget_by_label(at.selectbox, "Saved Workspaces").set_value(save_name)
    at.run(timeout=180)
    _widget_by_label(at.button, "Load Workspace").click()
    at.run(timeout=180)
    _assert_no_app_exceptions(at)

    # The queued load is applied before widgets render on the rerun.
    at.run(timeout=180)
    assert at.radio(key="deal__calculation_mode").value == "advanced"
    assert at.session_state["records"]["deal_inputs"]["calculation_mode"] == "advanced"


def test_load_from_analysis_seeds_projection_inputs():
    at = AppTest.from_file("../app.py")
    at.run(timeout=180)
    _widget_by_label(at.button, "Load from Analysis").click()
    at.run(timeout=180)
    at.run(timeout=180)
    _assert_no_app_exceptions(at)
    assert at.number_input(key="proj__annual_debt_service").value == 144_000.0
    assert at.session_state["records"]["projection"]["cogs_pct_of_revenue"] == pytest.approx(0.6)


def test_amount_input_rejects_letters_and_keeps_value():
    at = AppTest.from_file("../app.py")
    at.run(timeout=180)
    at.text_input(key="deal__sde").set_value("50o,000")
    at.run(timeout=180)
    _assert_no_app_exceptions(at)
    assert at.session_state["deal__sde__error"] == "Invalid number"
    assert at.session_state["records"]["deal_inputs"]["sde"] == 500_000.0

    at.text_input(key="deal__sde").set_value("600000")
    at.run(timeout=180)
    assert at.text_input(key="deal__sde").value == "600,000"
    assert at.session_state["records"]["deal_inputs"]["sde"] == 600_000.0


def test_fit_scorecard_renders_score():
    at = AppTest.from_file("../app.py")
    at.run(timeout=180)
    at.text_area(key="fit_scorecard_text").set_value(
        "| Criterion | Status | Fit | Rationale |\n|---|---|---|---|\n| Geography (Weight: 2) | Texas | Yes | match |\n"
    )
    at.run(timeout=180)
    _assert_no_app_exceptions(at)
    score = _widget_by_label(at.metric, "Overall Fit Score")
    assert score.value == "10%"


def test_interactive_widgets_expose_help_tooltips():
    at = AppTest.from_file("../app.py")
    at.run(timeout=180)
    _assert_no_app_exceptions(at)

    widget_groups = {
        "number_input": at.number_input,
        "slider": at.slider,
        "selectbox": at.selectbox,
        "toggle": at.toggle,
        "checkbox": at.checkbox,
        "text_input": at.text_input,
        "radio": at.radio,
        "button": at.button,
    }
    for widget_type, widgets in widget_groups.items():
        missing = [
            getattr(widget, "label", "<no label>")
            for widget in widgets
            if not isinstance(getattr(widget, "help", None), str) or not str(widget.help).strip()
        ]
        assert not missing, f"{widget_type} widgets missing help: {', '.join(missing[:5])}"


def test_storage_location_custom_path_apply_flow(isolated_storage):
    at = AppTest.from_file("../app.py")
    at.run(timeout=240)
    _assert_no_app_exceptions(at)

    custom = isolated_storage / f"storage_smoke_{uuid.uuid4().hex[:8]}"
    _widget_by_label(at.text_input, "Custom Storage Folder").set_value(str(custom))
    at.run(timeout=240)
    _widget_by_label(at.button, "Apply Storage Location").click()
    at.run(timeout=240)
    _assert_no_app_exceptions(at)

    assert "storage_active_path" in at.session_state
    assert str(at.session_state["storage_active_path"]) == str(custom.resolve())
