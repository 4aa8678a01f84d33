import json
from copy import deepcopy
from datetime import datetime

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st
from streamlit.errors import StreamlitAPIException

from deal_engine.deal_structure import DEBT_FIELDS, dscr_is_healthy, run_deal_structure, stress_comparison
from deal_engine.defaults import DEFAULTS
from deal_engine.export import export_csv_bytes, export_excel_bytes, export_file_stem
from deal_engine.fit_score import calculate_fit_score, total_possible_score
from deal_engine.input_metadata import advisory_warnings, help_with_guidance
from deal_engine.integrity_checks import run_analysis_integrity_checks, run_projection_integrity_checks
from deal_engine.markdown_render import SCORECARD_CSS, render_markdown
from deal_engine.normalization import AddBackTotals, add_backs_by_category, sde_waterfall
from deal_engine.numeric import AmountField, format_currency, format_day_count, format_percent, format_ratio
from deal_engine.persistence import (
    build_deal_bundle,
    build_profile_bundle,
    build_workspace_bundle,
    configure_storage_root,
    delete_saved,
    list_saved_names,
    load_saved,
    parse_import_json,
    profile_from_bundle,
    rename_saved,
    save_named_bundle,
    storage_root_path,
)
from deal_engine.projection import assumptions_from_analysis, run_projection
from deal_engine.ratios import benchmark_table, common_size, nwc_peg, run_financial_analysis, ytd_actuals_metrics
from deal_engine.runtime_logging import (
    LEVELS,
    append_runtime_event,
    clear_runtime_events,
    configure_log_root,
    events_frame,
    install_global_exception_logging,
    log_migration,
    read_runtime_events,
    runtime_log_path,
)
from deal_engine.schema import (
    ADD_BACK_CATEGORIES,
    BUY_BOX_PROFILE_TYPE,
    DEAL_TYPE,
    MAX_CRITERION_WEIGHT,
    PERIOD_FIELD_LABELS,
    PERIOD_FIELDS,
    PROFICIENCY_LEVELS,
    WORKSPACE_TYPE,
    add_period,
    migrate_buy_box,
    migrate_records,
    new_id,
    remove_period,
)
from deal_engine.statement_import import (
    import_statement_frame,
    merge_scanned_periods,
    parse_scan_payload,
    read_statement_file,
)


install_global_exception_logging()


UI_DEFAULTS = {
    "as_of_year": datetime.now().year,
    "common_size_base": "revenue",
    "export_formatted": False,
    "fit_scorecard_text": "",
    "active_deal_name": "",
    "active_profile_name": "",
}

DEAL_AMOUNT_FIELDS = [
    ("sde", "SDE"),
    ("owner_salary", "Owner Salary"),
    ("closing_costs", "Closing Costs"),
    ("senior_loan_amount", "Senior Loan Amount"),
    ("amortizing_note_amount", "Amortizing Seller Note"),
    ("standby_note_amount", "Standby Seller Note"),
    ("forgivable_note_amount", "Forgivable Seller Note"),
]
DEAL_PERCENT_FIELDS = [
    ("senior_annual_rate", "Senior Loan Rate (%)"),
    ("amortizing_note_annual_rate", "Seller Note Rate (%)"),
    ("standby_note_annual_rate", "Standby Note Rate (%)"),
    ("stress_test_pct", "SDE Stress (%)"),
]
DEAL_WHOLE_FIELDS = [
    ("liquidity_months", "Liquidity Reserve (Months)"),
    ("senior_term_years", "Senior Loan Term (Years)"),
    ("amortizing_note_term_years", "Seller Note Term (Years)"),
    ("standby_note_term_years", "Standby Note Term (Years)"),
    ("forgiveness_period_years", "Forgiveness Period (Years)"),
]
PROJECTION_AMOUNT_FIELDS = [
    ("starting_revenue", "Starting Annual Revenue"),
    ("starting_ebitda", "Starting Annual EBITDA"),
    ("opex_fixed_amount", "Fixed Annual OpEx"),
    ("annual_capex", "Annual CapEx"),
    ("annual_debt_service", "Annual Debt Service"),
]
PROJECTION_PERCENT_FIELDS = [
    ("revenue_growth_y1_monthly", "Y1 Monthly Revenue Growth (%)"),
    ("revenue_growth_y2_annual", "Y2 Revenue Growth (%)"),
    ("revenue_growth_y3_annual", "Y3 Revenue Growth (%)"),
    ("cogs_pct_of_revenue", "COGS (% of Revenue)"),
    ("opex_pct_of_revenue", "OpEx (% of Revenue)"),
    ("opex_growth_annual", "Fixed OpEx Growth (%)"),
    ("effective_tax_rate", "Effective Tax Rate (%)"),
]
BENCHMARK_FIELDS = [
    ("gross_margin", "Gross Margin Benchmark (%)", True),
    ("ebitda_margin", "EBITDA Margin Benchmark (%)", True),
    ("current_ratio", "Current Ratio Benchmark (x)", False),
    ("dso", "DSO Benchmark (Days)", False),
    ("dpo", "DPO Benchmark (Days)", False),
]
BUY_BOX_TEXT_CRITERIA = [
    ("geography", "Geography"),
    ("industry_type", "Industry"),
    ("industry_trends", "Industry Trends"),
    ("seller_role", "Seller Role"),
    ("team_strength", "Team Strength"),
    ("business_model", "Business Model"),
    ("my_primary_role", "My Role"),
]
BUY_BOX_AMOUNT_CRITERIA = [
    ("min_sde", "Minimum SDE"),
    ("max_sde", "Maximum SDE"),
    ("customer_concentration", "Max Customer Concentration (%)"),
    ("min_recurring_revenue", "Min Recurring Revenue (%)"),
]

PERCENT_TOKENS = ("margin", "growth", "%")
RATIO_TOKENS = ("ratio", "dscr")
DAY_TOKENS = ("days",)


# --- Session state ---


def _amount_key(prefix: str, field: str) -> str:
    return f"{prefix}__{field}"


def _seed_amount(key: str, value) -> None:
    field = AmountField.from_value(value)
    st.session_state[key] = field.raw
    st.session_state[f"{key}__value"] = field.value
    st.session_state.pop(f"{key}__error", None)


def _seed_widget_state(records: dict) -> None:
    deal = records["deal_inputs"]
    for field, _ in DEAL_AMOUNT_FIELDS:
        _seed_amount(_amount_key("deal", field), deal[field])
    for field, _ in DEAL_PERCENT_FIELDS:
        st.session_state[f"deal__{field}"] = float(deal[field]) * 100
    for field, _ in DEAL_WHOLE_FIELDS:
        st.session_state[f"deal__{field}"] = int(deal[field])
    st.session_state["deal__asking_multiple"] = float(deal["asking_multiple"])
    st.session_state["deal__calculation_mode"] = deal["calculation_mode"]
    st.session_state["deal__amortizing_note_type"] = deal["amortizing_note_type"]
    st.session_state["deal__stress_test_enabled"] = bool(deal["stress_test_enabled"])
    st.session_state["deal__forgiveness_condition"] = deal["forgiveness_condition"]

    proj = records["projection"]
    for field, _ in PROJECTION_AMOUNT_FIELDS:
        st.session_state[f"proj__{field}"] = float(proj[field])
    for field, _ in PROJECTION_PERCENT_FIELDS:
        st.session_state[f"proj__{field}"] = float(proj[field]) * 100
    st.session_state["proj__opex_mode"] = proj["opex_mode"]

    fin = records["financials"]
    st.session_state["fin__company_name"] = fin["company_name"]
    st.session_state["fin__ytd_months"] = int(fin["ytd_months"])
    st.session_state["fin__owner_comp_add_back"] = float(fin["owner_comp_add_back"])
    st.session_state["fin__financial_notes"] = fin["financial_notes"]
    st.session_state["fin__add_back_notes"] = fin["add_back_notes"]
    for field, _, is_pct in BENCHMARK_FIELDS:
        value = float(fin["benchmarks"][field])
        st.session_state[f"bench__{field}"] = value * 100 if is_pct else value

    _seed_buy_box_state(records["buy_box"])


def _seed_buy_box_state(buy_box: dict) -> None:
    for field, _ in BUY_BOX_TEXT_CRITERIA:
        st.session_state[f"bb__{field}"] = str(buy_box[field]["value"])
    for field, _ in BUY_BOX_AMOUNT_CRITERIA:
        st.session_state[f"bb__{field}"] = float(buy_box[field]["value"])
    st.session_state["bb__system_messiness"] = int(min(5, max(1, buy_box["system_messiness"]["value"] or 1)))
    for flag in ("sales", "ops", "consolidation"):
        st.session_state[f"bb__growth_levers__{flag}"] = bool(buy_box["growth_levers"][flag])
    for field in buy_box:
        if isinstance(buy_box[field], dict) and "weight" in buy_box[field]:
            st.session_state[f"bb_weight__{field}"] = int(buy_box[field]["weight"])
    for field in ("desired_culture", "desired_culture_rationale", "personal_goal", "personal_goal_rationale"):
        st.session_state[f"bb__{field}"] = str(buy_box[field])
    st.session_state["editor_nonce"] = int(st.session_state.get("editor_nonce", 0)) + 1


def _current_ui_state() -> dict:
    return {key: deepcopy(st.session_state.get(key, default)) for key, default in UI_DEFAULTS.items()}


def _apply_ui_state(ui_state: dict | None) -> None:
    if not isinstance(ui_state, dict):
        return
    for key, default in UI_DEFAULTS.items():
        if key not in ui_state:
            continue
        value = ui_state[key]
        if isinstance(default, bool):
            st.session_state[key] = bool(value)
        elif isinstance(default, int):
            st.session_state[key] = int(value) if str(value).strip().lstrip("-").isdigit() else default
        else:
            st.session_state[key] = str(value if value is not None else default)


def _queue_load(records: dict, ui_state: dict | None = None, message: str = "") -> None:
    """Widget keys cannot change after render, so loads are applied at the top of the next run."""
    st.session_state["_pending_load"] = {"records": deepcopy(records), "ui_state": deepcopy(ui_state), "message": message}
    st.rerun()


def _apply_pending_load() -> None:
    pending = st.session_state.pop("_pending_load", None)
    if not isinstance(pending, dict):
        return
    st.session_state["records"] = pending["records"]
    try:
        _seed_widget_state(pending["records"])
        _apply_ui_state(pending.get("ui_state"))
    except StreamlitAPIException as exc:
        append_runtime_event(
            level="ERROR",
            event="apply_pending_load_failed",
            message="Could not apply loaded records to widgets.",
            exc=exc,
        )
        st.warning("Loaded data could not be fully applied; check the inputs.")
    if pending.get("message"):
        st.session_state["_flash_message"] = pending["message"]


def _init_state() -> None:
    if "records" not in st.session_state:
        records, _, _ = migrate_records(deepcopy(DEFAULTS))
        st.session_state["records"] = records
        for key, value in UI_DEFAULTS.items():
            st.session_state.setdefault(key, deepcopy(value))
        _seed_widget_state(records)
    st.session_state.setdefault("editor_nonce", 0)


def _editor_source(name: str, builder) -> pd.DataFrame:
    """Stable input frame for a data editor so its stored edits are not replayed onto edited data."""
    key = f"_editor_src__{name}__{st.session_state['editor_nonce']}"
    if key not in st.session_state:
        st.session_state[key] = builder()
    return st.session_state[key]


def _bump_editors() -> None:
    st.session_state["editor_nonce"] = int(st.session_state.get("editor_nonce", 0)) + 1


# --- Widgets ---


def _commit_amount(key: str) -> None:
    field = AmountField(value=float(st.session_state.get(f"{key}__value", 0.0))).edit(st.session_state.get(key, ""))
    if field.error is not None:
        st.session_state[f"{key}__error"] = field.error
        return
    committed = field.commit()
    st.session_state[key] = committed.raw
    st.session_state[f"{key}__value"] = committed.value
    st.session_state.pop(f"{key}__error", None)


def _amount_input(label: str, key: str, help_text: str, container=st) -> float:
    container.text_input(label, key=key, help=help_text, on_change=_commit_amount, args=(key,))
    error = st.session_state.get(f"{key}__error")
    if error:
        container.caption(f":red[{error}]")
    return float(st.session_state.get(f"{key}__value", 0.0))


def _cell_amount(value) -> float:
    return float(value) if pd.notna(value) else 0.0


def _fmt_cell(col: str, value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    col_l = str(col).lower()
    if any(tok in col_l for tok in DAY_TOKENS):
        return format_day_count(value)
    if any(tok in col_l for tok in RATIO_TOKENS):
        return format_ratio(value)
    if any(tok in col_l for tok in PERCENT_TOKENS):
        return format_percent(value)
    return format_currency(value)


def _format_dataframe_for_display(df: pd.DataFrame, skip: tuple[str, ...] = ()) -> pd.DataFrame:
    if not isinstance(df, pd.DataFrame) or df.empty:
        return df
    out = df.copy()
    for col in out.columns:
        if col in skip or not pd.api.types.is_numeric_dtype(out[col]) or pd.api.types.is_bool_dtype(out[col]):
            continue
        out[col] = out[col].map(lambda v, c=col: _fmt_cell(c, v))
    return out


def _metric_table(analysis_df: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    """Metric rows x period columns, formatted for display."""
    rows = []
    for col in columns:
        row = {"Metric": col}
        for period, value in zip(analysis_df["Period"], analysis_df[col]):
            row[str(period)] = _fmt_cell(col, value)
        rows.append(row)
    return pd.DataFrame(rows)


def _show_findings(findings: list[dict], label: str) -> None:
    with st.expander(f"{label} integrity checks", expanded=bool(findings)):
        if findings:
            st.dataframe(pd.DataFrame(findings), width="stretch", hide_index=True)
        else:
            st.caption("All identity checks passed.")


# --- Page ---


st.set_page_config(page_title="M&A Deal Workbench", layout="wide")
st.title("M&A Deal Workbench")
st.caption("SDE normalization, ratio analysis, deal structuring, projections, and buy-box fit scoring.")

_init_state()
_apply_pending_load()
flash = st.session_state.pop("_flash_message", None)
if flash:
    st.success(flash)

records = st.session_state["records"]

analysis_tab, deal_tab, projection_tab, fit_tab, save_tab, diagnostics_tab = st.tabs(
    ["Financial Analysis", "Deal Structure", "Projections", "Buy-Box Fit", "Save / Load", "Diagnostics"]
)


with analysis_tab:
    financials = deepcopy(records["financials"])

    c1, c2, c3 = st.columns([2, 1, 1])
    financials["company_name"] = c1.text_input(
        "Company Name", key="fin__company_name", help="Target company name; used for export file names."
    )
    financials["ytd_months"] = int(
        c2.number_input(
            "Months in YTD",
            min_value=0,
            max_value=12,
            step=1,
            key="fin__ytd_months",
            help="Months covered by the YTD actuals. Revenue, COGS and OpEx are annualized by 12 / months.",
        )
    )
    c3.number_input(
        "Annualized Period Year",
        min_value=1900,
        max_value=2200,
        step=1,
        key="as_of_year",
        help="Year used to name and sort the annualized YTD period.",
    )

    st.subheader("Historic Periods")
    b1, b2, b3 = st.columns([1, 2, 1])
    if b1.button("Add Period", help="Add an empty period for the year after the latest one."):
        financials["periods"] = add_period(financials["periods"])
        records["financials"]["periods"] = financials["periods"]
        _bump_editors()
    period_choices = {f"{p['period_name']} ({p['id'][:6]})": p["id"] for p in financials["periods"]}
    remove_choice = b2.selectbox(
        "Period to remove", list(period_choices.keys()), help="Pick a historic period to delete."
    )
    if b3.button("Remove Period", help="Delete the selected period. The last remaining period cannot be removed."):
        remaining, removed = remove_period(financials["periods"], period_choices.get(remove_choice, ""))
        if removed:
            financials["periods"] = remaining
            records["financials"]["periods"] = remaining
            _bump_editors()
        else:
            st.warning("At least one period is required.")

    def _periods_frame() -> pd.DataFrame:
        rows = []
        for p in records["financials"]["periods"]:
            row = {"Period ID": p["id"], "Period": p["period_name"]}
            row.update({PERIOD_FIELD_LABELS[f]: float(p[f]) for f in PERIOD_FIELDS})
            rows.append(row)
        return pd.DataFrame(rows)

    number_columns = {
        PERIOD_FIELD_LABELS[f]: st.column_config.NumberColumn(PERIOD_FIELD_LABELS[f], format="%.0f", step=1.0)
        for f in PERIOD_FIELDS
    }
    periods_df = st.data_editor(
        _editor_source("periods", _periods_frame),
        key=f"periods_editor_{st.session_state['editor_nonce']}",
        hide_index=True,
        num_rows="fixed",
        column_config={"Period ID": None, **number_columns},
        width="stretch",
    )
    financials["periods"] = [
        {
            "id": str(row["Period ID"]),
            "period_name": str(row["Period"] or "").strip(),
            **{f: _cell_amount(row[PERIOD_FIELD_LABELS[f]]) for f in PERIOD_FIELDS},
        }
        for _, row in periods_df.iterrows()
    ]

    st.subheader("YTD Actuals")

    def _ytd_frame() -> pd.DataFrame:
        ytd = records["financials"]["ytd_actuals"]
        row = {"Period": ytd["period_name"]}
        row.update({PERIOD_FIELD_LABELS[f]: float(ytd[f]) for f in PERIOD_FIELDS})
        return pd.DataFrame([row])

    ytd_df = st.data_editor(
        _editor_source("ytd", _ytd_frame),
        key=f"ytd_editor_{st.session_state['editor_nonce']}",
        hide_index=True,
        num_rows="fixed",
        column_config=number_columns,
        width="stretch",
    )
    ytd_row = ytd_df.iloc[0]
    financials["ytd_actuals"] = {
        "id": records["financials"]["ytd_actuals"]["id"],
        "period_name": str(ytd_row["Period"] or "YTD Actuals"),
        **{f: _cell_amount(ytd_row[PERIOD_FIELD_LABELS[f]]) for f in PERIOD_FIELDS},
    }

    st.subheader("Add-Backs")
    financials["owner_comp_add_back"] = float(
        st.number_input(
            "Owner Compensation Add-Back",
            step=1000.0,
            key="fin__owner_comp_add_back",
            help="Owner pay added back to reach SDE; excluded from normalized EBITDA.",
        )
    )

    def _add_backs_frame() -> pd.DataFrame:
        return pd.DataFrame(
            [
                {"Add-Back ID": a["id"], "Description": a["description"], "Amount": float(a["amount"]), "Category": a["category"]}
                for a in records["financials"]["add_backs"]
            ],
            columns=["Add-Back ID", "Description", "Amount", "Category"],
        )

    add_backs_df = st.data_editor(
        _editor_source("add_backs", _add_backs_frame),
        key=f"add_backs_editor_{st.session_state['editor_nonce']}",
        hide_index=True,
        num_rows="dynamic",
        column_config={
            "Add-Back ID": None,
            "Amount": st.column_config.NumberColumn("Amount", format="%.0f", step=1.0),
            "Category": st.column_config.SelectboxColumn("Category", options=ADD_BACK_CATEGORIES, default="Other"),
        },
        width="stretch",
    )
    financials["add_backs"] = [
        {
            "id": str(row["Add-Back ID"]) if isinstance(row["Add-Back ID"], str) and row["Add-Back ID"] else new_id(),
            "description": str(row["Description"] or ""),
            "amount": float(row["Amount"]) if pd.notna(row["Amount"]) else 0.0,
            "category": row["Category"] if row["Category"] in ADD_BACK_CATEGORIES else "Other",
        }
        for _, row in add_backs_df.iterrows()
    ]
    by_category = {k: v for k, v in add_backs_by_category(financials["add_backs"]).items() if v}
    if by_category:
        st.caption(" | ".join(f"{k}: {format_currency(v)}" for k, v in by_category.items()))

    with st.expander("Benchmarks", expanded=False):
        bench_cols = st.columns(len(BENCHMARK_FIELDS))
        for col, (field, label, is_pct) in zip(bench_cols, BENCHMARK_FIELDS):
            value = col.number_input(label, min_value=0.0, key=f"bench__{field}", help=f"Industry benchmark for {label}.")
            financials["benchmarks"][field] = float(value) / 100 if is_pct else float(value)

    with st.expander("Notes", expanded=False):
        financials["financial_notes"] = st.text_area(
            "Financial Notes", key="fin__financial_notes", help="Free-form notes on the financials."
        )
        financials["add_back_notes"] = st.text_area(
            "Add-Back Notes", key="fin__add_back_notes", help="Support for each add-back."
        )

    records["financials"] = financials

    with st.expander("Import Statements", expanded=False):
        uploaded = st.file_uploader(
            "Statement File", type=["csv", "xlsx"], help="First column holds line-item labels; other columns are periods."
        )
        if st.button("Import Statement", help="Replace periods with the uploaded statement.", disabled=uploaded is None):
            try:
                statement_df = read_statement_file(uploaded.name, uploaded.getvalue())
                imported, import_warnings = import_statement_frame(statement_df, financials)
            except ValueError as exc:
                append_runtime_event(
                    level="WARNING",
                    event="statement_import_failed",
                    message=str(exc),
                    context={"file": getattr(uploaded, "name", "")},
                    exc=exc,
                )
                st.error(f"Statement could not be imported: {exc}")
            else:
                new_records = deepcopy(records)
                new_records["financials"] = imported
                _queue_load(new_records, _current_ui_state(), "Statement imported. " + " ".join(import_warnings))

        scan_text = st.text_area(
            "Scan Result JSON",
            key="scan_result_json",
            help='Output of the document scan: {"periods": [{"year": ..., "Revenue": ..., ...}]}.',
        )
        if st.button("Merge Scan Result", help="Update matching periods and append new ones.", disabled=not scan_text.strip()):
            try:
                scanned = parse_scan_payload(scan_text)
            except ValueError as exc:
                append_runtime_event(level="WARNING", event="scan_merge_failed", message=str(exc), exc=exc)
                st.error(f"Scan result could not be merged: {exc}")
            else:
                merged, added, updated = merge_scanned_periods(financials["periods"], scanned)
                new_records = deepcopy(records)
                new_records["financials"]["periods"] = merged
                _queue_load(new_records, _current_ui_state(), f"Scan merged: {added} added, {updated} updated.")

    analysis_df = run_financial_analysis(financials, as_of_year=int(st.session_state["as_of_year"]))

    st.subheader("Normalized Earnings")
    latest = analysis_df.iloc[-1]
    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Latest Normalized SDE", format_currency(latest["Normalized SDE"]), str(latest["Period"]))
    k2.metric("Latest Normalized EBITDA", format_currency(latest["Normalized EBITDA"]))
    k3.metric("Average NWC (Peg)", format_currency(nwc_peg(analysis_df)))
    k4.metric("Revenue Growth", format_percent(latest["Revenue Growth"]))

    st.dataframe(
        _metric_table(
            analysis_df,
            ["Revenue", "Gross Profit", "EBITDA", "EBIT", "Net Income", "Normalized EBITDA", "Normalized SDE"],
        ),
        width="stretch",
        hide_index=True,
    )
    ytd_raw = ytd_actuals_metrics(financials)
    st.caption(
        f"YTD actuals ({financials['ytd_months']} months, not annualized): revenue {format_currency(ytd_raw['Revenue'])}, "
        f"EBITDA {format_currency(ytd_raw['EBITDA'])}, normalized SDE {format_currency(ytd_raw['Normalized SDE'])}."
    )

    waterfall_period = st.selectbox(
        "SDE Bridge Period", list(analysis_df["Period"]), index=len(analysis_df) - 1, help="Period shown in the SDE bridge."
    )
    bridge_row = analysis_df[analysis_df["Period"] == waterfall_period].iloc[0]
    steps = sde_waterfall(
        float(bridge_row["Net Income"]),
        float(bridge_row["EBITDA"]),
        AddBackTotals(other=float(bridge_row["Other Add-Backs"]), owner_comp=float(bridge_row["Owner Comp Add-Back"])),
    )
    bridge = go.Figure(
        go.Waterfall(
            x=[label for label, _ in steps],
            y=[value if idx in (0, 1, 3, 5) else 0 for idx, (_, value) in enumerate(steps)],
            measure=["absolute", "relative", "total", "relative", "total", "relative", "total"],
        )
    )
    bridge.update_layout(title=f"Net Income to Normalized SDE ({waterfall_period})", showlegend=False)
    st.plotly_chart(bridge, width="stretch")

    trend = analysis_df[["Period", "Revenue", "EBITDA", "Normalized SDE"]].melt(
        "Period", var_name="Metric", value_name="Amount"
    )
    st.plotly_chart(px.bar(trend, x="Period", y="Amount", color="Metric", barmode="group", title="Earnings by Period"), width="stretch")

    st.subheader("Ratios vs Benchmarks")
    bench_df = benchmark_table(analysis_df, financials["benchmarks"])
    status_icon = {"better": "▲", "worse": "▼", "neutral": ""}
    bench_view = bench_df.assign(Display=bench_df["Display"] + " " + bench_df["Status"].map(status_icon))
    st.dataframe(
        bench_view.pivot_table(index="Metric", columns="Period", values="Display", aggfunc="first", sort=False),
        width="stretch",
    )

    st.subheader("Working Capital and Balance Sheet")
    st.dataframe(
        _metric_table(
            analysis_df,
            ["Total Current Assets", "Total Assets", "Total Current Liabilities", "Net Working Capital",
             "Current Ratio", "Quick Ratio", "DSO (Days)", "DPO (Days)"],
        ),
        width="stretch",
        hide_index=True,
    )

    st.radio(
        "Common-Size Base",
        ["revenue", "assets"],
        key="common_size_base",
        horizontal=True,
        format_func=lambda v: "% of Revenue" if v == "revenue" else "% of Total Assets",
        help="Show lines as a share of revenue or of total assets.",
    )
    cs_df = common_size(analysis_df, st.session_state["common_size_base"])
    st.dataframe(
        cs_df.set_index("Period").T.apply(lambda s: s.map(format_percent)),
        width="stretch",
    )

    st.subheader("Export")
    st.toggle("Export formatted values", key="export_formatted", help="Write currency strings instead of raw numbers to CSV.")
    stem = export_file_stem(financials["company_name"])
    e1, e2 = st.columns(2)
    e1.download_button(
        "Download Analysis CSV",
        export_csv_bytes(analysis_df, formatted=bool(st.session_state["export_formatted"])),
        file_name=f"{stem}.csv",
        mime="text/csv",
        help="Key metrics by period as CSV.",
    )
    e2.download_button(
        "Download Analysis Excel",
        export_excel_bytes(analysis_df, {"Benchmarks": bench_df}),
        file_name=f"{stem}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        help="Key metrics by period plus the benchmark grid as an Excel workbook.",
    )
    _show_findings(run_analysis_integrity_checks(analysis_df), "Analysis")


with deal_tab:
    deal = deepcopy(records["deal_inputs"])

    st.radio(
        "Calculation Mode",
        ["simple", "advanced"],
        key="deal__calculation_mode",
        horizontal=True,
        format_func=str.title,
        help="Simple uses rule-of-thumb debt service (13% of the loan, 5% of the seller note). Advanced amortizes.",
    )
    deal["calculation_mode"] = st.session_state["deal__calculation_mode"]
    advanced = deal["calculation_mode"] == "advanced"

    st.subheader("Purchase Price")
    p1, p2, p3, p4 = st.columns(4)
    deal["sde"] = _amount_input("SDE", "deal__sde", help_with_guidance("sde"), p1)
    deal["asking_multiple"] = float(
        p2.number_input(
            "Asking Multiple", min_value=0.0, step=0.1, key="deal__asking_multiple",
            help=help_with_guidance("asking_multiple"),
        )
    )
    deal["owner_salary"] = _amount_input("Owner Salary", "deal__owner_salary", help_with_guidance("owner_salary"), p3)
    deal["closing_costs"] = _amount_input("Closing Costs", "deal__closing_costs", help_with_guidance("closing_costs"), p4)

    st.subheader("Financing")
    f1, f2, f3 = st.columns(3)
    deal["senior_loan_amount"] = _amount_input(
        "Senior Loan Amount", "deal__senior_loan_amount", help_with_guidance("senior_loan_amount"), f1
    )
    deal["amortizing_note_amount"] = _amount_input(
        "Amortizing Seller Note", "deal__amortizing_note_amount", help_with_guidance("amortizing_note_amount"), f2
    )
    deal["standby_note_amount"] = _amount_input(
        "Standby Seller Note", "deal__standby_note_amount", help_with_guidance("standby_note_amount"), f3
    )
    deal["forgivable_note_amount"] = _amount_input(
        "Forgivable Seller Note", "deal__forgivable_note_amount", help_with_guidance("forgivable_note_amount"), f1
    )

    # Terms stay rendered in simple mode so their widget state survives a mode switch.
    st.subheader("Terms")
    if not advanced:
        st.caption("Terms apply in advanced mode only.")
    t_cols = st.columns(4)
    for idx, (field, label) in enumerate(DEAL_PERCENT_FIELDS[:3]):
        value = t_cols[idx % 4].number_input(
            label, min_value=0.0, max_value=100.0, step=0.25, key=f"deal__{field}",
            help=help_with_guidance(field), disabled=not advanced,
        )
        deal[field] = float(value) / 100
    for idx, (field, label) in enumerate(DEAL_WHOLE_FIELDS):
        value = t_cols[(idx + 3) % 4].number_input(
            label, min_value=0, max_value=40, step=1, key=f"deal__{field}",
            help=help_with_guidance(field), disabled=not advanced,
        )
        deal[field] = int(value)
    st.selectbox(
        "Seller Note Repayment",
        ["interest_only", "amortizing"],
        key="deal__amortizing_note_type",
        format_func=lambda v: v.replace("_", " ").title(),
        help="Interest-only pays amount x rate each year; amortizing pays principal and interest.",
        disabled=not advanced,
    )
    deal["amortizing_note_type"] = st.session_state["deal__amortizing_note_type"]
    deal["forgiveness_condition"] = st.text_input(
        "Forgiveness Condition", key="deal__forgiveness_condition",
        help="Condition under which the forgivable note is forgiven.", disabled=not advanced,
    )

    s1, s2 = st.columns(2)
    deal["stress_test_enabled"] = bool(
        s1.toggle("Stress Test", key="deal__stress_test_enabled", help="Haircut SDE before measuring coverage.")
    )
    deal["stress_test_pct"] = float(
        s2.number_input(
            "SDE Stress (%)", min_value=0.0, max_value=100.0, step=1.0, key="deal__stress_test_pct",
            help=help_with_guidance("stress_test_pct"),
        )
    ) / 100
    records["deal_inputs"] = deal

    result = run_deal_structure(deal)
    if result.validation_errors:
        fields = ", ".join(label for field, label in DEAL_AMOUNT_FIELDS if field in result.validation_errors)
        st.error(f"{result.validation_errors[DEBT_FIELDS[0]]} Check: {fields}.")
    for note in advisory_warnings(deal):
        st.caption(f"Advisory: {note}")

    st.subheader("Results")
    r1, r2, r3, r4 = st.columns(4)
    r1.metric("Enterprise Value", format_currency(result.enterprise_value), "SDE x Asking Multiple")
    r2.metric("Buyer Equity", format_currency(result.buyer_equity))
    r3.metric("Total Cash to Close", format_currency(result.total_cash_to_close))
    r4.metric(
        "DSCR",
        f"{result.dscr:.2f}x",
        f"Target {result.dscr_threshold:.2f}x",
        delta_color="normal" if dscr_is_healthy(result.dscr, result.mode) else "inverse",
    )
    q1, q2, q3, q4 = st.columns(4)
    q1.metric("Annual Debt Service", format_currency(result.total_annual_debt_service))
    q2.metric("Net Cash Flow to Owner", format_currency(result.net_cash_flow_to_owner))
    q3.metric("Total Seller Financing", format_currency(result.total_seller_financing))
    q4.metric("Liquidity Reserve Target", format_currency(result.liquidity_reserve_target))
    if result.is_low_dscr:
        st.warning(f"DSCR {result.dscr:.2f}x is below the {result.dscr_threshold:.2f}x target for {result.mode} mode.")
    if result.stressed:
        st.caption(f"Stressed: SDE reduced to {format_currency(result.sde_for_calculation)}.")

    sources = pd.DataFrame(
        {
            "Source": ["Senior Loan", "Seller Notes", "Buyer Equity"],
            "Amount": [deal["senior_loan_amount"], result.total_seller_financing, result.buyer_equity],
        }
    )
    st.plotly_chart(px.bar(sources, x="Source", y="Amount", title="Sources of Funds"), width="stretch")

    with st.expander("Base vs Stressed", expanded=deal["stress_test_enabled"]):
        comparison = stress_comparison(deal)
        st.dataframe(
            comparison.assign(
                **{
                    col: [
                        f"{v:.2f}x" if metric == "DSCR" else format_currency(v)
                        for metric, v in zip(comparison["Metric"], comparison[col])
                    ]
                    for col in ("Base", "Stressed", "Change")
                }
            ),
            width="stretch",
            hide_index=True,
        )


with projection_tab:
    if st.button("Load from Analysis", help="Seed revenue, EBITDA, cost ratios and debt service from the other tabs."):
        updated, loaded = assumptions_from_analysis(records["projection"], records["financials"], records["deal_inputs"])
        if loaded:
            new_records = deepcopy(records)
            new_records["projection"] = updated
            _queue_load(new_records, _current_ui_state(), "Projection assumptions loaded from analysis.")
        else:
            st.info("No analysis or deal data available to load.")

    projection = deepcopy(records["projection"])
    a_cols = st.columns(3)
    for idx, (field, label) in enumerate(PROJECTION_AMOUNT_FIELDS):
        projection[field] = float(
            a_cols[idx % 3].number_input(label, step=1000.0, key=f"proj__{field}", help=help_with_guidance(field))
        )
    st.radio(
        "OpEx Mode",
        ["percent_of_revenue", "fixed_amount"],
        key="proj__opex_mode",
        horizontal=True,
        format_func=lambda v: "Percent of Revenue" if v == "percent_of_revenue" else "Fixed Amount",
        help="Percent mode scales OpEx with revenue; fixed mode grows it annually.",
    )
    projection["opex_mode"] = st.session_state["proj__opex_mode"]
    g_cols = st.columns(4)
    for idx, (field, label) in enumerate(PROJECTION_PERCENT_FIELDS):
        projection[field] = (
            float(g_cols[idx % 4].number_input(label, step=0.5, key=f"proj__{field}", help=help_with_guidance(field))) / 100
        )
    records["projection"] = projection
    for note in advisory_warnings(projection):
        st.caption(f"Advisory: {note}")

    monthly_df, annual_df = run_projection(projection)
    st.subheader("Annual Projection")
    st.dataframe(_format_dataframe_for_display(annual_df), width="stretch", hide_index=True)
    chart_df = annual_df[["Year", "Revenue", "EBITDA", "Free Cash Flow"]].melt("Year", var_name="Metric", value_name="Amount")
    st.plotly_chart(
        px.bar(chart_df, x="Year", y="Amount", color="Metric", barmode="group", title="Three-Year Outlook"), width="stretch"
    )
    with st.expander("Year 1 by Month", expanded=False):
        st.dataframe(_format_dataframe_for_display(monthly_df), width="stretch", hide_index=True)
        st.plotly_chart(px.line(monthly_df, x="Month", y=["Revenue", "EBITDA", "Free Cash Flow"], title="Year 1 Monthly"), width="stretch")
    _show_findings(run_projection_integrity_checks(monthly_df, annual_df), "Projection")


with fit_tab:
    buy_box = deepcopy(records["buy_box"])
    st.markdown(SCORECARD_CSS, unsafe_allow_html=True)

    with st.expander("Buy-Box Profiles", expanded=False):
        profile_names = list_saved_names(BUY_BOX_PROFILE_TYPE)
        selected_profile = st.selectbox("Saved Profiles", [""] + profile_names, help="Saved buy-box criteria sets.")
        profile_name = st.text_input("Profile Name", key="active_profile_name", help="Name used when saving or renaming.")
        pc1, pc2, pc3, pc4 = st.columns(4)
        if pc1.button("Save Profile", help="Save the current criteria under Profile Name.", disabled=not profile_name.strip()):
            ok, msg = save_named_bundle(
                BUY_BOX_PROFILE_TYPE, profile_name.strip(), build_profile_bundle(profile_name.strip(), buy_box), overwrite=True
            )
            (st.success if ok else st.warning)(msg)
        if pc2.button("Load Profile", help="Replace the criteria with the selected profile.", disabled=not selected_profile):
            loaded_box, profile_warnings = profile_from_bundle(load_saved(BUY_BOX_PROFILE_TYPE, selected_profile))
            log_migration(BUY_BOX_PROFILE_TYPE, selected_profile, profile_warnings, [])
            new_records = deepcopy(records)
            new_records["buy_box"] = loaded_box
            ui_state = _current_ui_state()
            ui_state["active_profile_name"] = selected_profile
            _queue_load(new_records, ui_state, " ".join(["Profile loaded.", *profile_warnings]))
        if pc3.button("Rename Profile", help="Rename the selected profile to Profile Name.", disabled=not selected_profile):
            ok, msg = rename_saved(BUY_BOX_PROFILE_TYPE, selected_profile, profile_name)
            if not ok:
                append_runtime_event(
                    level="WARNING",
                    event="rename_profile_failed",
                    message=msg,
                    context={"old": selected_profile, "new": profile_name},
                )
            (st.success if ok else st.warning)(msg)
        if pc4.button("Delete Profile", help="Delete the selected profile.", disabled=not selected_profile):
            if delete_saved(BUY_BOX_PROFILE_TYPE, selected_profile):
                st.success("Profile deleted.")
                st.rerun()

    st.subheader("Criteria and Weights")
    st.caption(f"Weights run from 0 (ignore) to {MAX_CRITERION_WEIGHT} (critical).")
    for field, label in BUY_BOX_TEXT_CRITERIA + BUY_BOX_AMOUNT_CRITERIA:
        v_col, w_col = st.columns([3, 1])
        if field in dict(BUY_BOX_AMOUNT_CRITERIA):
            value = float(v_col.number_input(label, min_value=0.0, key=f"bb__{field}", help=f"Target for {label}."))
        else:
            value = v_col.text_input(label, key=f"bb__{field}", help=f"Target for {label}.")
        weight = w_col.number_input(
            f"{label} Weight", min_value=0, max_value=MAX_CRITERION_WEIGHT, step=1, key=f"bb_weight__{field}",
            help="How much this criterion counts toward the fit score.",
        )
        buy_box[field] = {"value": value, "weight": int(weight)}

    v_col, w_col = st.columns([3, 1])
    messiness = v_col.slider(
        "Systems Messiness Tolerance", 1, 5, key="bb__system_messiness", help="1 = needs clean systems, 5 = happy to rebuild."
    )
    weight = w_col.number_input(
        "Systems Weight", min_value=0, max_value=MAX_CRITERION_WEIGHT, step=1, key="bb_weight__system_messiness",
        help="How much this criterion counts toward the fit score.",
    )
    buy_box["system_messiness"] = {"value": int(messiness), "weight": int(weight)}

    v_col, w_col = st.columns([3, 1])
    levers = {
        flag: bool(v_col.checkbox(f"Growth Lever: {flag.title()}", key=f"bb__growth_levers__{flag}", help="Growth lever you can pull."))
        for flag in ("sales", "ops", "consolidation")
    }
    weight = w_col.number_input(
        "Growth Levers Weight", min_value=0, max_value=MAX_CRITERION_WEIGHT, step=1, key="bb_weight__growth_levers",
        help="How much this criterion counts toward the fit score.",
    )
    buy_box["growth_levers"] = {**levers, "weight": int(weight)}

    expertise_df = st.data_editor(
        _editor_source(
            "expertise",
            lambda: pd.DataFrame(records["buy_box"]["industry_expertise"], columns=["industry", "proficiency"]),
        ),
        key=f"expertise_editor_{st.session_state['editor_nonce']}",
        hide_index=True,
        num_rows="dynamic",
        column_config={
            "industry": st.column_config.TextColumn("Industry"),
            "proficiency": st.column_config.SelectboxColumn("Proficiency", options=list(PROFICIENCY_LEVELS), default="Intermediate"),
        },
        width="stretch",
    )
    buy_box["industry_expertise"] = [
        {"industry": str(row["industry"]).strip(), "proficiency": row["proficiency"] or "Intermediate"}
        for _, row in expertise_df.iterrows()
        if isinstance(row["industry"], str) and row["industry"].strip()
    ]
    for field, label in (
        ("desired_culture", "Desired Culture"),
        ("desired_culture_rationale", "Culture Rationale"),
        ("personal_goal", "Personal Goal"),
        ("personal_goal_rationale", "Personal Goal Rationale"),
    ):
        buy_box[field] = st.text_input(label, key=f"bb__{field}", help=f"{label} (not scored).")

    buy_box, box_warnings, _ = migrate_buy_box(buy_box)
    records["buy_box"] = buy_box
    for note in box_warnings:
        st.caption(f"Note: {note}")

    st.subheader("Fit Scorecard")
    scorecard_text = st.text_area(
        "Scorecard (Markdown table)",
        key="fit_scorecard_text",
        height=240,
        help="Paste the generated table: | Criterion (Weight: N) | Status | Fit | Rationale |.",
    )
    score = calculate_fit_score(scorecard_text if scorecard_text.strip() else None, buy_box)
    m1, m2 = st.columns(2)
    m1.metric("Overall Fit Score", "N/A" if score is None else f"{score}%")
    m2.metric("Total Possible Weight", f"{total_possible_score(buy_box):.0f}")
    if scorecard_text.strip():
        st.markdown(render_markdown(scorecard_text), unsafe_allow_html=True)


with save_tab:
    st.subheader("Save")
    save_name = st.text_input("Save Name", key="active_deal_name", help="Name for the saved deal or workspace.").strip()
    overwrite_save = st.checkbox("Overwrite if exists", value=False, help="Replace an existing save with the same name.")
    sb1, sb2 = st.columns(2)
    if sb1.button("Save Deal", help="Save the four records only.", disabled=not save_name):
        ok, msg = save_named_bundle(DEAL_TYPE, save_name, build_deal_bundle(save_name, records), overwrite=overwrite_save)
        if ok:
            st.success("Deal saved.")
        else:
            append_runtime_event(
                level="WARNING",
                event="save_deal_failed",
                message=msg,
                context={"name": save_name, "overwrite": overwrite_save},
            )
            st.warning(msg)
    if sb2.button("Save Workspace", help="Save the records plus dashboard settings.", disabled=not save_name):
        bundle = build_workspace_bundle(save_name, records, _current_ui_state())
        ok, msg = save_named_bundle(WORKSPACE_TYPE, save_name, bundle, overwrite=overwrite_save)
        if ok:
            st.success("Workspace saved.")
        else:
            append_runtime_event(
                level="WARNING",
                event="save_workspace_failed",
                message=msg,
                context={"name": save_name, "overwrite": overwrite_save},
            )
            st.warning(msg)

    st.subheader("Load")
    for kind, label in ((DEAL_TYPE, "Deal"), (WORKSPACE_TYPE, "Workspace")):
        names = list_saved_names(kind)
        selected = st.selectbox(f"Saved {label}s", [""] + names, key=f"saved_{kind}_choice", help=f"Saved {label.lower()}s.")
        l1, l2, l3 = st.columns(3)
        if l1.button(f"Load {label}", help=f"Load the selected {label.lower()}.", disabled=not selected):
            bundle = load_saved(kind, selected)
            if bundle is None:
                st.warning(f"{label} not found.")
            else:
                loaded_records, ui_state, load_warnings, unknown = parse_import_json(json.dumps(bundle))
                log_migration(kind, selected, load_warnings, unknown)
                _queue_load(loaded_records, ui_state or _current_ui_state(), f"{label} '{selected}' loaded.")
        rename_to = l2.text_input(f"Rename {label} To", key=f"rename_{kind}", help="New name for the selected item.")
        if l2.button(f"Rename {label}", help=f"Rename the selected {label.lower()}.", disabled=not selected):
            ok, msg = rename_saved(kind, selected, rename_to)
            (st.success if ok else st.warning)(msg)
        if l3.button(f"Delete {label}", help=f"Delete the selected {label.lower()}.", disabled=not selected):
            if delete_saved(kind, selected):
                st.success(f"{label} deleted.")
                st.rerun()

    st.subheader("Import / Export JSON")
    st.download_button(
        "Download Workspace JSON",
        json.dumps(build_workspace_bundle(save_name or "workspace", records, _current_ui_state()), indent=2),
        file_name=f"{save_name or 'workspace'}.json",
        mime="application/json",
        help="Portable copy of the current workspace.",
    )
    import_file = st.file_uploader("Import JSON", type=["json"], help="A deal, workspace, or legacy record JSON file.")
    if st.button("Apply Import", help="Replace the current records with the imported file.", disabled=import_file is None):
        imported_records, ui_state, import_warnings, unknown = parse_import_json(import_file.getvalue().decode("utf-8"))
        if not imported_records:
            append_runtime_event(
                level="WARNING",
                event="import_json_failed",
                message="; ".join(import_warnings),
                context={"file": getattr(import_file, "name", "")},
            )
            st.error("; ".join(import_warnings))
        else:
            notes = import_warnings + ([f"Ignored unknown keys: {', '.join(unknown)}."] if unknown else [])
            _queue_load(imported_records, ui_state or _current_ui_state(), " ".join(["Import applied.", *notes]))


with diagnostics_tab:
    st.subheader("Storage")
    st.caption(f"Active storage folder: {storage_root_path()}")
    storage_input = st.text_input(
        "Custom Storage Folder", key="storage_folder_input", help="Folder for saved deals, profiles, and the runtime log."
    )
    if st.button("Apply Storage Location", help="Point persistence and logging at the folder above.", disabled=not storage_input.strip()):
        configure_storage_root(storage_input)
        configure_log_root(storage_input)
        st.session_state["storage_active_path"] = storage_root_path()
        append_runtime_event(level="INFO", event="storage_root_changed", message=storage_root_path())
        st.success(f"Storage moved to {storage_root_path()}.")

    st.subheader("Runtime Log")
    st.caption(f"Log file: {runtime_log_path()}")
    level_filter = st.selectbox("Level", ["", *LEVELS], help="Only show events of this level.")
    log_limit = st.number_input("Recent runtime log rows", min_value=20, max_value=2000, step=20, value=200, help="Rows to show.")
    runtime_events = read_runtime_events(limit=int(log_limit), level=level_filter or None)
    if runtime_events:
        st.dataframe(events_frame(runtime_events), width="stretch", hide_index=True)
        if st.button("Clear Runtime Log", help="Delete the runtime log file."):
            try:
                clear_runtime_events()
            except OSError as exc:
                append_runtime_event(
                    level="ERROR",
                    event="runtime_log_clear_failed",
                    message="Failed to clear runtime log file.",
                    context={"path": runtime_log_path()},
                    exc=exc,
                )
                st.warning("Could not clear runtime log file.")
            else:
                st.success("Runtime log cleared.")
                st.rerun()
    else:
        st.caption("No runtime events logged yet.")
