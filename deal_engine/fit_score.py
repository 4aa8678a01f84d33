"""Score a Markdown fit scorecard against the weighted buy-box criteria."""

from __future__ import annotations

import re

from deal_engine.numeric import parse_amount, round_half_up


PARTIAL_FIT_CREDIT = 0.3
NO_PREFERENCE_SCORE = 50

# Scorecard label -> buy-box key. None marks labels that are deliberately unscored.
CRITERION_LABEL_TO_KEY: dict[str, str | None] = {
    "Geography": "geography",
    "Industry": "industry_type",
    "Financials (SDE)": "min_sde",
    "Revenue Quality": "min_recurring_revenue",
    "Risk (Concentration)": "customer_concentration",
    "Growth Levers": "growth_levers",
    "Industry Trends": "industry_trends",
    "Seller Role": "seller_role",
    "Team Strength": "team_strength",
    "Business Model": "business_model",
    "Systems": "system_messiness",
    "My Role": "my_primary_role",
    "Industry Expertise": "industry_expertise",
    "Culture": None,
}

_HTML_TAG_RE = re.compile(r"<[^>]+>")


def strip_html(text: str) -> str:
    return _HTML_TAG_RE.sub("", str(text))


def criterion_name(cell: str) -> str:
    """``"**Geography** (Weight: 2)"`` -> ``"Geography"``."""
    return str(cell).split(" (Weight:")[0].strip().replace("**", "")


def criterion_key_for_label(label: str) -> str | None:
    return CRITERION_LABEL_TO_KEY.get(criterion_name(label))


def normalize_fit(cell: str) -> str:
    return strip_html(str(cell).lower()).strip()


def _criterion_weight(buy_box: dict, key: str | None) -> float | None:
    if key is None:
        return None
    criterion = buy_box.get(key)
    if not isinstance(criterion, dict) or "weight" not in criterion:
        return None
    weight = criterion["weight"]
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        return parse_amount(weight)
    return float(weight)


def total_possible_score(buy_box: dict) -> float:
    """Sum of every weighted criterion, counting the SDE range once."""
    total = 0.0
    for key in buy_box:
        weight = _criterion_weight(buy_box, key)
        if weight is not None:
            total += weight
    min_sde = _criterion_weight(buy_box, "min_sde") or 0.0
    max_sde = _criterion_weight(buy_box, "max_sde") or 0.0
    if min_sde > 0 and max_sde > 0:
        total -= max_sde
    return total


def scorecard_rows(text: str) -> list[list[str]]:
    """Data rows of the scorecard table as trimmed cells, header and separator skipped.

    Cells are indexed as if every row starts with a pipe, so cell 1 is the
    criterion and cell 3 is the fit. Rows with fewer than four cells are dropped.
    """
    rows = []
    for line in str(text).split("\n")[2:]:
        stripped = line.strip()
        if stripped and not stripped.startswith("|"):
            stripped = "|" + stripped
        cells = [c.strip() for c in stripped.split("|")]
        if len(cells) >= 4:
            rows.append(cells)
    return rows


def calculate_fit_score(scorecard: str | None, buy_box: dict) -> int | None:
    """Weighted 0-100 fit score, or None when no scorecard has been produced.

    A fit of "yes" earns the criterion's full weight and "?" earns 30% of it.
    When no criterion carries weight the score is a flat 50. The result is not
    clamped.
    """
    if scorecard is None:
        return None

    total = total_possible_score(buy_box)
    if total == 0:
        return NO_PREFERENCE_SCORE

    achieved = 0.0
    for cells in scorecard_rows(scorecard):
        weight = _criterion_weight(buy_box, criterion_key_for_label(cells[1]))
        if weight is None:
            continue
        fit = normalize_fit(cells[3])
        if fit == "yes":
            achieved += weight
        elif fit == "?":
            achieved += weight * PARTIAL_FIT_CREDIT
    return round_half_up(achieved / total * 100)
