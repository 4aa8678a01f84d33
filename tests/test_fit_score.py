from __future__ import annotations

from copy import deepcopy

from deal_engine.fit_score import (
    calculate_fit_score,
    criterion_name,
    scorecard_rows,
    total_possible_score,
)


HEADER = "| Criterion | Status | Fit | Rationale |\n|---|---|---|---|\n"

TWO_CRITERIA = {
    "geography": {"value": "Texas", "weight": 2},
    "industry_type": {"value": "SaaS", "weight": 3},
}


def test_yes_and_no_rows_score_by_weight():
    scorecard = HEADER + "Geography (Weight: 2) | Houston | Yes | ...\nIndustry (Weight: 3) | SaaS | No | ...\n"
    assert calculate_fit_score(scorecard, TWO_CRITERIA) == 40


def test_question_mark_earns_thirty_percent_of_the_weight():
    scorecard = HEADER + "| Geography (Weight: 2) | Houston | Yes | ... |\n| Industry (Weight: 3) | SaaS | ? | ... |\n"
    # (2 + 3 * 0.3) / 5 = 58%
    assert calculate_fit_score(scorecard, TWO_CRITERIA) == 58


def test_all_zero_weights_score_fifty_regardless_of_content():
    buy_box = deepcopy(TWO_CRITERIA)
    for criterion in buy_box.values():
        criterion["weight"] = 0
    assert calculate_fit_score(HEADER + "| Geography | x | Yes | y |", buy_box) == 50
    assert calculate_fit_score("not a table", buy_box) == 50


def test_unparseable_text_scores_zero_and_missing_scorecard_is_none():
    assert calculate_fit_score("no table here", TWO_CRITERIA) == 0
    assert calculate_fit_score("", TWO_CRITERIA) == 0
    assert calculate_fit_score(None, TWO_CRITERIA) is None


def test_fit_cells_are_html_stripped_and_case_insensitive():
    scorecard = HEADER + (
        '| **Geography** (Weight: 2) | Houston | <span class="fit">YES</span> | ok |\n'
        "| Industry (Weight: 3) | SaaS | <b>yes</b> | ok |\n"
    )
    assert calculate_fit_score(scorecard, TWO_CRITERIA) == 100


def test_sde_range_counts_once_and_unweighted_rows_are_ignored(base_records):
    buy_box = base_records["buy_box"]
    total = total_possible_score(buy_box)
    weights = [v["weight"] for v in buy_box.values() if isinstance(v, dict) and "weight" in v]
    assert total == sum(weights) - buy_box["max_sde"]["weight"]

    scorecard = HEADER + (
        f"| Financials (SDE) (Weight: {buy_box['min_sde']['weight']}) | $600k | Yes | in range |\n"
        "| Culture | Team first | Yes | good |\n"
        "| Industry Expertise | HVAC | Yes | none listed |\n"
        "| Unknown Criterion | ? | Yes | skipped |\n"
    )
    expected = round(buy_box["min_sde"]["weight"] / total * 100)
    assert calculate_fit_score(scorecard, buy_box) == expected


def test_short_rows_and_header_lines_are_skipped():
    text = HEADER + "| Geography |\n| Industry (Weight: 3) | SaaS | Yes | ok |\n"
    rows = scorecard_rows(text)
    assert len(rows) == 1
    assert criterion_name(rows[0][1]) == "Industry"
    assert calculate_fit_score(text, TWO_CRITERIA) == 60
