from __future__ import annotations

from deal_engine.markdown_render import render_markdown, render_table


def test_blank_text_renders_nothing():
    assert render_markdown("") == ""
    assert render_markdown(None) == ""


def test_headings_bold_and_rules():
    html = render_markdown("# Summary\n## **Deal** view\n---\nplain **text**")
    assert "<h1>Summary</h1>" in html
    assert "<h2><strong>Deal</strong> view</h2>" in html
    assert "<hr>" in html
    assert html.endswith("plain <strong>text</strong>")


def test_consecutive_list_items_share_one_list():
    html = render_markdown("- one\n* two\nafter")
    assert html.count("<ul>") == 1
    assert "<li>one</li><li>two</li>" in html
    assert html.endswith("after")


def test_plain_lines_are_joined_with_breaks():
    assert render_markdown("first\nsecond") == "first<br />second"


def test_fit_column_renders_badges():
    table = render_table(
        [
            "| Criterion | Status | Fit | Rationale |",
            "|---|---|---|---|",
            "| **Geography** | Houston | Yes | close |",
            "| Industry | SaaS | No | wrong |",
            "| Team | Unknown | ? | tbd |",
        ]
    )
    assert '<td class="md-first"><strong>Geography</strong></td>' in table
    assert 'md-badge-yes">Yes<' in table
    assert 'md-badge-no">No<' in table
    assert 'md-badge-other">?<' in table


def test_tables_without_fit_header_have_no_badges():
    html = render_markdown("| A | B | C |\n|---|---|---|\n| 1 | 2 | 3 |")
    assert "<table" in html
    assert "md-badge" not in html


def test_table_inside_report_is_detected_line_by_line():
    text = "Intro\n| Criterion | Status | Fit | Rationale |\n|---|---|---|---|\n| Geography | x | Yes | y |\nOutro"
    html = render_markdown(text)
    assert html.startswith("Intro<div>")
    assert html.endswith("</div>Outro")
    assert html.count("<tr>") == 2
