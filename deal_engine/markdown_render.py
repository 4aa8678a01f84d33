"""Small Markdown-to-HTML renderer for generated scorecards and reports.

Covers what the generated text actually uses: h1-h3 headings, bold, bullet
lists, horizontal rules and pipe tables. A table whose header mentions "Fit"
gets its third column rendered as yes/no/other badges.
"""

from __future__ import annotations

import re

from deal_engine.fit_score import strip_html


SCORECARD_CSS = """
<style>
.md-table { border-collapse: collapse; width: 100%; margin: 0.5rem 0 1rem 0; }
.md-table th { text-align: left; font-size: 0.75rem; text-transform: uppercase; color: #64748b;
               background: #f1f5f9; padding: 0.5rem 0.75rem; }
.md-table td { font-size: 0.875rem; padding: 0.5rem 0.75rem; vertical-align: top; border-top: 1px solid #e2e8f0; }
.md-table td.md-first { font-weight: 600; }
.md-table td.md-fit { text-align: center; }
.md-badge { padding: 0.1rem 0.6rem; border-radius: 999px; font-size: 0.75rem; font-weight: 600; }
.md-badge-yes { background: #dcfce7; color: #166534; }
.md-badge-no { background: #fee2e2; color: #991b1b; }
.md-badge-other { background: #e2e8f0; color: #334155; }
</style>
"""

_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_SEPARATOR_RE = re.compile(r"\|(?:\s*:?-+:?\s*\|)+")
_LIST_ITEM_RE = re.compile(r"^\s*[*-]\s")
_RULE_RE = re.compile(r"^\s*(?:`---`|`___`|---|___)\s*$")
_HEADING_RES = [
    (re.compile(r"^### (.*)$"), "h3"),
    (re.compile(r"^## (.*)$"), "h2"),
    (re.compile(r"^# (.*)$"), "h1"),
]
_BLOCK_TAG_RE = re.compile(r"^<(?:ul|h[1-3]|div|hr|table)\b")


def _bold(text: str) -> str:
    return _BOLD_RE.sub(r"<strong>\1</strong>", text)


def _table_cells(line: str) -> list[str]:
    return [c.strip() for c in line.strip().split("|")[1:-1]]


def _fit_badge(content: str) -> str:
    fit = strip_html(content).lower().strip()
    variant = fit if fit in {"yes", "no"} else "other"
    return f'<span class="md-badge md-badge-{variant}">{content}</span>'


def render_table(lines: list[str]) -> str:
    header = _table_cells(lines[0])
    has_fit = any("fit" in cell.lower() for cell in header)
    head_html = "".join(f"<th>{cell}</th>" for cell in header)

    body_rows = []
    for line in lines[2:]:
        cells = _table_cells(line)
        if not cells:
            continue
        cell_html = []
        for idx, cell in enumerate(cells):
            content = _bold(cell)
            css = ""
            if idx == 0:
                css = ' class="md-first"'
            elif idx == 2 and has_fit:
                css = ' class="md-fit"'
                content = _fit_badge(content)
            cell_html.append(f"<td{css}>{content}</td>")
        body_rows.append(f"<tr>{''.join(cell_html)}</tr>")

    return (
        '<div><table class="md-table">'
        f"<thead><tr>{head_html}</tr></thead>"
        f"<tbody>{''.join(body_rows)}</tbody>"
        "</table></div>"
    )


def _is_table_start(lines: list[str], idx: int) -> bool:
    return (
        idx + 1 < len(lines)
        and lines[idx].strip().startswith("|")
        and bool(_SEPARATOR_RE.search(lines[idx + 1]))
    )


def _render_line(line: str) -> str:
    if _RULE_RE.match(line):
        return "<hr>"
    for pattern, tag in _HEADING_RES:
        match = pattern.match(line)
        if match:
            return f"<{tag}>{_bold(match.group(1))}</{tag}>"
    return _bold(line)


def render_markdown(text: str | None) -> str:
    if not text:
        return ""

    lines = str(text).replace("\r\n", "\n").split("\n")
    blocks: list[str] = []
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        if _is_table_start(lines, idx):
            table_lines = [line, lines[idx + 1]]
            idx += 2
            while idx < len(lines) and "|" in lines[idx] and lines[idx].strip():
                table_lines.append(lines[idx])
                idx += 1
            blocks.append(render_table(table_lines))
            continue
        if _LIST_ITEM_RE.match(line):
            items = []
            while idx < len(lines) and _LIST_ITEM_RE.match(lines[idx]):
                items.append(f"<li>{_bold(_LIST_ITEM_RE.sub('', lines[idx]).strip())}</li>")
                idx += 1
            blocks.append(f"<ul>{''.join(items)}</ul>")
            continue
        blocks.append(_render_line(line))
        idx += 1

    # Join with <br /> except next to block-level elements.
    html = ""
    for pos, block in enumerate(blocks):
        if pos > 0 and not _BLOCK_TAG_RE.match(block) and not _BLOCK_TAG_RE.match(blocks[pos - 1]):
            html += "<br />"
        html += block
    return html
