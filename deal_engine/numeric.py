"""Tolerant numeric parsing and display formatting for hand-entered figures."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any


_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER_RE = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)")
_LEADING_INT_RE = re.compile(r"^\s*[-+]?\d+")
_PARTIAL_NUMBER_RE = re.compile(r"^[-+]?\d*\.?\d*$")

INVALID_NUMBER_MESSAGE = "Invalid number"


def _finite_or_zero(value: float) -> float:
    return float(value) if math.isfinite(value) else 0.0


def parse_amount(text: Any) -> float:
    """Parse a typed amount such as ``"$1,250,000"`` into a float.

    Separators, currency symbols and other decoration are dropped. Anything that
    does not leave a finite decimal behind parses as 0.0; this never raises.
    """
    if text is None or isinstance(text, bool):
        return 0.0
    if isinstance(text, (int, float)):
        return _finite_or_zero(float(text))
    cleaned = _NON_NUMERIC_RE.sub("", str(text))
    match = _LEADING_NUMBER_RE.match(cleaned)
    if not match:
        return 0.0
    try:
        return _finite_or_zero(float(match.group(0)))
    except ValueError:
        return 0.0


def parse_whole(text: Any) -> int:
    """Parse month/year counts, truncating any fractional part."""
    if text is None or isinstance(text, bool):
        return 0
    if isinstance(text, (int, float)):
        return int(text) if math.isfinite(float(text)) else 0
    match = _LEADING_INT_RE.match(str(text).replace(",", ""))
    return int(match.group(0)) if match else 0


def format_currency(value: float, compact: bool = False) -> str:
    value = float(value)
    if not math.isfinite(value):
        return "N/A" if compact else "$0"
    if compact:
        if abs(value) >= 1e6:
            return f"{value / 1e6:.1f}M"
        if abs(value) >= 1e3:
            return f"{value / 1e3:.0f}k"
        return f"{value:.0f}"
    whole = round(value)
    sign = "-" if whole < 0 else ""
    return f"{sign}${abs(whole):,.0f}"


def format_percent(value: float) -> str:
    value = float(value)
    if not math.isfinite(value):
        return "0.0%"
    return f"{value * 100:.1f}%"


def format_ratio(value: float) -> str:
    value = float(value)
    if not math.isfinite(value):
        return "0.0x"
    return f"{value:.1f}x"


def format_day_count(value: float) -> str:
    value = float(value)
    if not math.isfinite(value):
        return "0"
    return f"{value:.0f}"


def format_number(text: Any) -> str:
    """Group the integer part of a value being edited, leaving partial input intact.

    Blank stays blank and ``"12."`` or ``"12.50"`` keep their fractional text
    exactly as typed so a live editor never rewrites a half-entered number.
    """
    if text is None:
        return ""
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        value = _finite_or_zero(float(text))
        if value == int(value):
            return f"{int(value):,}"
        return f"{value:,.3f}".rstrip("0").rstrip(".")
    raw = str(text).replace(",", "").strip()
    if raw == "":
        return ""
    if raw == "." or raw.endswith("."):
        return raw
    if not _PARTIAL_NUMBER_RE.match(raw) or raw in {"-", "+"}:
        return str(text)
    sign = "-" if raw.startswith("-") else ""
    body = raw.lstrip("+-")
    int_part, dot, frac_part = body.partition(".")
    grouped = f"{int(int_part):,}" if int_part else "0"
    return f"{sign}{grouped}{dot}{frac_part}"


@dataclass(frozen=True)
class AmountField:
    """Committed numeric value plus the raw text currently being typed."""

    value: float = 0.0
    raw: str = ""
    error: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> "AmountField":
        amount = parse_amount(value)
        return cls(value=amount, raw=format_number(amount))

    def edit(self, text: str) -> "AmountField":
        cleaned = str(text or "").replace(",", "").strip()
        if cleaned == "":
            return AmountField(value=0.0, raw="")
        if _PARTIAL_NUMBER_RE.match(cleaned):
            return AmountField(value=parse_amount(cleaned), raw=cleaned)
        return AmountField(value=self.value, raw=str(text), error=INVALID_NUMBER_MESSAGE)

    def commit(self) -> "AmountField":
        if self.raw.strip() == "" and self.error is None:
            return AmountField(value=0.0, raw="")
        return AmountField(value=self.value, raw=format_number(self.value))

    @property
    def display(self) -> str:
        if self.error is not None:
            return self.raw
        return format_number(self.raw)


def round_half_up(value: float) -> int:
    """Nearest integer with .5 rounding toward +inf, as spreadsheet users expect."""
    return int(math.floor(float(value) + 0.5))
