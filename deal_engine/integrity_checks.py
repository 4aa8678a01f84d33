"""Accounting identity checks over the analysis and projection tables."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd


_LABEL_COLUMNS = ("Period", "Month", "Year")


def _finding(
    check: str,
    max_abs_delta: float,
    period: str,
    lhs_name: str,
    rhs_name: str,
) -> dict[str, Any]:
    return {
        "Check": check,
        "Max Abs Delta": float(max_abs_delta),
        "Period of Max Delta": period,
        "LHS": lhs_name,
        "RHS": rhs_name,
    }


def _missing_frame(name: str) -> dict[str, Any]:
    return {"Check": f"{name} not available", "Max Abs Delta": np.nan, "Period of Max Delta": "", "LHS": "", "RHS": ""}


def _row_label(df: pd.DataFrame, idx: int) -> str:
    for col in _LABEL_COLUMNS:
        if col in df.columns and idx < len(df):
            return str(df.iloc[idx][col])
    return str(idx)


def _period_of_max_delta(df: pd.DataFrame, delta: np.ndarray) -> str:
    if len(delta) == 0:
        return ""
    return _row_label(df, int(np.argmax(np.abs(delta))))


def _check_series_identity(
    findings: list[dict[str, Any]],
    df: pd.DataFrame,
    check_name: str,
    lhs_name: str,
    rhs_name: str,
    lhs: np.ndarray,
    rhs: np.ndarray,
    tol: float,
) -> None:
    delta = np.nan_to_num(np.asarray(lhs, dtype=float) - np.asarray(rhs, dtype=float), nan=0.0)
    if len(delta) == 0:
        return
    max_abs = float(np.max(np.abs(delta)))
    if max_abs > float(tol):
        findings.append(_finding(check_name, max_abs, _period_of_max_delta(df, delta), lhs_name, rhs_name))


def run_analysis_integrity_checks(df: pd.DataFrame, tol: float = 1e-3) -> list[dict[str, Any]]:
    """Return integrity findings for the financial analysis (empty list means all checks passed)."""
    if not isinstance(df, pd.DataFrame) or df.empty:
        return [_missing_frame("Analysis")]

    findings: list[dict[str, Any]] = []
    identities = [
        ("Gross profit identity", "Gross Profit", "Revenue - COGS", df["Revenue"] - df["COGS"]),
        ("EBITDA identity", "EBITDA", "Gross Profit - OpEx", df["Gross Profit"] - df["OpEx"]),
        ("EBIT identity", "EBIT", "EBITDA - Depreciation - Amortization",
         df["EBITDA"] - df["Depreciation"] - df["Amortization"]),
        ("Net income identity", "Net Income", "EBIT - Interest - Taxes", df["EBIT"] - df["Interest"] - df["Taxes"]),
        ("Normalized EBITDA identity", "Normalized EBITDA", "EBITDA + Other Add-Backs",
         df["EBITDA"] + df["Other Add-Backs"]),
        ("Normalized SDE identity", "Normalized SDE", "Normalized EBITDA + Owner Comp Add-Back",
         df["Normalized EBITDA"] + df["Owner Comp Add-Back"]),
        ("Current assets identity", "Total Current Assets", "Cash + AR + Inventory + Other Current Assets",
         df["Cash"] + df["Accounts Receivable"] + df["Inventory"] + df["Other Current Assets"]),
        ("Total assets identity", "Total Assets", "Total Current Assets + Long-Term Assets",
         df["Total Current Assets"] + df["Long-Term Assets"]),
        ("Current liabilities identity", "Total Current Liabilities", "AP + Short-Term Debt + Other Current Liabilities",
         df["Accounts Payable"] + df["Short-Term Debt"] + df["Other Current Liabilities"]),
        ("NWC identity", "Net Working Capital", "AR + Inventory + Other CA - AP - Other CL",
         df["Accounts Receivable"] + df["Inventory"] + df["Other Current Assets"]
         - df["Accounts Payable"] - df["Other Current Liabilities"]),
    ]
    for check, lhs_name, rhs_name, rhs in identities:
        _check_series_identity(findings, df, check, lhs_name, rhs_name, df[lhs_name].to_numpy(), rhs.to_numpy(), tol)
    return findings


def _projection_identities(findings: list[dict[str, Any]], df: pd.DataFrame, tol: float) -> None:
    _check_series_identity(
        findings, df, "Gross profit identity", "Gross Profit", "Revenue - COGS",
        df["Gross Profit"].to_numpy(), (df["Revenue"] - df["COGS"]).to_numpy(), tol,
    )
    _check_series_identity(
        findings, df, "EBITDA identity", "EBITDA", "Gross Profit - OpEx",
        df["EBITDA"].to_numpy(), (df["Gross Profit"] - df["OpEx"]).to_numpy(), tol,
    )
    _check_series_identity(
        findings, df, "EBT identity", "EBT", "EBITDA - Debt Service",
        df["EBT"].to_numpy(), (df["EBITDA"] - df["Debt Service"]).to_numpy(), tol,
    )
    _check_series_identity(
        findings, df, "Net income identity", "Net Income", "EBT - Taxes",
        df["Net Income"].to_numpy(), (df["EBT"] - df["Taxes"]).to_numpy(), tol,
    )
    _check_series_identity(
        findings, df, "Free cash flow identity", "Free Cash Flow", "EBITDA - Taxes - CapEx",
        df["Free Cash Flow"].to_numpy(), (df["EBITDA"] - df["Taxes"] - df["CapEx"]).to_numpy(), tol,
    )
    negative_taxes = df["Taxes"].to_numpy(dtype=float)
    if len(negative_taxes) and float(negative_taxes.min()) < -float(tol):
        idx = int(np.argmin(negative_taxes))
        findings.append(
            _finding("Non-negative taxes", abs(float(negative_taxes[idx])), _row_label(df, idx), "Taxes", "0")
        )


def run_projection_integrity_checks(
    monthly_df: pd.DataFrame,
    annual_df: pd.DataFrame,
    tol: float = 1e-3,
) -> list[dict[str, Any]]:
    """Return integrity findings for the projection (empty list means all checks passed)."""
    if not isinstance(monthly_df, pd.DataFrame) or monthly_df.empty:
        return [_missing_frame("Monthly projection")]
    if not isinstance(annual_df, pd.DataFrame) or annual_df.empty:
        return [_missing_frame("Annual projection")]

    findings: list[dict[str, Any]] = []
    _projection_identities(findings, monthly_df, tol)
    _projection_identities(findings, annual_df, tol)

    # Year 1 must roll up the twelve months exactly.
    numeric_cols = [c for c in annual_df.columns if c != "Year"]
    year_one = annual_df.iloc[[0]]
    _check_series_identity(
        findings,
        year_one,
        "Year 1 roll-up",
        "Y1 Total",
        "Sum of monthly rows",
        year_one[numeric_cols].to_numpy(dtype=float).ravel(),
        monthly_df[numeric_cols].sum().to_numpy(dtype=float),
        tol,
    )
    return findings
