"""
Parsing helpers for Nasdaq API payloads.

The API returns most numbers as display strings ("$1,234", "3.05%",
"N/A", "--"). These helpers turn them into floats or None and pull the
few nested values the collector needs out of each payload. All functions
are pure and tolerate missing keys.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Iterable, Mapping

from divscan.types import DividendHistoryEntry

MISSING_MARKERS = frozenset({"", "n/a", "na", "--", "-", "none", "null"})

# Revenue columns in the annual income statement: value2 is the latest
# fiscal year, value5 is four years earlier.
LATEST_REVENUE_COLUMN = "value2"
OLDEST_REVENUE_COLUMN = "value5"
REVENUE_CAGR_YEARS = 4


def is_missing(value: Any) -> bool:
    """True for None and the API's placeholder strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in MISSING_MARKERS
    return False


def parse_number(value: Any) -> float | None:
    """Parse "$1,234.5", "3.05%", "(12)" or a plain number. None if unparseable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value == value else None
    if is_missing(value) or not isinstance(value, str):
        return None

    cleaned = value.strip().replace("$", "").replace(",", "").replace("%", "").strip()
    negative = cleaned.startswith("(") and cleaned.endswith(")")
    if negative:
        cleaned = cleaned[1:-1]
    try:
        number = float(cleaned)
    except ValueError:
        return None
    if number != number:  # NaN
        return None
    return -number if negative else number


def dig(payload: Any, *keys: str) -> Any:
    """Walk nested mappings, returning None as soon as a key is absent."""
    current = payload
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def compound_growth_rate(latest: float, oldest: float, years: int) -> float | None:
    """Annualised growth in percent, or None when undefined."""
    if years <= 0 or oldest == 0:
        return None
    ratio = latest / oldest
    if ratio <= 0:
        return None
    return (ratio ** (1.0 / years) - 1.0) * 100.0


def extract_growth_forecast(payload: Any) -> float | None:
    """Analyst growth forecast (percent) from a PEG-ratio payload."""
    chart = dig(payload, "data", "gr", "peGrowthChart")
    if not isinstance(chart, list):
        return None
    for point in chart:
        if isinstance(point, Mapping) and point.get("z") == "Growth":
            value = parse_number(point.get("y"))
            if value:
                return value
    return None


def extract_revenue_cagr(payload: Any) -> float | None:
    """Four-year revenue CAGR (percent) from an annual financials payload."""
    rows = dig(payload, "data", "incomeStatementTable", "rows")
    if not isinstance(rows, list):
        return None
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        label = str(row.get("value1") or "").lower()
        if "total revenue" not in label:
            continue
        latest = parse_number(row.get(LATEST_REVENUE_COLUMN))
        oldest = parse_number(row.get(OLDEST_REVENUE_COLUMN))
        if not latest or not oldest:
            return None
        rate = compound_growth_rate(latest, oldest, REVENUE_CAGR_YEARS)
        return round(rate, 1) if rate is not None else None
    return None


def extract_profile(payload: Any) -> dict[str, str]:
    """Description, sector and industry from a company-profile payload."""
    return {
        "description": str(dig(payload, "data", "CompanyDescription", "value") or "").strip(),
        "sector": str(dig(payload, "data", "Sector", "value") or "").strip(),
        "industry": str(dig(payload, "data", "Industry", "value") or "").strip(),
    }


def _period_of(date_str: Any) -> str | None:
    if not isinstance(date_str, str):
        return None
    for fmt in ("%m/%d/%Y", "%Y-%m-%d"):
        try:
            return str(datetime.strptime(date_str.strip(), fmt).year)
        except ValueError:
            continue
    return None


def build_dividend_history(rows: Iterable[Any]) -> list[DividendHistoryEntry]:
    """Sum cash amounts per calendar year of the ex-dividend date.

    Periods are unique and sorted ascending. Rows without a usable date or
    amount are ignored.
    """
    totals: dict[str, float] = defaultdict(float)
    for row in rows or ():
        if not isinstance(row, Mapping):
            continue
        period = _period_of(row.get("exOrEffDate"))
        amount = parse_number(row.get("amount"))
        if period is None or amount is None:
            continue
        totals[period] += amount
    return [
        DividendHistoryEntry(period=period, amount=round(totals[period], 4))
        for period in sorted(totals)
    ]
