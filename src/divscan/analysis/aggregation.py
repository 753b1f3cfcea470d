"""
Summary statistics over collected records.

summarize() is pure: it reads records and never mutates them. Fields may
be missing or hold display strings from older runs ("3.05%"), so every
numeric read goes through parse_number. A value that does not parse
contributes nothing to sums and is left out of averages.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, Sequence

from divscan.data.parsing import parse_number
from divscan.types import EntityRecord, Statistics

YIELD_BOUNDS: tuple[float, ...] = (0, 2, 4, 6, 8, 10)
UNKNOWN_CATEGORY = "Unknown"


def bucket_labels(bounds: Sequence[float] = YIELD_BOUNDS) -> list[str]:
    """Labels for [b0, b1), [b1, b2), ..., [bn, inf)."""
    labels = [f"{lower:g}-{upper:g}" for lower, upper in zip(bounds, bounds[1:])]
    labels.append(f"{bounds[-1]:g}+")
    return labels


def bucket_for(value: float, bounds: Sequence[float] = YIELD_BOUNDS) -> str | None:
    """Label of the bucket holding ``value``, or None if below the first bound."""
    if value < bounds[0]:
        return None
    for lower, upper in zip(bounds, bounds[1:]):
        if lower <= value < upper:
            return f"{lower:g}-{upper:g}"
    return f"{bounds[-1]:g}+"


def distribution(
    values: Iterable[Any], bounds: Sequence[float] = YIELD_BOUNDS
) -> dict[str, int]:
    """Count values per bucket. Every bucket is present, in order."""
    counts = dict.fromkeys(bucket_labels(bounds), 0)
    for raw in values:
        value = parse_number(raw)
        if value is None:
            continue
        label = bucket_for(value, bounds)
        if label is not None:
            counts[label] += 1
    return counts


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 4)


def group_by(
    records: Iterable[EntityRecord],
    category_field: str = "sector",
    metric_field: str = "dividend_yield",
) -> dict[str, dict[str, Any]]:
    """Per-category count and average metric, largest groups first."""
    counts: Counter[str] = Counter()
    metrics: dict[str, list[float]] = {}

    for record in records:
        raw = record.get(category_field)
        category = str(raw).strip() if raw is not None else ""
        category = category or UNKNOWN_CATEGORY
        counts[category] += 1
        value = parse_number(record.get(metric_field))
        bucket = metrics.setdefault(category, [])
        if value is not None:
            bucket.append(value)

    ordered = sorted(counts.items(), key=lambda item: -item[1])
    return {
        category: {"count": count, f"average_{metric_field}": _mean(metrics[category])}
        for category, count in ordered
    }


def top_by(
    records: Sequence[EntityRecord],
    field: str = "dividend_yield",
    n: int = 20,
) -> list[dict[str, Any]]:
    """Top ``n`` records by a numeric field, descending.

    The sort is stable, so ties keep collection order. Records whose field
    does not parse are not ranked.
    """
    ranked = [
        (value, record)
        for record in records
        if (value := parse_number(record.get(field))) is not None
    ]
    ranked.sort(key=lambda item: -item[0])
    return [
        {
            "symbol": record.symbol,
            "name": record.get("name", ""),
            field: value,
            "sector": record.get("sector") or UNKNOWN_CATEGORY,
        }
        for value, record in ranked[:n]
    ]


def summarize(records: Sequence[EntityRecord], top_n: int = 20) -> Statistics:
    """Derive grouped statistics for the final report."""
    yields = [
        value
        for record in records
        if (value := parse_number(record.get("dividend_yield"))) is not None
    ]
    with_growth = sum(1 for r in records if parse_number(r.get("growth_rate")) is not None)
    sources = Counter(
        str(r.get("growth_source")) for r in records if r.get("growth_source")
    )

    return Statistics(
        total_records=len(records),
        average_yield=_mean(yields),
        yield_distribution=distribution(yields),
        by_sector=group_by(records),
        top_by_yield=top_by(records, n=top_n),
        with_growth_data=with_growth,
        without_growth_data=len(records) - with_growth,
        growth_sources=dict(sources.most_common()),
    )
