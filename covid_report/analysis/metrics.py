"""Derived metrics: imputed active cases, daily deltas and death-rate estimators.

Each region series is processed on its own, in this order:

1. impute ``active_confirmed = confirmed - recovered - deaths`` where missing
2. day-over-day deltas of confirmed, deaths and recovered
3. clamp negative deltas to zero, keeping the raw value as a flag
4. the three death-rate estimators, rounded to one decimal
5. check ``active + recovered + deaths`` against ``confirmed``

Rates are rounded half-to-even on the decimal representation of the float,
so ``12.25`` becomes ``12.2`` and ``12.35`` becomes ``12.4``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import date, timedelta
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Mapping, Optional, Sequence

from loguru import logger

from covid_report.analysis.records import (
    DELTA_FIELDS,
    DailyRecord,
    DerivedSnapshot,
    DiscrepancyFlag,
    FlagKind,
    RegionSeries,
)

RATE_QUANTUM = Decimal('0.1')
RATE_MIN, RATE_MAX = 0.0, 100.0
ONE_DAY = timedelta(days=1)


def round_rate(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return float(Decimal(repr(value)).quantize(RATE_QUANTUM, rounding=ROUND_HALF_EVEN))


def percentage(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """``100 * numerator / denominator``, or None when either is missing or the denominator is 0."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return 100.0 * numerator / denominator


def _sum(*values: Optional[float]) -> Optional[float]:
    if any(v is None for v in values):
        return None
    return sum(values)


# ============================================
# STEP 1: ACTIVE CASES
# ============================================

def impute_active(record: DailyRecord) -> tuple[DailyRecord, list[DiscrepancyFlag]]:
    if record.active_confirmed is not None:
        return record, []
    if record.confirmed is None or record.recovered is None or record.deaths is None:
        return record, []

    active = record.confirmed - record.recovered - record.deaths
    if active < 0:
        flag = DiscrepancyFlag(record.region, record.date, 'active_confirmed', FlagKind.NEGATIVE_ACTIVE, active)
        return replace(record, active_confirmed=0.0), [flag]
    return replace(record, active_confirmed=active), []


# ============================================
# STEP 2-3: DELTAS
# ============================================

def compute_deltas(
    values: Sequence[Optional[float]],
    malformed: Sequence[bool] | None = None,
    dates: Sequence[date] | None = None,
) -> list[Optional[float]]:
    """Raw day-over-day differences; None for the first value and around any gap.

    With ``dates``, a pair of records that are not on consecutive days has no delta.
    """
    malformed = malformed or [False] * len(values)
    deltas: list[Optional[float]] = []
    for i, current in enumerate(values):
        if i == 0:
            deltas.append(None)
            continue
        previous = values[i - 1]
        if current is None or previous is None or malformed[i] or malformed[i - 1]:
            deltas.append(None)
        elif dates is not None and dates[i] - dates[i - 1] != ONE_DAY:
            deltas.append(None)
        else:
            deltas.append(current - previous)
    return deltas


def clamp_delta(delta: Optional[float]) -> Optional[float]:
    if delta is None:
        return None
    return max(0.0, delta)


# ============================================
# STEP 4-5: RATES AND CONSISTENCY
# ============================================

def death_rates(record: DailyRecord) -> dict[str, Optional[float]]:
    """Unrounded ``rate_upper``, ``rate_lower`` and ``rate_daily`` for one record."""
    return {
        'rate_upper': percentage(record.deaths, _sum(record.deaths, record.recovered)),
        'rate_lower': percentage(record.deaths, record.confirmed),
        'rate_daily': percentage(record.new_deaths, _sum(record.new_deaths, record.new_recovered)),
    }


def total_error(record: DailyRecord) -> Optional[float]:
    """``active + recovered + deaths - confirmed``; None when any term is missing."""
    total = _sum(record.active_confirmed, record.recovered, record.deaths)
    if total is None or record.confirmed is None:
        return None
    return total - record.confirmed


# ============================================
# PER-SERIES DRIVER
# ============================================

def derive_series(series: RegionSeries) -> tuple[RegionSeries, list[DiscrepancyFlag]]:
    flags: list[DiscrepancyFlag] = []

    records = []
    for record in series.records:
        for name in record.malformed_fields:
            flags.append(DiscrepancyFlag(record.region, record.date, name, FlagKind.MALFORMED_VALUE))
        record, imputed_flags = impute_active(record)
        flags.extend(imputed_flags)
        records.append(record)

    updates: list[dict] = [{} for _ in records]
    for cumulative, delta_name in DELTA_FIELDS.items():
        raw = compute_deltas(
            [getattr(r, cumulative) for r in records],
            [r.is_malformed(cumulative) for r in records],
            [r.date for r in records],
        )
        for i, delta in enumerate(raw):
            if delta is not None and delta < 0:
                flags.append(DiscrepancyFlag(
                    records[i].region, records[i].date, cumulative, FlagKind.NEGATIVE_DELTA, delta,
                ))
            updates[i][delta_name] = clamp_delta(delta)

    derived = []
    for record, update in zip(records, updates):
        record = replace(record, **update)
        rates = death_rates(record)
        for name, rate in rates.items():
            if rate is not None and not RATE_MIN <= rate <= RATE_MAX:
                flags.append(DiscrepancyFlag(
                    record.region, record.date, name, FlagKind.RATE_OUT_OF_RANGE, round_rate(rate),
                ))
        record = replace(record, **{name: round_rate(rate) for name, rate in rates.items()})

        error = total_error(record)
        if error:
            flags.append(DiscrepancyFlag(record.region, record.date, 'total', FlagKind.TOTAL_MISMATCH, error))
        derived.append(record)

    return RegionSeries(series.region, tuple(derived)), flags


def derive_metrics(series_by_region: Mapping[str, RegionSeries]) -> DerivedSnapshot:
    """Run every step on every region series and collect the flags."""
    derived = {}
    flags: list[DiscrepancyFlag] = []
    for region in sorted(series_by_region):
        derived[region], region_flags = derive_series(series_by_region[region])
        flags.extend(region_flags)

    counts = Counter(f.kind.value for f in flags)
    if counts:
        summary = ', '.join(f"{kind}={n}" for kind, n in sorted(counts.items()))
        logger.info(f"Derived metrics for {len(derived)} region(s); discrepancies: {summary}")
    else:
        logger.info(f"Derived metrics for {len(derived)} region(s); no discrepancies")
    return DerivedSnapshot(derived, tuple(flags))
