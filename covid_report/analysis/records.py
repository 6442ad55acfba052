"""Typed per-day records shared by the normalizer, the metric deriver and the report.

``None`` always means "not reported"; a reported zero stays ``0``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Optional

import pandas as pd

from covid_report.errors import MissingValueError

CUMULATIVE_FIELDS = ('confirmed', 'deaths', 'recovered', 'active_confirmed', 'suspected')
DELTA_FIELDS = {'confirmed': 'new_confirmed', 'deaths': 'new_deaths', 'recovered': 'new_recovered'}
RATE_FIELDS = ('rate_upper', 'rate_lower', 'rate_daily')


class FlagKind(str, Enum):
    NEGATIVE_DELTA = 'negative_delta'
    RATE_OUT_OF_RANGE = 'rate_out_of_range'
    TOTAL_MISMATCH = 'total_mismatch'
    NEGATIVE_ACTIVE = 'negative_active'
    MALFORMED_VALUE = 'malformed_value'


@dataclass(frozen=True)
class DiscrepancyFlag:
    """A data-quality anomaly found while deriving metrics. Never raised."""

    region: str
    date: date
    field: str
    kind: FlagKind
    value: Optional[float] = None

    @property
    def raw_delta(self) -> Optional[float]:
        return self.value if self.kind is FlagKind.NEGATIVE_DELTA else None

    @property
    def error(self) -> Optional[float]:
        return self.value if self.kind is FlagKind.TOTAL_MISMATCH else None


@dataclass(frozen=True)
class DailyRecord:
    region: str
    date: date
    confirmed: Optional[float] = None
    deaths: Optional[float] = None
    recovered: Optional[float] = None
    active_confirmed: Optional[float] = None
    suspected: Optional[float] = None
    new_confirmed: Optional[float] = None
    new_deaths: Optional[float] = None
    new_recovered: Optional[float] = None
    rate_upper: Optional[float] = None
    rate_lower: Optional[float] = None
    rate_daily: Optional[float] = None
    malformed_fields: tuple[str, ...] = ()

    def require(self, name: str) -> float:
        """Return a field's value, raising ``MissingValueError`` when it is not reported."""
        value = getattr(self, name)
        if value is None:
            raise MissingValueError(self.region, self.date, name)
        return value

    def is_malformed(self, name: str) -> bool:
        return name in self.malformed_fields


@dataclass(frozen=True)
class RegionSeries:
    """All daily records of one region, strictly increasing by date."""

    region: str
    records: tuple[DailyRecord, ...] = ()

    def __post_init__(self):
        days = [r.date for r in self.records]
        if any(b <= a for a, b in zip(days, days[1:])):
            raise ValueError(f"Records for {self.region} are not strictly increasing by date")

    def __len__(self):
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def values(self, name: str) -> list[Optional[float]]:
        return [getattr(r, name) for r in self.records]

    @property
    def dates(self) -> list[date]:
        return [r.date for r in self.records]


RECORD_COLUMNS = [f.name for f in fields(DailyRecord)]
FLAG_COLUMNS = [f.name for f in fields(DiscrepancyFlag)]


@dataclass(frozen=True)
class DerivedSnapshot:
    """Output of the metric deriver: populated series plus the discrepancy list."""

    series: dict[str, RegionSeries]
    flags: tuple[DiscrepancyFlag, ...] = field(default_factory=tuple)

    @property
    def regions(self) -> list[str]:
        return list(self.series)

    def to_frame(self) -> pd.DataFrame:
        """Flatten every record into one long DataFrame (nulls as NaN)."""
        rows = [asdict(r) for s in self.series.values() for r in s.records]
        frame = pd.DataFrame(rows, columns=RECORD_COLUMNS)
        frame['date'] = pd.to_datetime(frame['date'])
        frame['malformed_fields'] = frame['malformed_fields'].map(lambda names: ','.join(names))
        numeric = [c for c in RECORD_COLUMNS if c not in ('region', 'date', 'malformed_fields')]
        frame[numeric] = frame[numeric].astype('float64')
        return frame

    def flags_frame(self) -> pd.DataFrame:
        rows = [{**asdict(f), 'kind': f.kind.value} for f in self.flags]
        frame = pd.DataFrame(rows, columns=FLAG_COLUMNS)
        frame['date'] = pd.to_datetime(frame['date'])
        return frame
