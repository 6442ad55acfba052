"""Reshape raw case tables into one cumulative record per region per day.

Every function here takes a DataFrame and returns a new one; inputs are never
modified. The intermediate "long" relation has the columns in ``LONG_COLUMNS``:
one row per (region, subregion, date, metric) with the cumulative ``value``
(NaN when not reported) and a ``malformed`` marker for cells whose source text
was not a number or was a negative count.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Mapping

import pandas as pd
from loguru import logger

from covid_report.analysis.records import CUMULATIVE_FIELDS, DailyRecord, RegionSeries
from covid_report.errors import MalformedDateError

LONG_COLUMNS = ['region', 'subregion', 'date', 'metric', 'value', 'malformed']
HEADER_FORMATS = ("%m/%d/%y", "%m/%d/%Y")
TIMESTAMP_COLUMN = '_timestamp'
SOURCE_TIMEZONE = 'Asia/Shanghai'


# ============================================
# PARSING HELPERS
# ============================================

def parse_date_header(text) -> date:
    """Parse a JHU date header such as ``1/22/20``."""
    value = str(text).strip()
    for fmt in HEADER_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise MalformedDateError(text)


def _coerce_counts(raw: pd.Series) -> tuple[pd.Series, pd.Series]:
    numeric = pd.to_numeric(raw, errors='coerce')
    unparseable = numeric.isna() & raw.notna()
    negative = numeric < 0
    malformed = unparseable | negative
    return numeric.mask(negative).astype('float64'), malformed


def _finish_long(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.copy()
    frame['value'], frame['malformed'] = _coerce_counts(frame['raw'])
    bad = int(frame['malformed'].sum())
    if bad:
        logger.warning(f"{bad} cell(s) with unparseable or negative counts set to missing")
    return (
        frame[LONG_COLUMNS]
        .sort_values(['region', 'subregion', 'date', 'metric'], kind='mergesort')
        .reset_index(drop=True)
    )


def _with_region_columns(table: pd.DataFrame, region_column: str, subregion_column: str | None) -> pd.DataFrame:
    frame = table.rename(columns={region_column: 'region'})
    if subregion_column and subregion_column in table.columns:
        frame = frame.rename(columns={subregion_column: 'subregion'})
        frame['subregion'] = frame['subregion'].fillna('').astype(str)
    else:
        frame['subregion'] = ''

    missing_region = frame['region'].isna()
    if missing_region.any():
        logger.warning(f"Skipping {int(missing_region.sum())} row(s) without a region")
        frame = frame[~missing_region].copy()
    frame['region'] = frame['region'].astype(str).str.strip()
    return frame


# ============================================
# WIDE (DATE-PER-COLUMN) TABLES
# ============================================

def reshape_wide_to_long(
    table: pd.DataFrame,
    metric_name: str,
    *,
    date_offset: int = 4,
    region_column: str = 'Country/Region',
    subregion_column: str | None = 'Province/State',
) -> pd.DataFrame:
    """Melt a table whose columns from ``date_offset`` onward are per-day counts.

    Columns whose header is not a date are dropped with a warning.
    """
    date_columns = {}
    for column in table.columns[date_offset:]:
        try:
            date_columns[column] = parse_date_header(column)
        except MalformedDateError as e:
            logger.warning(f"Dropping column {column!r} from {metric_name} table: {e.message}")

    frame = _with_region_columns(table, region_column, subregion_column)
    wide = frame[['region', 'subregion', *date_columns]]
    long = wide.melt(id_vars=['region', 'subregion'], var_name='header', value_name='raw')
    long['date'] = long['header'].map(date_columns)
    long['metric'] = metric_name

    duplicated = long.duplicated(subset=['region', 'subregion', 'date'], keep='last')
    if duplicated.any():
        logger.warning(f"{int(duplicated.sum())} repeated date column value(s) in {metric_name}, keeping the last")
        long = long[~duplicated]

    logger.debug(f"Reshaped {metric_name}: {len(frame)} rows x {len(date_columns)} days")
    return _finish_long(long)


# ============================================
# NARROW (TIMESTAMP-PER-ROW) TABLES
# ============================================

def _stamp_to_utc(value, source_timezone: str):
    try:
        stamp = pd.Timestamp(value)
    except (ValueError, TypeError):
        return pd.NaT
    if stamp is pd.NaT:
        return pd.NaT
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize(source_timezone)
    return stamp.tz_convert('UTC')


def _to_utc(raw: pd.Series, source_timezone: str) -> pd.Series:
    try:
        parsed = pd.to_datetime(raw, errors='coerce')
    except (ValueError, TypeError):
        parsed = pd.Series(pd.NaT, index=raw.index, dtype='datetime64[ns]')
    if isinstance(parsed.dtype, pd.DatetimeTZDtype):
        stamps = parsed.dt.tz_convert('UTC')
    elif pd.api.types.is_datetime64_dtype(parsed):
        stamps = parsed.dt.tz_localize(source_timezone, ambiguous='NaT', nonexistent='NaT').dt.tz_convert('UTC')
    else:
        stamps = pd.Series(pd.NaT, index=raw.index, dtype='datetime64[ns, UTC]')

    # cells in another layout than the inferred one, or mixing offsets, go one by one
    retry = stamps.isna() & raw.notna()
    if retry.any():
        stamps = stamps.copy()
        stamps[retry] = pd.to_datetime(raw[retry].map(lambda value: _stamp_to_utc(value, source_timezone)), utc=True)
    return stamps


def parse_timestamps(
    table: pd.DataFrame,
    column: str,
    source_timezone: str = SOURCE_TIMEZONE,
) -> pd.DataFrame:
    """Parse ``column`` into UTC timestamps and add the UTC calendar ``date``.

    Stamps without an offset are local times in ``source_timezone``. Rows whose
    timestamp does not parse are dropped and logged.
    """
    frame = table.copy()
    stamps = _to_utc(frame[column], source_timezone)
    for value in frame.loc[stamps.isna(), column]:
        logger.warning(f"Skipping row: {MalformedDateError(value).message}")
    frame[TIMESTAMP_COLUMN] = stamps
    frame = frame[stamps.notna()].copy()
    frame['date'] = frame[TIMESTAMP_COLUMN].dt.date
    return frame


def select_daily_snapshot(rows_for_one_day: pd.DataFrame, timestamp_column: str = TIMESTAMP_COLUMN) -> pd.Series:
    """Return the row with the latest timestamp; on a tie the first one seen wins."""
    if rows_for_one_day.empty:
        raise ValueError("select_daily_snapshot needs at least one row")
    return rows_for_one_day.iloc[rows_for_one_day[timestamp_column].argmax()]


def collapse_to_daily(
    table: pd.DataFrame,
    keys: Iterable[str],
    timestamp_column: str = TIMESTAMP_COLUMN,
) -> pd.DataFrame:
    """Keep one row per (keys..., date), picked by ``select_daily_snapshot``."""
    group_keys = [*keys, 'date']
    frame = table.reset_index(drop=True)
    if frame.empty:
        return frame
    chosen = (
        frame.groupby(group_keys, sort=True)[[timestamp_column]]
        .apply(lambda rows: select_daily_snapshot(rows, timestamp_column).name)
    )
    collapsed = frame.loc[list(chosen)].reset_index(drop=True)
    dropped = len(frame) - len(collapsed)
    if dropped:
        logger.info(f"Collapsed {dropped} same-day row(s) to the latest snapshot")
    return collapsed


def reshape_narrow_to_long(
    table: pd.DataFrame,
    field_map: Mapping[str, str],
    *,
    region_column: str,
    subregion_column: str | None = None,
    timestamp_column: str = 'updateTime',
    source_timezone: str = SOURCE_TIMEZONE,
) -> pd.DataFrame:
    """Turn a timestamped multi-metric table into the long relation.

    ``field_map`` maps source column names to metric names. Source columns that
    are absent from the table are skipped.
    """
    available = {src: metric for src, metric in field_map.items() if src in table.columns}
    for src in field_map:
        if src not in available:
            logger.warning(f"Column {src!r} not present in source table, {field_map[src]} left unreported")

    stamped = parse_timestamps(table, timestamp_column, source_timezone)
    frame = _with_region_columns(stamped, region_column, subregion_column)
    daily = collapse_to_daily(frame, ['region', 'subregion'])

    long = (
        daily[['region', 'subregion', 'date', *available]]
        .rename(columns=available)
        .melt(id_vars=['region', 'subregion', 'date'], var_name='metric', value_name='raw')
    )
    return _finish_long(long)


# ============================================
# AGGREGATION
# ============================================

def _sum_groups(rows: pd.DataFrame, keys: list[str]) -> pd.DataFrame:
    grouped = rows.groupby(keys, sort=True)
    # missing counts as zero unless the whole group is missing
    totals = pd.concat(
        [grouped['value'].sum(min_count=1), grouped['malformed'].any()],
        axis=1,
    )
    return totals.reset_index()


def aggregate_subregions(rows: pd.DataFrame, metric: str | None = None) -> pd.DataFrame:
    """Sum sub-region rows into one row per (region, date, metric)."""
    if metric is not None:
        rows = rows[rows['metric'] == metric]
    totals = _sum_groups(rows, ['region', 'date', 'metric'])
    totals['subregion'] = ''
    return totals[LONG_COLUMNS]


def synthesize_world_aggregate(per_country: pd.DataFrame, name: str = 'World') -> pd.DataFrame:
    """Append a ``name`` region equal to the per-date sum over every other region.

    Any row already carrying ``name`` in the source is discarded first.
    """
    stale = per_country['region'] == name
    if stale.any():
        logger.info(f"Discarding {int(stale.sum())} source row(s) named {name!r}")
    countries = per_country[~stale]

    world = _sum_groups(countries, ['date', 'metric'])
    world['region'] = name
    world['subregion'] = ''
    combined = pd.concat([countries[LONG_COLUMNS], world[LONG_COLUMNS]], ignore_index=True)
    return combined.sort_values(['region', 'date', 'metric'], kind='mergesort').reset_index(drop=True)


# ============================================
# MERGE INTO TYPED SERIES
# ============================================

def _optional(value):
    if value is None or pd.isna(value):
        return None
    return float(value)


def merge_metric_series(
    confirmed_series: pd.DataFrame | None,
    deaths_series: pd.DataFrame | None,
    recovered_series: pd.DataFrame | None,
    *extra_series: pd.DataFrame | None,
) -> dict[str, RegionSeries]:
    """Outer-join long frames on (region, date) into ``region -> RegionSeries``.

    A metric with no row for an existing (region, date) stays ``None``.
    """
    frames = [f for f in (confirmed_series, deaths_series, recovered_series, *extra_series) if f is not None]
    combined = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=LONG_COLUMNS)

    unknown = sorted(set(combined['metric']) - set(CUMULATIVE_FIELDS))
    if unknown:
        logger.warning(f"Ignoring unknown metric(s): {', '.join(unknown)}")
        combined = combined[combined['metric'].isin(CUMULATIVE_FIELDS)]

    if combined.empty:
        return {}

    grouped = combined.groupby(['region', 'date', 'metric'], sort=True)
    values = grouped['value'].sum(min_count=1).unstack('metric')
    malformed = grouped['malformed'].any().unstack('metric', fill_value=False)

    bad_rows = malformed.to_dict('index')
    by_region: dict[str, list[DailyRecord]] = {}
    for (region, day), row in values.to_dict('index').items():
        bad = bad_rows[(region, day)]
        by_region.setdefault(region, []).append(DailyRecord(
            region=region,
            date=day,
            malformed_fields=tuple(f for f in CUMULATIVE_FIELDS if bool(bad.get(f, False))),
            **{f: _optional(row.get(f)) for f in CUMULATIVE_FIELDS},
        ))

    series = {region: RegionSeries(region, tuple(records)) for region, records in by_region.items()}
    logger.info(f"Normalized {len(series)} region(s), {len(values)} region-day record(s)")
    return series
