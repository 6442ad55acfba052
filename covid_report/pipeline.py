"""fetch -> normalize -> derive -> render, once per run."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import pandas as pd
from loguru import logger

from covid_report.analysis.metrics import derive_metrics
from covid_report.analysis.normalize import (
    aggregate_subregions,
    merge_metric_series,
    reshape_narrow_to_long,
    reshape_wide_to_long,
    synthesize_world_aggregate,
)
from covid_report.analysis.records import CUMULATIVE_FIELDS, RegionSeries
from covid_report.data.fetch import fetch_all
from covid_report.data.sources import EDITIONS
from covid_report.report import write_report

WORLD_METRICS = ('confirmed', 'deaths', 'recovered')


def _split_by_metric(long: pd.DataFrame) -> dict[str, pd.DataFrame]:
    return {metric: long[long['metric'] == metric] for metric in CUMULATIVE_FIELDS}


def normalize_world(tables: Mapping[str, pd.DataFrame], config: dict[str, Any]) -> dict[str, RegionSeries]:
    """JHU wide tables (one per metric) -> ``region -> RegionSeries`` with a World aggregate."""
    cfg = config['world']
    per_country = []
    for metric in WORLD_METRICS:
        if metric not in tables:
            logger.warning(f"No {metric} table supplied, {metric} left unreported")
            continue
        long = reshape_wide_to_long(
            tables[metric],
            metric,
            date_offset=cfg['date_offset'],
            region_column=cfg['region_column'],
            subregion_column=cfg['subregion_column'],
        )
        per_country.append(aggregate_subregions(long))

    if not per_country:
        return {}
    combined = synthesize_world_aggregate(pd.concat(per_country, ignore_index=True), cfg['aggregate_name'])
    by_metric = _split_by_metric(combined)
    return merge_metric_series(by_metric['confirmed'], by_metric['deaths'], by_metric['recovered'])


def normalize_china(table: pd.DataFrame, config: dict[str, Any]) -> dict[str, RegionSeries]:
    """DXY area table -> ``province -> RegionSeries`` with a national aggregate."""
    cfg = config['china']
    country_column, country = cfg.get('country_column'), cfg.get('country')
    if country and country_column in table.columns:
        table = table[table[country_column] == country]

    long = reshape_narrow_to_long(
        table,
        cfg['fields'],
        region_column=cfg['region_column'],
        subregion_column=cfg['subregion_column'],
        timestamp_column=cfg['timestamp_column'],
        source_timezone=cfg['source_timezone'],
    )
    combined = synthesize_world_aggregate(aggregate_subregions(long), cfg['aggregate_name'])
    by_metric = _split_by_metric(combined)
    return merge_metric_series(
        by_metric['confirmed'],
        by_metric['deaths'],
        by_metric['recovered'],
        by_metric['active_confirmed'],
        by_metric['suspected'],
    )


def normalize(edition: str, tables: Mapping[str, pd.DataFrame], config: dict[str, Any]) -> dict[str, RegionSeries]:
    if edition == 'world':
        return normalize_world(tables, config)
    if edition == 'china':
        return normalize_china(tables['area'], config)
    raise ValueError(f"Unknown edition: {edition}")


def run(edition: str, config: dict[str, Any], output_dir=None) -> Path:
    """Build one report. Nothing is written unless every fetch succeeded."""
    if edition not in EDITIONS:
        raise ValueError(f"Unknown edition: {edition}")

    tables = fetch_all(EDITIONS[edition](config), config['fetch'])
    series = normalize(edition, tables, config)
    snapshot = derive_metrics(series)
    return write_report(
        snapshot,
        edition,
        output_dir or config['report']['output_dir'],
        config['report'],
        aggregate=config[edition]['aggregate_name'],
    )
