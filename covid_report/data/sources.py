from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SourceSpec:
    """One remote (or local) CSV table to download."""

    name: str
    url: str
    required_columns: tuple[str, ...] = ()


def world_sources(config: dict[str, Any]) -> list[SourceSpec]:
    """JHU CSSE global time series: one wide table per metric."""
    cfg = config['world']
    base = cfg['base_url'].rstrip('/') + '/'
    return [
        SourceSpec(metric, base + filename, (cfg['region_column'],))
        for metric, filename in cfg['files'].items()
    ]


def china_sources(config: dict[str, Any]) -> list[SourceSpec]:
    """DXY area time series: a single timestamped table."""
    cfg = config['china']
    return [SourceSpec('area', cfg['url'], (cfg['region_column'], cfg['timestamp_column']))]


EDITIONS = {
    'world': world_sources,
    'china': china_sources,
}
