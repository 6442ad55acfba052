"""Run configuration.

Defaults live in ``DEFAULT_CONFIG``; a YAML file can override any key.
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml

from covid_report.errors import ConfigError

CONFIG_ENV_VAR = "COVID_REPORT_CONFIG"

# ============================================
# DEFAULTS
# ============================================

DEFAULT_CONFIG: dict[str, Any] = {
    'fetch': {
        'timeout': 60,
        'max_workers': 3,
        'verify_tls': True,
    },
    'world': {
        'base_url': (
            "https://raw.githubusercontent.com/CSSEGISandData/COVID-19/master/"
            "csse_covid_19_data/csse_covid_19_time_series/"
        ),
        'files': {
            'confirmed': 'time_series_covid19_confirmed_global.csv',
            'deaths': 'time_series_covid19_deaths_global.csv',
            'recovered': 'time_series_covid19_recovered_global.csv',
        },
        'date_offset': 4,
        'region_column': 'Country/Region',
        'subregion_column': 'Province/State',
        'aggregate_name': 'World',
    },
    'china': {
        'url': "https://raw.githubusercontent.com/BlankerL/DXY-COVID-19-Data/master/csv/DXYArea.csv",
        'timestamp_column': 'updateTime',
        'source_timezone': 'Asia/Shanghai',
        'region_column': 'provinceEnglishName',
        'subregion_column': None,
        'country_column': 'countryEnglishName',
        'country': 'China',
        'fields': {
            'province_confirmedCount': 'confirmed',
            'province_deadCount': 'deaths',
            'province_curedCount': 'recovered',
            'province_suspectedCount': 'suspected',
            'province_currentConfirmedCount': 'active_confirmed',
        },
        'aggregate_name': 'China',
    },
    'report': {
        'output_dir': 'report',
        'top_n': 10,
        'rolling_window': 7,
        'dpi': 150,
        'style': 'whitegrid',
        'animation_frames': 100,
        'animation_fps': 20,
        'animation_dpi': 80,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | os.PathLike | None = None) -> dict[str, Any]:
    """Return ``DEFAULT_CONFIG`` overlaid with the YAML file at ``path``.

    Without ``path`` the file named by ``$COVID_REPORT_CONFIG`` is used if set.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(Path(path), 'r', encoding='utf-8') as f:
            override = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}", {'path': str(path)}) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", {'path': str(path)}) from e

    if not isinstance(override, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", {'path': str(path)})

    unknown = sorted(set(override) - set(DEFAULT_CONFIG))
    if unknown:
        raise ConfigError(f"Unknown config sections: {', '.join(unknown)}", {'sections': unknown})

    return _deep_merge(DEFAULT_CONFIG, override)
