"""Shared fixtures: small JHU-style wide tables and a DXY-style narrow table."""

from __future__ import annotations

from datetime import date, timedelta

import pandas as pd
import pytest

from covid_report.analysis.normalize import LONG_COLUMNS


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests that download the live source tables.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: needs network access to the live sources")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="integration tests require --run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def _wide(values: dict[tuple[str | None, str], list]) -> pd.DataFrame:
    rows = []
    for (province, country), counts in values.items():
        rows.append([province, country, 0.0, 0.0, *counts])
    columns = ['Province/State', 'Country/Region', 'Lat', 'Long', '1/22/20', '1/23/20', '1/24/20']
    return pd.DataFrame(rows, columns=columns)


@pytest.fixture
def wide_tables():
    """Confirmed/deaths/recovered for country A and two Chinese provinces over three days."""
    return {
        'confirmed': _wide({
            (None, 'A'): [100, 150, 140],
            ('Hubei', 'China'): [10, 20, 30],
            ('Beijing', 'China'): [5, 5, 6],
        }),
        'deaths': _wide({
            (None, 'A'): [1, 2, 3],
            ('Hubei', 'China'): [0, 1, 1],
            ('Beijing', 'China'): [0, 0, 0],
        }),
        'recovered': _wide({
            (None, 'A'): [10, 20, 30],
            ('Hubei', 'China'): [1, 2, 4],
            ('Beijing', 'China'): [0, 1, 1],
        }),
    }


@pytest.fixture
def dxy_table():
    """DXY area rows: several snapshots per day, one unparseable timestamp, one foreign row."""
    return pd.DataFrame({
        'countryEnglishName': ['China', 'China', 'China', 'China', 'China', 'Japan'],
        'provinceEnglishName': ['Hubei', 'Hubei', 'Hubei', 'Beijing', 'Beijing', 'Japan'],
        'province_confirmedCount': [100, 120, 200, 10, 99, 5],
        'province_suspectedCount': [50, 40, 30, 2, 9, 0],
        'province_curedCount': [5, 6, 10, 1, 9, 0],
        'province_deadCount': [1, 2, 3, 0, 9, 0],
        'updateTime': [
            '2020-02-01 08:00:00',
            '2020-02-01 20:00:00',
            '2020-02-02 09:00:00',
            '2020-02-01 12:00:00',
            'not a time',
            '2020-02-01 12:00:00',
        ],
    })


@pytest.fixture
def make_long():
    """Build long-relation rows for one region and metric starting 2020-01-22."""

    def _make(region, metric, values, start=date(2020, 1, 22), subregion='', malformed=None):
        malformed = malformed or [False] * len(values)
        return pd.DataFrame(
            [
                [region, subregion, start + timedelta(days=i), metric,
                 float('nan') if v is None else float(v), bad]
                for i, (v, bad) in enumerate(zip(values, malformed))
            ],
            columns=LONG_COLUMNS,
        )

    return _make
