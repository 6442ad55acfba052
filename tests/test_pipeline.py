"""End-to-end tests: normalization of both editions and full report runs from local files."""

import copy
from datetime import date

import pytest

from covid_report.analysis.metrics import derive_metrics
from covid_report.analysis.records import FlagKind
from covid_report.config import DEFAULT_CONFIG
from covid_report.errors import FetchError
from covid_report.pipeline import normalize, normalize_china, normalize_world, run

DAYS = [date(2020, 1, 22), date(2020, 1, 23), date(2020, 1, 24)]


@pytest.fixture
def config():
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def world_config(tmp_path, wide_tables, config):
    source = tmp_path / 'src'
    source.mkdir()
    for metric, filename in config['world']['files'].items():
        wide_tables[metric].to_csv(source / filename, index=False)
    config['world']['base_url'] = str(source)
    config['report']['dpi'] = 40
    return config


class TestNormalizeWorld:
    def test_countries_and_world(self, wide_tables, config):
        series = normalize_world(wide_tables, config)
        assert list(series) == ['A', 'China', 'World']
        assert series['China'].values('confirmed') == [15.0, 25.0, 36.0]
        assert series['China'].values('recovered') == [1.0, 3.0, 5.0]
        assert series['World'].dates == DAYS

    def test_world_is_sum_of_countries(self, wide_tables, config):
        series = normalize_world(wide_tables, config)
        for metric in ('confirmed', 'deaths', 'recovered'):
            countries = [s for region, s in series.items() if region != 'World']
            expected = [sum(s.values(metric)[i] or 0 for s in countries) for i in range(len(DAYS))]
            assert series['World'].values(metric) == expected

    def test_active_left_for_imputation(self, wide_tables, config):
        series = normalize_world(wide_tables, config)
        assert all(r.active_confirmed is None for r in series['A'])

    def test_missing_metric_table(self, wide_tables, config):
        del wide_tables['recovered']
        series = normalize_world(wide_tables, config)
        assert series['A'].values('recovered') == [None, None, None]

    def test_idempotent(self, wide_tables, config):
        first = derive_metrics(normalize_world(wide_tables, config))
        second = derive_metrics(normalize_world(wide_tables, config))
        assert first == second

    def test_derived_world_edition(self, wide_tables, config):
        snapshot = derive_metrics(normalize_world(wide_tables, config))
        a = snapshot.series['A']
        assert a.values('new_confirmed') == [None, 50.0, 0.0]
        assert a.values('active_confirmed') == [89.0, 128.0, 107.0]
        negative = [f for f in snapshot.flags if f.kind is FlagKind.NEGATIVE_DELTA]
        assert [(f.region, f.date, f.raw_delta) for f in negative] == [('A', DAYS[2], -10.0)]


class TestNormalizeChina:
    def test_latest_snapshot_per_day(self, dxy_table, config):
        series = normalize_china(dxy_table, config)
        hubei = series['Hubei'].records
        assert [r.date for r in hubei] == [date(2020, 2, 1), date(2020, 2, 2)]
        assert (hubei[0].confirmed, hubei[0].deaths, hubei[0].recovered, hubei[0].suspected) == (120, 2, 6, 40)

    def test_foreign_rows_filtered_and_aggregate_named(self, dxy_table, config):
        series = normalize_china(dxy_table, config)
        assert list(series) == ['Beijing', 'China', 'Hubei']
        assert series['China'].values('confirmed') == [130.0, 200.0]

    def test_dispatch(self, dxy_table, config):
        assert normalize('china', {'area': dxy_table}, config) == normalize_china(dxy_table, config)
        with pytest.raises(ValueError):
            normalize('mars', {}, config)


class TestRun:
    def test_writes_complete_report(self, tmp_path, world_config):
        target = run('world', world_config, tmp_path / 'out')

        assert target == (tmp_path / 'out').resolve()
        for name in ('index.html', 'daily_records.csv', 'discrepancies.csv', 'latest.csv',
                     'summary.csv', 'cumulative.png', 'daily_new.png', 'death_rates.png',
                     'top_regions.png', 'discrepancies.png', 'bar_race.gif'):
            assert (target / name).exists(), name
        assert 'COVID-19 World Report' in (target / 'index.html').read_text()

    def test_fetch_failure_writes_nothing(self, tmp_path, world_config):
        world_config['world']['base_url'] = str(tmp_path / 'missing')
        with pytest.raises(FetchError):
            run('world', world_config, tmp_path / 'out')
        assert not (tmp_path / 'out').exists()

    def test_unknown_edition(self, config):
        with pytest.raises(ValueError):
            run('mars', config)
