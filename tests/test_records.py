from datetime import date

import pandas as pd
import pytest

from covid_report.analysis.records import (
    RECORD_COLUMNS,
    DailyRecord,
    DerivedSnapshot,
    DiscrepancyFlag,
    FlagKind,
    RegionSeries,
)
from covid_report.errors import MissingValueError

DAY1, DAY2 = date(2020, 1, 22), date(2020, 1, 23)


class TestDailyRecord:
    def test_require_returns_reported_zero(self):
        assert DailyRecord('A', DAY1, confirmed=0.0).require('confirmed') == 0.0

    def test_require_raises_for_missing(self):
        with pytest.raises(MissingValueError) as info:
            DailyRecord('A', DAY1).require('deaths')
        assert info.value.details == {'region': 'A', 'date': '2020-01-22', 'field': 'deaths'}


class TestRegionSeries:
    def test_rejects_unordered_dates(self):
        with pytest.raises(ValueError):
            RegionSeries('A', (DailyRecord('A', DAY2), DailyRecord('A', DAY1)))

    def test_rejects_duplicate_dates(self):
        with pytest.raises(ValueError):
            RegionSeries('A', (DailyRecord('A', DAY1), DailyRecord('A', DAY1)))

    def test_gaps_allowed(self):
        series = RegionSeries('A', (DailyRecord('A', DAY1), DailyRecord('A', date(2020, 2, 1))))
        assert len(series) == 2


class TestDiscrepancyFlag:
    def test_views_match_kind(self):
        negative = DiscrepancyFlag('A', DAY1, 'confirmed', FlagKind.NEGATIVE_DELTA, -10)
        mismatch = DiscrepancyFlag('A', DAY1, 'total', FlagKind.TOTAL_MISMATCH, 4)
        assert (negative.raw_delta, negative.error) == (-10, None)
        assert (mismatch.raw_delta, mismatch.error) == (None, 4)


class TestDerivedSnapshotFrames:
    def test_to_frame_keeps_nulls_as_nan(self):
        snapshot = DerivedSnapshot({
            'A': RegionSeries('A', (
                DailyRecord('A', DAY1, confirmed=5.0),
                DailyRecord('A', DAY2, confirmed=7.0, new_confirmed=2.0, malformed_fields=('deaths',)),
            )),
        })
        frame = snapshot.to_frame()
        assert list(frame.columns) == RECORD_COLUMNS
        assert pd.api.types.is_datetime64_any_dtype(frame['date'])
        assert frame['new_confirmed'].isna().tolist() == [True, False]
        assert frame['malformed_fields'].tolist() == ['', 'deaths']

    def test_flags_frame(self):
        snapshot = DerivedSnapshot({}, (DiscrepancyFlag('A', DAY1, 'confirmed', FlagKind.NEGATIVE_DELTA, -1),))
        frame = snapshot.flags_frame()
        assert frame['kind'].tolist() == ['negative_delta']
        assert frame['value'].tolist() == [-1]

    def test_empty_frames(self):
        snapshot = DerivedSnapshot({})
        assert snapshot.to_frame().empty
        assert snapshot.flags_frame().empty
