from covid_report.analysis.metrics import derive_metrics
from covid_report.analysis.normalize import merge_metric_series
from covid_report.analysis.records import DailyRecord, DerivedSnapshot, DiscrepancyFlag, FlagKind, RegionSeries

__all__ = [
    "DailyRecord",
    "DerivedSnapshot",
    "DiscrepancyFlag",
    "FlagKind",
    "RegionSeries",
    "derive_metrics",
    "merge_metric_series",
]
