"""Exceptions raised by the report pipeline."""

from typing import Any


class CovidReportError(Exception):
    """Base class for every error the package raises."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class FetchError(CovidReportError):
    """A source table could not be downloaded or is not tabular.

    Fatal for the whole run.
    """

    def __init__(self, message: str, source: str, details: dict[str, Any] | None = None):
        super().__init__(message, "FETCH_ERROR", details)
        self.source = source


class MalformedDateError(CovidReportError):
    """A date column header or a timestamp field cannot be parsed."""

    def __init__(self, value: Any, details: dict[str, Any] | None = None):
        super().__init__(f"Unparseable date: {value!r}", "MALFORMED_DATE", details)
        self.value = value


class MissingValueError(CovidReportError):
    """A cumulative field was requested but is not reported for that day."""

    def __init__(self, region: str, day: Any, field: str):
        super().__init__(
            f"{field} not reported for {region} on {day}",
            "MISSING_VALUE",
            {"region": region, "date": str(day), "field": field},
        )
        self.region = region
        self.field = field


class ConfigError(CovidReportError):
    """The configuration file is unreadable or has unknown sections."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, "CONFIG_ERROR", details)


class OutputDirectoryError(CovidReportError, ValueError):
    """The report directory holds files that are not a previous report."""

    def __init__(self, path: Any):
        super().__init__(
            f"{path} is not empty and does not hold a previous report",
            "OUTPUT_DIRECTORY",
            {"path": str(path)},
        )
        self.path = path
