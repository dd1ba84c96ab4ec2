from __future__ import annotations

from typing import Optional


class DashboardError(Exception):
    """Base class for failures that abort a whole dashboard request."""


class SourceUnavailable(DashboardError):
    """The data source could not deliver a range (network, auth, missing sheet)."""

    def __init__(self, range_name: Optional[str], reason: str):
        self.range_name = range_name
        self.reason = reason
        where = f" for range {range_name!r}" if range_name else ""
        super().__init__(f"Data source unavailable{where}: {reason}")


class ConfigurationMissing(DashboardError):
    """A required setting, range name or threshold was not provided."""

    def __init__(self, setting: str, hint: str = ""):
        self.setting = setting
        message = f"Missing configuration: {setting}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)
