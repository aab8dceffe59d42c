"""
Error taxonomy shared by every stage of report generation.

ConfigurationError and DataSourceError always reach the caller.
RenderDegradation is the only error absorbed internally (pie charts fall
back to bars).  PersistenceError is reported next to a successfully
generated document, never instead of it.
"""

from __future__ import annotations

from typing import Optional


class ReportEngineError(Exception):
    """Base class for all report engine errors."""


class ConfigurationError(ReportEngineError):
    """Invalid period sub-unit or filter combination."""


class DataSourceError(ReportEngineError):
    """An Event Store fetch failed or timed out."""

    def __init__(self, message: str, subquery: Optional[str] = None) -> None:
        self.subquery = subquery
        if subquery:
            message = f"[{subquery}] {message}"
        super().__init__(message)


class RenderDegradation(ReportEngineError):
    """Pie construction was not valid for the given data."""


class PersistenceError(ReportEngineError):
    """The report archive could not store or read a report."""


class ReportNotFoundError(ReportEngineError, LookupError):
    """No archived report with that id is visible to the caller."""
