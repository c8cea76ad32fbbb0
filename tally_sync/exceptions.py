"""
Error taxonomy for the Tally sync engine.

Tenant-level errors (connectivity, closed company, payload, load) abort the
current division only. ConfigurationError aborts the whole pass.
"""
from __future__ import annotations
from typing import Optional


class TallySyncError(Exception):
    """Base class for all sync engine errors."""
    pass


class ConfigurationError(TallySyncError):
    """Raised for a missing or invalid config file, schema file or date format."""
    pass


class ConnectivityError(TallySyncError):
    """Raised when the Tally server cannot be reached over HTTP."""
    pass


class TallyResponseError(TallySyncError):
    """Raised when Tally answers with an error payload (LINEERROR)."""
    pass


class NoCompanyOpenError(TallySyncError):
    """Raised when Tally returns an empty response, i.e. no company is open."""

    def __init__(self, url: str = ""):
        self.url = url
        where = f" at {url}" if url else ""
        super().__init__(f"No company is open in Tally{where}. Please open a company and retry")


class CompilationError(TallySyncError):
    """Raised when a table schema cannot be compiled into a TDL report."""
    pass


class LoadError(TallySyncError):
    """Raised when a database write fails. Carries the offending statement."""

    def __init__(self, message: str, table: Optional[str] = None, statement: Optional[str] = None):
        self.table = table
        self.statement = statement
        detail = message
        if table:
            detail = f"{detail} [table={table}]"
        if statement:
            preview = statement if len(statement) <= 200 else statement[:200] + "..."
            detail = f"{detail} [statement={preview}]"
        super().__init__(detail)
