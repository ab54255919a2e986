"""
Error taxonomy for ch-archiver.

Connectivity, setup and planning failures are fatal to the whole run and are
raised to the caller. Failures of individual export units are never raised:
they are logged and counted in RunStatistics so sibling units can observe the
fail-fast flag.
"""

from __future__ import annotations

from typing import Optional


class ArchiverError(Exception):
    """Base class for all fatal ch-archiver errors."""


class ConnectivityError(ArchiverError):
    """A source host or the destination filesystem cannot be reached."""


class SetupError(ArchiverError):
    """The run-scoped destination directory cannot be prepared."""


class PlanningError(ArchiverError):
    """A statistics or grouping query failed while sizing or slotting a table."""

    def __init__(self, message: str, host: Optional[str] = None, table: Optional[str] = None) -> None:
        super().__init__(message)
        self.host = host
        self.table = table

    def __str__(self) -> str:
        message = super().__str__()
        if self.host is None and self.table is None:
            return message
        return f"host {self.host}, table {self.table}: {message}"


__all__ = [
    "ArchiverError",
    "ConnectivityError",
    "PlanningError",
    "SetupError",
]
