"""
Domain package for ch-archiver.

Exports the value objects shared by the planner, the export pipeline and the
run coordinator. Keep this package focused on data definitions and validation.
"""

from ch_archiver.domain.models import DIR_TS_FORMAT, SQL_TS_FORMAT, TableSpec, TimeRange

__all__ = [
    "DIR_TS_FORMAT",
    "SQL_TS_FORMAT",
    "TableSpec",
    "TimeRange",
]
