"""
ch-archiver - move historical ClickHouse rows into columnar files on HDFS.

The package carves an export window into time slots sized so that each output
file stays near a byte budget, then exports the slots from every source host
in parallel through ClickHouse's HDFS table engine:

- Size estimation from `system.parts` statistics
- Adaptive slot planning over progressively finer time granularities
- A bounded worker pool shared by all hosts (backpressure on the sink)
- Cooperative fail-fast across every in-flight export unit
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from ch_archiver.config import Settings, get_settings
from ch_archiver.domain.models import TableSpec, TimeRange
from ch_archiver.errors import ArchiverError, ConnectivityError, PlanningError, SetupError
from ch_archiver.orchestrator import plan_export, run_export
from ch_archiver.pipeline.abstract import PlanEntry, RunReport
from ch_archiver.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "TableSpec",
    "TimeRange",
    # Errors
    "ArchiverError",
    "ConnectivityError",
    "PlanningError",
    "SetupError",
    # Orchestration
    "PlanEntry",
    "RunReport",
    "plan_export",
    "run_export",
    # Logging
    "configure_logging",
    "get_logger",
]
