"""
Pipeline package for ch-archiver.

Re-exports the building blocks of an export run so downstream code can import
from `ch_archiver.pipeline` directly: size estimation, slot planning, unit
execution, the bounded worker pool and the shared run counters.
"""

from ch_archiver.pipeline.abstract import (
    DestinationFilesystem,
    PlanEntry,
    QueryClient,
    RunReport,
)
from ch_archiver.pipeline.estimator import SizeEstimate, estimate_row_size, row_budget
from ch_archiver.pipeline.exporter import (
    ExportContext,
    ExportUnit,
    build_units,
    destination_path,
    export_unit,
)
from ch_archiver.pipeline.planner import SlotPlan, plan_slots, slot_ranges
from ch_archiver.pipeline.pool import BoundedWorkerPool, PoolClosedError
from ch_archiver.pipeline.stats import AtomicCounter, RunStatistics

__all__ = [
    # Contracts
    "DestinationFilesystem",
    "PlanEntry",
    "QueryClient",
    "RunReport",
    # Estimation and planning
    "SizeEstimate",
    "SlotPlan",
    "estimate_row_size",
    "plan_slots",
    "row_budget",
    "slot_ranges",
    # Execution
    "AtomicCounter",
    "BoundedWorkerPool",
    "ExportContext",
    "ExportUnit",
    "PoolClosedError",
    "RunStatistics",
    "build_units",
    "destination_path",
    "export_unit",
]
