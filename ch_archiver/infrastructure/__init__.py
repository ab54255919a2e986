"""
Infrastructure package for ch-archiver.

Centralizes connectivity concerns: ClickHouse source hosts and the HDFS
destination. Keep this layer focused on I/O and resource management, decoupled
from planning and export logic.
"""

from ch_archiver.infrastructure.clickhouse import SourceHost, close_sources, connect_sources
from ch_archiver.infrastructure.hdfs import HdfsFilesystem, connect_filesystem, prepare_run_root

__all__ = [
    "HdfsFilesystem",
    "SourceHost",
    "close_sources",
    "connect_filesystem",
    "connect_sources",
    "prepare_run_root",
]
