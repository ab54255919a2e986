"""
HDFS access for ch-archiver.

The export itself is written by ClickHouse's HDFS table engine; this process
only needs to claim the run-scoped directory beforehand. `HdfsFilesystem`
adapts `pyarrow.fs.HadoopFileSystem` to the DestinationFilesystem protocol.
"""

from __future__ import annotations

import posixpath
from typing import Any, Sequence, Tuple

from pyarrow import fs as pafs
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ch_archiver.config import Settings
from ch_archiver.errors import ConnectivityError, SetupError
from ch_archiver.pipeline.abstract import DestinationFilesystem
from ch_archiver.utils.logging import get_logger

log = get_logger(__name__)


def split_address(addr: str, default_port: int = 8020) -> Tuple[str, int]:
    """Split `host[:port]` into its parts."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, default_port
    if not host:
        raise ValueError(f"Invalid HDFS address '{addr}'")
    return host, int(port)


class HdfsFilesystem:
    """DestinationFilesystem backed by a pyarrow filesystem."""

    def __init__(self, filesystem: Any) -> None:
        self._fs = filesystem

    def remove_all(self, path: str) -> None:
        info = self._fs.get_file_info(path)
        if info.type == pafs.FileType.NotFound:
            return
        if info.type == pafs.FileType.Directory:
            self._fs.delete_dir(path)
        else:
            self._fs.delete_file(path)

    def make_dirs(self, path: str) -> None:
        self._fs.create_dir(path, recursive=True)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(OSError),
    reraise=True,
)
def _open_hadoop(host: str, port: int, user: str) -> Any:
    return pafs.HadoopFileSystem(host, port=port, user=user)


def connect_filesystem(settings: Settings) -> HdfsFilesystem:
    """
    Connect to the HDFS namenode configured in settings.

    Raises
    ------
    ConnectivityError
        If the namenode cannot be reached (after retries) or libhdfs is missing.
    """
    try:
        host, port = split_address(settings.hdfs_addr)
        filesystem = _open_hadoop(host, port, settings.hdfs_user)
    except Exception as exc:  # noqa: BLE001 - any failure here is fatal to the run
        raise ConnectivityError(f"cannot connect to HDFS at {settings.hdfs_addr}: {exc}") from exc
    log.info(f"initialized hdfs connection to {settings.hdfs_addr}", extra={"hdfs": settings.hdfs_addr})
    return HdfsFilesystem(filesystem)


def prepare_run_root(
    filesystem: DestinationFilesystem, run_root: str, subdirs: Sequence[str] = ()
) -> str:
    """
    Remove and recreate the run-scoped directory, then create `subdirs` in it.

    Destructive on purpose: reruns of the same window start from a clean
    directory, so a run must own its directory exclusively.
    """
    try:
        filesystem.remove_all(run_root)
        filesystem.make_dirs(run_root)
        for subdir in subdirs:
            filesystem.make_dirs(posixpath.join(run_root, subdir))
    except Exception as exc:  # noqa: BLE001 - any failure here is fatal to the run
        raise SetupError(f"cannot prepare destination directory {run_root}: {exc}") from exc
    log.info(f"prepared destination directory {run_root}", extra={"run_root": run_root})
    return run_root


__all__ = ["HdfsFilesystem", "connect_filesystem", "prepare_run_root", "split_address"]
