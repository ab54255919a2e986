"""
In-memory stand-ins for the source and destination collaborators.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

Bucket = Tuple[Any, int]

_FROM_RE = re.compile(r"FROM (\S+)")
_PARTS_RE = re.compile(r"table='([^']+)'")
_INTERVAL_RE = re.compile(r"INTERVAL (\d+ \w+)\)")


@dataclass
class FakeTable:
    """Statistics and per-granularity buckets a fake host reports for one table."""

    rows_total: int = 0
    compressed_bytes: int = 0
    rows_in_range: int = 0
    buckets: Dict[str, List[Bucket]] = field(default_factory=dict)


class FakeClickHouse:
    """
    Scripted QueryClient answering the statements ch-archiver issues.

    `fail_on` is a predicate on the query text; matching statements raise.
    """

    def __init__(
        self,
        tables: Optional[Dict[str, FakeTable]] = None,
        fail_on: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.tables = tables or {}
        self.fail_on = fail_on
        self.queries: List[str] = []
        self._lock = threading.Lock()

    def execute(self, query: str) -> List[Sequence[Any]]:
        with self._lock:
            self.queries.append(query)
        if self.fail_on is not None and self.fail_on(query):
            raise RuntimeError(f"Code: 1000. DB::Exception: injected failure for: {query}")

        if query == "SELECT 1":
            return [(1,)]
        if query.startswith(("DROP ", "CREATE ", "INSERT ")):
            return []
        if "system.parts" in query:
            return [(self._table(_PARTS_RE.search(query).group(1)).compressed_bytes,)]
        table = self._table(_FROM_RE.search(query).group(1))
        if "toStartOfInterval" in query:
            return list(table.buckets.get(_INTERVAL_RE.search(query).group(1), []))
        if query.startswith("SELECT count()"):
            return [(table.rows_in_range if " WHERE " in query else table.rows_total,)]
        raise AssertionError(f"unexpected query: {query}")

    def _table(self, name: str) -> FakeTable:
        return self.tables.get(name, FakeTable())

    def statements(self, prefix: str) -> List[str]:
        with self._lock:
            return [q for q in self.queries if q.startswith(prefix)]


class FakeFilesystem:
    """DestinationFilesystem that records calls and can be told to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[Tuple[str, str]] = []

    def remove_all(self, path: str) -> None:
        self.calls.append(("remove_all", path))
        if self.fail:
            raise PermissionError(f"Permission denied: {path}")

    def make_dirs(self, path: str) -> None:
        self.calls.append(("make_dirs", path))


def month_buckets(year: int, months: Sequence[int], count: int) -> List[Bucket]:
    return [(datetime(year, month, 1), count) for month in months]


