# libs/adapters/sink.py
from __future__ import annotations

import threading
from typing import Dict, List, Protocol, Sequence

from libs.contracts.records import DataKind, DataRecord


class RecordSink(Protocol):
    """
    Append-only record sink (historical storage).
    - append receives the full batch of one successful run
    - no read-back contract: the refresh core never queries history
    """

    location: str

    def append(self, kind: DataKind, records: Sequence[DataRecord]) -> int:
        """Persist the batch; returns rows written."""
        ...


class InMemoryRecordSink:
    location = "memory"

    def __init__(self) -> None:
        self._rows: Dict[DataKind, List[DataRecord]] = {}
        self._lock = threading.Lock()

    def append(self, kind: DataKind, records: Sequence[DataRecord]) -> int:
        with self._lock:
            self._rows.setdefault(DataKind(kind), []).extend(records)
        return len(records)

    def rows(self, kind: DataKind) -> List[DataRecord]:
        with self._lock:
            return list(self._rows.get(DataKind(kind), []))
