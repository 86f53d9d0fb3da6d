"""
Adherence record store boundary.

The real store lives outside this package (a SQL table keyed by record id).
The engine relies on exactly four operations, the important one being an
atomic compare-and-swap on ``version``.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .model import AdherenceRecord


class AdherenceStore(ABC):

    @abstractmethod
    def insert(self, record: AdherenceRecord) -> None:
        """Persist a new record. Raises KeyError if the id already exists."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[AdherenceRecord]:
        ...

    @abstractmethod
    def compare_and_swap(self, record_id: str, expected_version: int, record: AdherenceRecord) -> bool:
        """
        Replace the stored record only if its version is still
        ``expected_version``. Returns False when it has moved on.
        """

    @abstractmethod
    def list_by_provider(self, provider_id: Optional[str]) -> List[AdherenceRecord]:
        """All records for a provider (``None`` = all records), any order."""


class InMemoryAdherenceStore(AdherenceStore):
    """Thread-safe dict-backed store for tests and single-process use."""

    def __init__(self):
        self._records: Dict[str, AdherenceRecord] = {}
        self._lock = threading.Lock()

    def insert(self, record: AdherenceRecord) -> None:
        with self._lock:
            if record.record_id in self._records:
                raise KeyError(f"Adherence record {record.record_id} already exists")
            self._records[record.record_id] = record

    def get(self, record_id: str) -> Optional[AdherenceRecord]:
        with self._lock:
            return self._records.get(record_id)

    def compare_and_swap(self, record_id: str, expected_version: int, record: AdherenceRecord) -> bool:
        with self._lock:
            current = self._records.get(record_id)
            if current is None or current.version != expected_version:
                return False
            self._records[record_id] = record
            return True

    def list_by_provider(self, provider_id: Optional[str]) -> List[AdherenceRecord]:
        with self._lock:
            records = list(self._records.values())
        if provider_id is None:
            return records
        return [r for r in records if r.provider_id == provider_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
