# -*- coding: utf-8 -*-
"""
Credit Ledger

The engine's persistence boundary. :class:`CreditLedger` is the protocol a
durable store must satisfy; :class:`InMemoryCreditLedger` is a thread-safe
implementation for tests and local runs.

Operations:
    create(record)                  -> stores a new record
    get_by_id(credit_id)            -> record, or CreditNotFoundError
    update(record)                  -> replaces an existing record
    list_by_project(project_id, n)  -> newest first

Records are never deleted.

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Protocol, Tuple, runtime_checkable

from carbon_credits.exceptions import CreditNotFoundError, LedgerError
from carbon_credits.models import CreditRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class CreditLedger(Protocol):
    """Durable store of credit records used by the engine."""

    def create(self, record: CreditRecord) -> CreditRecord:
        """Store a new record.

        Raises:
            LedgerError: If the record cannot be stored.
        """
        ...

    def get_by_id(self, credit_id: str) -> CreditRecord:
        """Fetch a record.

        Raises:
            CreditNotFoundError: If no record has ``credit_id``.
            LedgerError: On storage failure.
        """
        ...

    def update(self, record: CreditRecord) -> CreditRecord:
        """Replace an existing record.

        Raises:
            LedgerError: If the record does not exist or cannot be stored.
        """
        ...

    def list_by_project(self, project_id: str, limit: int) -> List[CreditRecord]:
        """Return up to ``limit`` records for a project, newest first."""
        ...


class InMemoryCreditLedger:
    """Thread-safe in-memory CreditLedger.

    Stores and returns deep copies so callers cannot mutate ledger state
    without going through :meth:`update`.

    Example:
        >>> ledger = InMemoryCreditLedger()
        >>> len(ledger)
        0
    """

    def __init__(self) -> None:
        self._records: Dict[str, Tuple[int, CreditRecord]] = {}
        self._sequence = 0
        self._lock = threading.RLock()

    def create(self, record: CreditRecord) -> CreditRecord:
        with self._lock:
            if record.id in self._records:
                raise LedgerError(
                    f"credit already exists: {record.id}",
                    operation="create",
                    credit_id=record.id,
                )
            self._sequence += 1
            self._records[record.id] = (
                self._sequence, record.model_copy(deep=True),
            )
        logger.debug(
            "Ledger create: id=%s project=%s status=%s",
            record.id, record.project_id, record.status.value,
        )
        return record.model_copy(deep=True)

    def get_by_id(self, credit_id: str) -> CreditRecord:
        with self._lock:
            entry = self._records.get(credit_id)
            if entry is None:
                raise CreditNotFoundError(credit_id)
            return entry[1].model_copy(deep=True)

    def update(self, record: CreditRecord) -> CreditRecord:
        with self._lock:
            entry = self._records.get(record.id)
            if entry is None:
                raise LedgerError(
                    f"cannot update unknown credit: {record.id}",
                    operation="update",
                    credit_id=record.id,
                )
            self._records[record.id] = (
                entry[0], record.model_copy(deep=True),
            )
        logger.debug(
            "Ledger update: id=%s status=%s", record.id, record.status.value,
        )
        return record.model_copy(deep=True)

    def list_by_project(self, project_id: str, limit: int) -> List[CreditRecord]:
        with self._lock:
            matches = [
                entry for entry in self._records.values()
                if entry[1].project_id == project_id
            ]
        # newest created_at first; later insertion first on ties
        matches.sort(key=lambda e: (e[1].created_at, e[0]), reverse=True)
        if limit > 0:
            matches = matches[:limit]
        return [record.model_copy(deep=True) for _, record in matches]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
