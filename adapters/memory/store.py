"""
In-memory implementation of the PrescriptionStore protocol.

Used by the demo and the test suite, and as the reference for real adapters:
- dose log upserts keyed by (prescription_id, scheduled_at)
- transactions journal the previous value of every key they touch and put
  those values back if the block raises, leaving other writers' keys alone
- a key another writer has overwritten since this transaction's write is
  left as that writer saved it. Rollback does not merge concurrent changes
  to one key, so per-key write serialization stays the caller's job
- optional latency so concurrent callers genuinely interleave
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

import structlog

from medtrack.domain.models import DoseLogEntry, InventoryRecord, Prescription

logger = structlog.get_logger(__name__)

_MISSING = object()

# Journal of the transaction running in the current task:
# (table, key) -> (value before the transaction, value it last wrote)
_Journal = dict[tuple[str, Any], tuple[Any, Any]]
_journal: ContextVar[_Journal | None] = ContextVar("_journal", default=None)


class InMemoryStore:
    def __init__(self, latency_seconds: float = 0.0) -> None:
        self.latency_seconds = latency_seconds
        self._tables: dict[str, dict[Any, Any]] = {
            "prescriptions": {},
            "dose_log": {},
            "inventory": {},
        }
        self.logger = logger.bind(component="memory_store")

    async def load_prescriptions(self, patient_id: str) -> list[Prescription]:
        await self._io()
        return [p for p in self._tables["prescriptions"].values() if p.patient_id == patient_id]

    async def load_prescription(self, prescription_id: str) -> Prescription | None:
        await self._io()
        return self._tables["prescriptions"].get(prescription_id)

    async def save_prescription(self, prescription: Prescription) -> None:
        await self._io()
        self._put("prescriptions", prescription.id, prescription)

    async def load_dose_log(
        self, prescription_id: str, start: datetime, end: datetime
    ) -> list[DoseLogEntry]:
        await self._io()
        entries = [
            entry
            for (pid, scheduled_at), entry in self._tables["dose_log"].items()
            if pid == prescription_id and start <= scheduled_at < end
        ]
        return sorted(entries, key=lambda e: e.scheduled_at)

    async def save_dose_log(self, entry: DoseLogEntry) -> None:
        await self._io()
        self._put("dose_log", (entry.prescription_id, entry.scheduled_at.astimezone(UTC)), entry)

    async def load_inventory(self, prescription_id: str) -> InventoryRecord | None:
        await self._io()
        return self._tables["inventory"].get(prescription_id)

    async def save_inventory(self, record: InventoryRecord) -> None:
        await self._io()
        self._put("inventory", record.prescription_id, record)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if _journal.get() is not None:
            # Nested blocks join the outer transaction
            yield
            return

        journal: _Journal = {}
        token = _journal.set(journal)
        try:
            yield
        except BaseException:
            superseded = 0
            for (table, key), (previous, written) in journal.items():
                if self._tables[table].get(key, _MISSING) is not written:
                    superseded += 1
                    continue
                if previous is _MISSING:
                    self._tables[table].pop(key, None)
                else:
                    self._tables[table][key] = previous
            self.logger.warning(
                "transaction_rolled_back", keys=len(journal), superseded=superseded
            )
            raise
        finally:
            _journal.reset(token)

    def dose_log_count(self, prescription_id: str | None = None) -> int:
        """Number of stored dose log rows, optionally for one prescription."""
        return sum(
            1 for pid, _ in self._tables["dose_log"] if prescription_id in (None, pid)
        )

    def _put(self, table: str, key: Any, value: Any) -> None:
        journal = _journal.get()
        if journal is not None:
            previous = self._tables[table].get(key, _MISSING)
            if (table, key) in journal:
                previous = journal[(table, key)][0]
            journal[(table, key)] = (previous, value)
        self._tables[table][key] = value

    async def _io(self) -> None:
        await asyncio.sleep(self.latency_seconds)
