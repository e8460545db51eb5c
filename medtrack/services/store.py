"""
Persistence collaborator protocol.

The core owns no state; prescriptions, dose logs and inventory live behind
this interface. Calls are async because real stores may suspend the calling
task. Single-record reads and writes are assumed atomic.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Protocol

from medtrack.domain.models import DoseLogEntry, InventoryRecord, Prescription


class PrescriptionStore(Protocol):
    async def load_prescriptions(self, patient_id: str) -> list[Prescription]: ...

    async def load_prescription(self, prescription_id: str) -> Prescription | None: ...

    async def save_prescription(self, prescription: Prescription) -> None: ...

    async def load_dose_log(
        self, prescription_id: str, start: datetime, end: datetime
    ) -> list[DoseLogEntry]:
        """Entries with start <= scheduled_at < end."""
        ...

    async def save_dose_log(self, entry: DoseLogEntry) -> None:
        """Upsert keyed by (prescription_id, scheduled_at)."""
        ...

    async def load_inventory(self, prescription_id: str) -> InventoryRecord | None: ...

    async def save_inventory(self, record: InventoryRecord) -> None: ...

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Writes inside the block commit together or not at all."""
        ...
