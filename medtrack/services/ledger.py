"""
Dose ledger: the disposition record for every scheduled dose.

At most one entry exists per (prescription_id, scheduled_at). Recording again
overwrites the previous disposition so a mis-tap can be corrected; the
inventory is reconciled by the difference in consumed units inside the same
store transaction.
"""

from datetime import UTC, datetime, timedelta

from medtrack.domain.errors import OutOfWindow, TrackingError, UnknownPrescription
from medtrack.domain.models import Disposition, DoseLogEntry, Prescription
from medtrack.services.clock import Clock
from medtrack.services.inventory import InventoryProjector, dose_units
from medtrack.services.locks import KeyedLocks
from medtrack.services.results import Result, logger
from medtrack.services.schedule import is_scheduled_slot
from medtrack.services.store import PrescriptionStore

_TICK = timedelta(microseconds=1)


class DoseLedger:
    def __init__(
        self, store: PrescriptionStore, projector: InventoryProjector, clock: Clock
    ) -> None:
        self.store = store
        self.projector = projector
        self.clock = clock
        self.logger = logger.bind(component="dose_ledger")
        self._locks = KeyedLocks()

    async def get_disposition(
        self, prescription_id: str, scheduled_at: datetime
    ) -> DoseLogEntry | None:
        scheduled_at = _normalize(scheduled_at)
        entries = await self.store.load_dose_log(
            prescription_id, scheduled_at, scheduled_at + _TICK
        )
        return entries[0] if entries else None

    async def record_taken(
        self,
        prescription_id: str,
        scheduled_at: datetime,
        taken_at: datetime | None = None,
        actual_dosage: float | None = None,
        notes: str | None = None,
    ) -> Result[DoseLogEntry, Exception]:
        """Mark a scheduled dose as taken and decrement inventory with it."""
        scheduled_at = _normalize(scheduled_at)
        validated = await self._validate(prescription_id, scheduled_at)
        if validated.is_err():
            return Result.err(validated.unwrap_err())

        now = self.clock.now()
        entry = DoseLogEntry(
            prescription_id=prescription_id,
            scheduled_at=scheduled_at,
            disposition=Disposition.TAKEN,
            disposition_at=_normalize(taken_at) if taken_at is not None else now,
            actual_dosage=actual_dosage,
            notes=notes,
            recorded_at=now,
        )
        return await self._write(validated.unwrap(), entry)

    async def record_skipped(
        self, prescription_id: str, scheduled_at: datetime, reason: str | None = None
    ) -> Result[DoseLogEntry, Exception]:
        scheduled_at = _normalize(scheduled_at)
        validated = await self._validate(prescription_id, scheduled_at)
        if validated.is_err():
            return Result.err(validated.unwrap_err())

        now = self.clock.now()
        entry = DoseLogEntry(
            prescription_id=prescription_id,
            scheduled_at=scheduled_at,
            disposition=Disposition.SKIPPED,
            disposition_at=now,
            skip_reason=reason,
            recorded_at=now,
        )
        return await self._write(validated.unwrap(), entry)

    async def _validate(
        self, prescription_id: str, scheduled_at: datetime
    ) -> Result[Prescription, TrackingError]:
        prescription = await self.store.load_prescription(prescription_id)
        if prescription is None or not prescription.is_active:
            error: TrackingError = UnknownPrescription(prescription_id)
            self.logger.warning("dose_rejected", **error.to_log())
            return Result.err(error)

        try:
            scheduled = is_scheduled_slot(prescription, scheduled_at)
        except TrackingError as e:
            self.logger.warning("dose_rejected", **e.to_log())
            return Result.err(e)

        if not scheduled:
            error = OutOfWindow(prescription_id, scheduled_at)
            self.logger.warning("dose_rejected", **error.to_log())
            return Result.err(error)
        return Result.ok(prescription)

    async def _write(
        self, prescription: Prescription, entry: DoseLogEntry
    ) -> Result[DoseLogEntry, Exception]:
        async with self._locks.hold(entry.key):
            try:
                previous = await self.get_disposition(entry.prescription_id, entry.scheduled_at)
                delta = dose_units(entry, prescription) - dose_units(previous, prescription)

                async with self.store.transaction():
                    await self.store.save_dose_log(entry)
                    if delta > 0:
                        await self.projector.on_dose_taken(prescription.id, delta)
                    elif delta < 0:
                        await self.projector.on_dose_reverted(prescription.id, -delta)

            except Exception as e:
                self.logger.exception(
                    "dose_write_failed",
                    prescription_id=entry.prescription_id,
                    scheduled_at=entry.scheduled_at.isoformat(),
                    error=str(e),
                )
                return Result.err(e)

        self.logger.info(
            "dose_recorded",
            prescription_id=entry.prescription_id,
            scheduled_at=entry.scheduled_at.isoformat(),
            disposition=entry.disposition.value,
            overwrote=previous.disposition.value if previous is not None else None,
            inventory_delta=-delta,
        )
        return Result.ok(entry)


def _normalize(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        raise ValueError("Dose timestamps must be timezone-aware")
    return instant.astimezone(UTC)
