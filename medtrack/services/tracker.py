"""
Tracking service that wires scheduling, ledger, adherence and inventory.

This is the surface the dashboard, notification and export collaborators
pull from:
1. Register and discontinue prescriptions
2. Build a day's agenda with live dose statuses
3. Record what the patient did with each dose
4. Report adherence and low-stock / refill alerts

Nothing here runs on a timer; callers query on demand.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from medtrack.config import AppConfig, get_config
from medtrack.domain.errors import TrackingError, UnknownPrescription
from medtrack.domain.models import (
    AdherenceSummary,
    AdherenceTrend,
    DoseLogEntry,
    DoseStatus,
    InventoryRecord,
    InventoryStatus,
    Prescription,
    ScheduledDose,
)
from medtrack.services.adherence import AdherenceAggregator
from medtrack.services.clock import Clock, SystemClock
from medtrack.services.inventory import InventoryProjector
from medtrack.services.ledger import DoseLedger
from medtrack.services.results import Result, logger
from medtrack.services.schedule import WindowBound, expand, resolve_daily_slots
from medtrack.services.status import StatusClassifier
from medtrack.services.store import PrescriptionStore

_TICK = timedelta(microseconds=1)


class AgendaItem(BaseModel):
    dose: ScheduledDose
    medication_name: str
    dosage: str
    status: DoseStatus
    entry: DoseLogEntry | None = None


class AgendaSlot(BaseModel):
    """Doses sharing a local clock time, as the calendar view groups them."""

    local_time: str = Field(description="HH:MM in the prescription's timezone")
    items: list[AgendaItem]


class DaySummary(BaseModel):
    taken: int = 0
    skipped: int = 0
    overdue: int = 0
    pending: int = 0
    total: int = 0

    @property
    def adherence_ratio(self) -> float:
        return self.taken / self.total if self.total > 0 else 0.0


class DayAgenda(BaseModel):
    day: date
    slots: list[AgendaSlot]
    summary: DaySummary


@dataclass
class DoseReminder:
    """A dose the notification collaborator should remind about now."""

    prescription_id: str
    medication_name: str
    dosage: str
    scheduled_at: datetime
    status: DoseStatus
    minutes_until: float


class MedicationTracker:
    """Facade over the scheduling and adherence components for one store."""

    def __init__(
        self,
        store: PrescriptionStore,
        clock: Clock | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.config = config or get_config()
        self.store = store
        self.clock = clock or SystemClock()
        self.logger = logger.bind(component="medication_tracker")

        schedule = self.config.schedule
        self.projector = InventoryProjector(
            store,
            self.clock,
            lookback_days=self.config.inventory.consumption_lookback_days,
            refill_lead_days=self.config.inventory.refill_lead_days,
        )
        self.ledger = DoseLedger(store, self.projector, self.clock)
        self.aggregator = AdherenceAggregator(
            store, self.clock, schedule.due_window, schedule.overdue_grace
        )
        self.classifier = StatusClassifier(self.clock, schedule.due_window, schedule.overdue_grace)

    async def register_prescription(
        self, prescription: Prescription, inventory: InventoryRecord | None = None
    ) -> Result[Prescription, TrackingError]:
        """
        Validate the frequency and persist a new regimen (and its stock, if tracked).

        A prescription built without a timezone takes the configured default.
        """
        if inventory is not None and inventory.prescription_id != prescription.id:
            raise ValueError("inventory record belongs to a different prescription")
        if "timezone" not in prescription.model_fields_set:
            prescription = prescription.model_copy(
                update={"timezone": self.config.schedule.default_timezone}
            )

        try:
            resolve_daily_slots(prescription.frequency)
        except TrackingError as e:
            self.logger.warning(
                "prescription_rejected", prescription_id=prescription.id, **e.to_log()
            )
            return Result.err(e)

        async with self.store.transaction():
            await self.store.save_prescription(prescription)
            if inventory is not None:
                await self.store.save_inventory(inventory)

        self.logger.info(
            "prescription_registered",
            prescription_id=prescription.id,
            medication=prescription.medication.name,
            inventory_tracked=inventory is not None,
        )
        return Result.ok(prescription)

    def new_inventory(self, prescription_id: str, quantity: float) -> InventoryRecord:
        """InventoryRecord with the configured threshold and refill size."""
        return InventoryRecord(
            prescription_id=prescription_id,
            current_quantity=quantity,
            low_stock_threshold=self.config.inventory.default_low_stock_threshold,
            refill_quantity_increment=self.config.inventory.default_refill_quantity,
            last_refill_date=self.clock.now().date(),
        )

    async def deactivate_prescription(
        self, prescription_id: str, end_date: date | None = None
    ) -> Result[Prescription, TrackingError]:
        """Discontinue a regimen. History up to end_date stays in reports."""
        prescription = await self.store.load_prescription(prescription_id)
        if prescription is None:
            return Result.err(UnknownPrescription(prescription_id))

        end = end_date or self.clock.now().astimezone(prescription.tz).date()
        if prescription.end_date is not None:
            end = min(end, prescription.end_date)
        if end < prescription.start_date:
            # Never started: no history to keep
            updated = prescription.model_copy(update={"is_active": False, "end_date": None})
        else:
            updated = prescription.model_copy(update={"is_active": False, "end_date": end})

        await self.store.save_prescription(updated)
        self.logger.info(
            "prescription_deactivated",
            prescription_id=prescription_id,
            end_date=updated.end_date.isoformat() if updated.end_date else None,
        )
        return Result.ok(updated)

    async def daily_agenda(self, patient_id: str, day: date) -> Result[DayAgenda, TrackingError]:
        now = self.clock.now()
        slots: dict[str, list[AgendaItem]] = {}
        summary = DaySummary()

        for prescription in await self.store.load_prescriptions(patient_id):
            try:
                doses = list(expand(prescription, day, day))
            except TrackingError as e:
                self.logger.warning("agenda_failed", prescription_id=prescription.id, **e.to_log())
                return Result.err(e)
            if not doses:
                continue

            entries = await self._entries_for(prescription.id, doses)
            for dose in doses:
                entry = entries.get(dose.scheduled_at)
                status = self.classifier.classify(dose, entry, now)
                local_time = dose.scheduled_at.astimezone(prescription.tz).strftime("%H:%M")
                slots.setdefault(local_time, []).append(
                    AgendaItem(
                        dose=dose,
                        medication_name=prescription.medication.name,
                        dosage=str(prescription.dosage),
                        status=status,
                        entry=entry,
                    )
                )
                _tally(summary, status)

        agenda = DayAgenda(
            day=day,
            slots=[AgendaSlot(local_time=t, items=slots[t]) for t in sorted(slots)],
            summary=summary,
        )
        return Result.ok(agenda)

    async def due_reminders(self, patient_id: str) -> Result[list[DoseReminder], TrackingError]:
        """Doses currently due, or overdue within the reminder grace period."""
        now = self.clock.now()
        window_start = now - self.config.schedule.reminder_grace
        window_end = now + self.classifier.due_window + _TICK
        reminders: list[DoseReminder] = []

        for prescription in await self.store.load_prescriptions(patient_id):
            if not prescription.is_active:
                continue
            try:
                doses = list(expand(prescription, window_start, window_end))
            except TrackingError as e:
                return Result.err(e)

            entries = await self._entries_for(prescription.id, doses)
            for dose in doses:
                status = self.classifier.classify(dose, entries.get(dose.scheduled_at), now)
                if status not in (DoseStatus.DUE, DoseStatus.OVERDUE):
                    continue
                reminders.append(
                    DoseReminder(
                        prescription_id=prescription.id,
                        medication_name=prescription.medication.name,
                        dosage=str(prescription.dosage),
                        scheduled_at=dose.scheduled_at,
                        status=status,
                        minutes_until=(dose.scheduled_at - now).total_seconds() / 60,
                    )
                )

        reminders.sort(key=lambda r: r.scheduled_at)
        self.logger.debug("reminders_polled", patient_id=patient_id, count=len(reminders))
        return Result.ok(reminders)

    async def record_taken(
        self,
        prescription_id: str,
        scheduled_at: datetime,
        taken_at: datetime | None = None,
        actual_dosage: float | None = None,
        notes: str | None = None,
    ) -> Result[DoseLogEntry, Exception]:
        return await self.ledger.record_taken(
            prescription_id, scheduled_at, taken_at, actual_dosage, notes
        )

    async def record_skipped(
        self, prescription_id: str, scheduled_at: datetime, reason: str | None = None
    ) -> Result[DoseLogEntry, Exception]:
        return await self.ledger.record_skipped(prescription_id, scheduled_at, reason)

    async def record_refill(
        self, prescription_id: str, quantity: float | None = None
    ) -> Result[InventoryRecord, TrackingError]:
        return await self.projector.on_refill(prescription_id, quantity)

    async def adherence_report(
        self, patient_id: str, window_start: WindowBound, window_end: WindowBound
    ) -> Result[AdherenceSummary, TrackingError]:
        prescriptions = await self.store.load_prescriptions(patient_id)
        return await self.aggregator.compute_adherence(
            [p.id for p in prescriptions], window_start, window_end
        )

    async def weekly_trend(
        self, patient_id: str, end_day: date | None = None
    ) -> Result[AdherenceTrend, TrackingError]:
        prescriptions = await self.store.load_prescriptions(patient_id)
        if end_day is None:
            # Today as the patient sees it
            zone = ZoneInfo(self.config.schedule.default_timezone)
            if prescriptions:
                zone = prescriptions[0].tz
            end_day = self.clock.now().astimezone(zone).date()
        return await self.aggregator.weekly_trend([p.id for p in prescriptions], end_day)

    async def inventory_status(
        self, prescription_id: str
    ) -> Result[InventoryStatus, TrackingError]:
        return await self.projector.get_status(prescription_id)

    async def low_stock_alerts(self, patient_id: str) -> list[InventoryStatus]:
        """Tracked inventories that are low or projected to run out soon."""
        alerts: list[InventoryStatus] = []
        for prescription in await self.store.load_prescriptions(patient_id):
            if not prescription.is_active:
                continue
            status = await self.projector.get_status(prescription.id)
            if status.is_ok() and status.unwrap().needs_refill:
                alerts.append(status.unwrap())

        if alerts:
            self.logger.info("low_stock_alerts", patient_id=patient_id, count=len(alerts))
        return alerts

    async def _entries_for(
        self, prescription_id: str, doses: list[ScheduledDose]
    ) -> dict[datetime, DoseLogEntry]:
        if not doses:
            return {}
        entries = await self.store.load_dose_log(
            prescription_id, doses[0].scheduled_at, doses[-1].scheduled_at + _TICK
        )
        return {entry.scheduled_at: entry for entry in entries}


def _tally(summary: DaySummary, status: DoseStatus) -> None:
    summary.total += 1
    if status == DoseStatus.TAKEN:
        summary.taken += 1
    elif status == DoseStatus.SKIPPED:
        summary.skipped += 1
    elif status == DoseStatus.OVERDUE:
        summary.overdue += 1
    else:
        summary.pending += 1
