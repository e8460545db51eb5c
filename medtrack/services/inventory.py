"""
Inventory projection: stock on hand, low-stock and refill inference.

Inventory is best-effort bookkeeping. Over-consumption clamps the quantity at
zero and flags an anomaly on the record; it never blocks the dose write that
caused it. The units stock could not cover are kept as unbacked_units, and a
later correction of a taken dose cancels those before crediting any stock.
"""

from datetime import timedelta

from medtrack.domain.errors import InventoryNotTracked, TrackingError
from medtrack.domain.models import (
    Disposition,
    DoseLogEntry,
    InventoryRecord,
    InventoryStatus,
    Prescription,
)
from medtrack.services.clock import Clock
from medtrack.services.locks import KeyedLocks
from medtrack.services.results import Result, logger
from medtrack.services.store import PrescriptionStore


def dose_units(entry: DoseLogEntry | None, prescription: Prescription | None) -> float:
    """Inventory units a log entry consumed (0 unless taken)."""
    if entry is None or entry.disposition != Disposition.TAKEN:
        return 0.0
    if entry.actual_dosage is not None:
        return entry.actual_dosage
    return prescription.dosage.units_per_dose if prescription is not None else 1.0


class InventoryProjector:
    """Applies consumption and refills to inventory records and projects depletion."""

    def __init__(
        self,
        store: PrescriptionStore,
        clock: Clock,
        lookback_days: int = 7,
        refill_lead_days: int = 7,
    ) -> None:
        if lookback_days <= 0:
            raise ValueError("lookback_days must be positive")
        self.store = store
        self.clock = clock
        self.lookback_days = lookback_days
        self.refill_lead_days = refill_lead_days
        self.logger = logger.bind(component="inventory_projector")
        self._locks = KeyedLocks()

    async def on_dose_taken(
        self, prescription_id: str, quantity: float = 1.0
    ) -> InventoryRecord | None:
        """Decrement stock. Returns None when the prescription is not tracked."""
        if quantity < 0:
            raise ValueError("quantity must not be negative")

        async with self._locks.hold(prescription_id):
            record = await self.store.load_inventory(prescription_id)
            if record is None:
                self.logger.debug("inventory_untracked", prescription_id=prescription_id)
                return None

            remaining = record.current_quantity - quantity
            update: dict[str, object] = {"current_quantity": max(0.0, remaining)}
            if remaining < 0:
                now = self.clock.now()
                update.update(
                    anomaly_flag=True,
                    anomaly_detected_at=now,
                    anomaly_count=record.anomaly_count + 1,
                    unbacked_units=record.unbacked_units - remaining,
                )
                self.logger.warning(
                    "inventory_anomaly",
                    prescription_id=prescription_id,
                    requested=quantity,
                    available=record.current_quantity,
                    detected_at=now.isoformat(),
                )

            updated = record.model_copy(update=update)
            await self.store.save_inventory(updated)

        if updated.is_low_stock and not record.is_low_stock:
            self.logger.warning(
                "inventory_low_stock",
                prescription_id=prescription_id,
                current_quantity=updated.current_quantity,
                threshold=updated.low_stock_threshold,
            )
        return updated

    async def on_dose_reverted(
        self, prescription_id: str, quantity: float
    ) -> InventoryRecord | None:
        """
        Credit back units from a corrected 'taken' disposition.

        Units that were never deducted (see unbacked_units) are written off
        first, so a correction never creates stock.
        """
        if quantity < 0:
            raise ValueError("quantity must not be negative")

        async with self._locks.hold(prescription_id):
            record = await self.store.load_inventory(prescription_id)
            if record is None:
                return None
            written_off = min(quantity, record.unbacked_units)
            credited = quantity - written_off
            updated = record.model_copy(
                update={
                    "current_quantity": record.current_quantity + credited,
                    "unbacked_units": record.unbacked_units - written_off,
                }
            )
            await self.store.save_inventory(updated)

        self.logger.info(
            "inventory_dose_reverted",
            prescription_id=prescription_id,
            quantity=quantity,
            credited=credited,
        )
        return updated

    async def on_refill(
        self, prescription_id: str, quantity: float | None = None
    ) -> Result[InventoryRecord, TrackingError]:
        """Add stock; defaults to the record's refill increment. Clears the anomaly flag."""
        if quantity is not None and quantity <= 0:
            raise ValueError("refill quantity must be positive")

        async with self._locks.hold(prescription_id):
            record = await self.store.load_inventory(prescription_id)
            if record is None:
                error = InventoryNotTracked(prescription_id)
                self.logger.warning("refill_rejected", **error.to_log())
                return Result.err(error)

            added = quantity if quantity is not None else record.refill_quantity_increment
            updated = record.model_copy(
                update={
                    "current_quantity": record.current_quantity + added,
                    "last_refill_date": self.clock.now().date(),
                    "anomaly_flag": False,
                }
            )
            await self.store.save_inventory(updated)

        self.logger.info(
            "inventory_refilled",
            prescription_id=prescription_id,
            added=added,
            current_quantity=updated.current_quantity,
        )
        return Result.ok(updated)

    async def get_status(self, prescription_id: str) -> Result[InventoryStatus, TrackingError]:
        record = await self.store.load_inventory(prescription_id)
        if record is None:
            return Result.err(InventoryNotTracked(prescription_id))

        now = self.clock.now()
        prescription = await self.store.load_prescription(prescription_id)
        entries = await self.store.load_dose_log(
            prescription_id, now - timedelta(days=self.lookback_days), now
        )
        consumed = sum(dose_units(entry, prescription) for entry in entries)
        daily_rate = consumed / self.lookback_days

        projected = None
        if daily_rate > 0:
            projected = now + timedelta(days=record.current_quantity / daily_rate)

        needs_refill = record.is_low_stock or (
            projected is not None and projected <= now + timedelta(days=self.refill_lead_days)
        )

        return Result.ok(
            InventoryStatus(
                prescription_id=prescription_id,
                current_quantity=record.current_quantity,
                is_low_stock=record.is_low_stock,
                daily_consumption_rate=daily_rate,
                projected_depletion_at=projected,
                needs_refill=needs_refill,
                anomaly_flag=record.anomaly_flag,
            )
        )
