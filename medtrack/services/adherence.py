"""
Adherence aggregation over arbitrary windows.

Every expanded dose in the window counts toward total_scheduled. Doses are
classified at min(window end + overdue_grace, now): a window that closed
long enough ago has no pending doses left, and a past dose with no
disposition is overdue and lowers the ratio until the patient logs it.
"""

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from statistics import mean
from typing import Literal
from zoneinfo import ZoneInfo

from medtrack.domain.errors import TrackingError, UnknownPrescription
from medtrack.domain.models import (
    AdherenceSummary,
    AdherenceTrend,
    DailyAdherence,
    DoseStatus,
    PrescriptionAdherence,
)
from medtrack.services.clock import Clock
from medtrack.services.results import Result, logger
from medtrack.services.schedule import WindowBound, expand, window_bounds, zone_window_bounds
from medtrack.services.status import DEFAULT_DUE_WINDOW, DEFAULT_OVERDUE_GRACE, classify
from medtrack.services.store import PrescriptionStore

# Half-to-half change in mean daily ratio that counts as a trend
TREND_TOLERANCE = 0.05


class AdherenceAggregator:
    def __init__(
        self,
        store: PrescriptionStore,
        clock: Clock,
        due_window: timedelta = DEFAULT_DUE_WINDOW,
        overdue_grace: timedelta = DEFAULT_OVERDUE_GRACE,
    ) -> None:
        self.store = store
        self.clock = clock
        self.due_window = due_window
        self.overdue_grace = overdue_grace
        self.logger = logger.bind(component="adherence_aggregator")

    async def compute_adherence(
        self,
        prescription_ids: Sequence[str],
        window_start: WindowBound,
        window_end: WindowBound,
    ) -> Result[AdherenceSummary, TrackingError]:
        now = self.clock.now()
        daily: dict[date, DailyAdherence] = {}
        per_prescription: list[PrescriptionAdherence] = []
        starts: list[datetime] = []
        ends: list[datetime] = []

        for prescription_id in dict.fromkeys(prescription_ids):
            prescription = await self.store.load_prescription(prescription_id)
            if prescription is None:
                error = UnknownPrescription(prescription_id)
                self.logger.warning("adherence_rejected", **error.to_log())
                return Result.err(error)

            try:
                start, end = window_bounds(prescription, window_start, window_end)
                doses = list(expand(prescription, start, end))
            except TrackingError as e:
                self.logger.warning("adherence_rejected", **e.to_log())
                return Result.err(e)

            starts.append(start)
            ends.append(end)
            evaluated_at = min(end + self.overdue_grace, now)
            entries = {
                entry.scheduled_at: entry
                for entry in await self.store.load_dose_log(prescription_id, start, end)
            }

            tally = PrescriptionAdherence(
                prescription_id=prescription_id, medication_name=prescription.medication.name
            )
            for dose in doses:
                entry = entries.get(dose.scheduled_at)
                status = classify(dose, entry, evaluated_at, self.due_window, self.overdue_grace)
                day = daily.setdefault(dose.schedule_date, DailyAdherence(day=dose.schedule_date))
                _count(tally, status)
                _count(day, status)

            per_prescription.append(tally)

        if not starts:
            # No prescriptions: report the window itself, date bounds read as UTC
            start, end = zone_window_bounds(ZoneInfo("UTC"), window_start, window_end)
            starts.append(start)
            ends.append(end)

        taken = sum(p.taken_count for p in per_prescription)
        skipped = sum(p.skipped_count for p in per_prescription)
        overdue = sum(p.overdue_count for p in per_prescription)
        total = sum(p.total_scheduled for p in per_prescription)

        summary = AdherenceSummary(
            window_start=min(starts),
            window_end=max(ends),
            evaluated_at=min(max(ends) + self.overdue_grace, now),
            taken_count=taken,
            skipped_count=skipped,
            overdue_count=overdue,
            pending_count=total - taken - skipped - overdue,
            total_scheduled=total,
            daily_breakdown=[daily[d] for d in sorted(daily)],
            by_prescription=per_prescription,
        )

        self.logger.info(
            "adherence_computed",
            prescriptions=len(per_prescription),
            total_scheduled=summary.total_scheduled,
            adherence_ratio=round(summary.adherence_ratio, 4),
        )
        return Result.ok(summary)

    async def weekly_trend(
        self, prescription_ids: Sequence[str], end_day: date, days: int = 7
    ) -> Result[AdherenceTrend, TrackingError]:
        """Per-day adherence for the `days` days ending on end_day, with its direction."""
        if days <= 0:
            raise ValueError("days must be positive")

        result = await self.compute_adherence(
            prescription_ids, end_day - timedelta(days=days - 1), end_day
        )
        if result.is_err():
            return Result.err(result.unwrap_err())

        daily = result.unwrap().daily_breakdown
        ratios = [d.adherence_ratio for d in daily]
        return Result.ok(
            AdherenceTrend(
                daily=daily,
                average_ratio=mean(ratios) if ratios else 0.0,
                direction=_direction(ratios),
            )
        )


def _count(tally: DailyAdherence | PrescriptionAdherence, status: DoseStatus) -> None:
    tally.total_scheduled += 1
    if status == DoseStatus.TAKEN:
        tally.taken_count += 1
    elif status == DoseStatus.SKIPPED:
        tally.skipped_count += 1
    elif status == DoseStatus.OVERDUE:
        tally.overdue_count += 1


def _direction(ratios: list[float]) -> Literal["improving", "stable", "declining"]:
    if len(ratios) < 2:
        return "stable"
    half = len(ratios) // 2
    change = mean(ratios[-half:]) - mean(ratios[:half])
    if change > TREND_TOLERANCE:
        return "improving"
    if change < -TREND_TOLERANCE:
        return "declining"
    return "stable"
