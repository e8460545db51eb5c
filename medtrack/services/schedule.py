"""
Schedule expansion: prescription + window -> ordered scheduled doses.

Window convention:
- datetime bounds are half-open [start, end) in absolute time and must be aware
- date bounds are whole local days in the prescription's timezone, inclusive
  on both ends (date d covers local [d 00:00, d+1 00:00))

A dosing day is the 24h cycle a slot belongs to. For fixed clock times it is
the calendar day. For interval schedules it starts at first_dose_time, so
"every 8 hours from 08:00" on day D yields D 08:00, D 16:00 and D+1 00:00.
Every dosing day therefore carries the same number of slots, and the ledger
can key on (prescription_id, scheduled_at) because expansion is deterministic.
"""

import math
from collections.abc import Iterator
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from medtrack.domain.errors import InvalidFrequency
from medtrack.domain.models import FrequencyKind, FrequencySpec, Prescription, ScheduledDose
from medtrack.services.results import logger

_DAY = timedelta(days=1)
_TICK = timedelta(microseconds=1)

WindowBound = date | datetime


def resolve_daily_slots(frequency: FrequencySpec) -> list[timedelta]:
    """
    Resolve a frequency into slot offsets from the dosing day's local midnight.

    Raises:
        InvalidFrequency: if the frequency yields no slots.
    """
    if not frequency.days_of_week:
        raise InvalidFrequency("Frequency is not taken on any day of the week")

    if frequency.kind == FrequencyKind.FIXED_TIMES:
        offsets = sorted({_since_midnight(t) for t in frequency.times})
        if not offsets:
            raise InvalidFrequency(
                "Fixed-time frequency has no dose times", kind=frequency.kind.value
            )
        return offsets

    interval = frequency.interval_hours
    if interval is None or not math.isfinite(interval) or interval <= 0 or interval > 24:
        raise InvalidFrequency(
            f"Interval must be within (0, 24] hours, got {interval}", kind=frequency.kind.value
        )
    if frequency.first_dose_time is None:
        raise InvalidFrequency(
            "Interval frequency needs a first dose time", kind=frequency.kind.value
        )

    first = _since_midnight(frequency.first_dose_time)
    step = timedelta(hours=interval)
    slot_count = math.ceil(24 / interval)
    return [first + step * k for k in range(slot_count) if step * k < _DAY]


def window_bounds(
    prescription: Prescription, window_start: WindowBound, window_end: WindowBound
) -> tuple[datetime, datetime]:
    """Normalize a query window to half-open aware UTC bounds."""
    return zone_window_bounds(prescription.tz, window_start, window_end)


def zone_window_bounds(
    tz: ZoneInfo, window_start: WindowBound, window_end: WindowBound
) -> tuple[datetime, datetime]:
    """window_bounds with date bounds read in an explicit timezone."""
    start = _to_instant(window_start, tz, end_of_day=False)
    end = _to_instant(window_end, tz, end_of_day=True)
    if start > end:
        raise ValueError(f"window_start {start.isoformat()} is after window_end {end.isoformat()}")
    return start, end


def expand(
    prescription: Prescription, window_start: WindowBound, window_end: WindowBound
) -> Iterator[ScheduledDose]:
    """
    Scheduled doses of a prescription inside a window, ordered by time.

    The frequency is resolved eagerly so InvalidFrequency surfaces at call
    time; the doses themselves are generated lazily.
    """
    slots = resolve_daily_slots(prescription.frequency)
    start, end = window_bounds(prescription, window_start, window_end)
    if start == end or (not prescription.is_active and prescription.end_date is None):
        return iter(())
    return _generate(prescription, slots, start, end)


def is_scheduled_slot(prescription: Prescription, scheduled_at: datetime) -> bool:
    """True if the expander would produce exactly this timestamp."""
    if scheduled_at.tzinfo is None:
        return False
    return any(
        dose.scheduled_at == scheduled_at
        for dose in expand(prescription, scheduled_at, scheduled_at + _TICK)
    )


def _generate(
    prescription: Prescription, slots: list[timedelta], start: datetime, end: datetime
) -> Iterator[ScheduledDose]:
    tz = prescription.tz
    frequency = prescription.frequency

    # A dosing day can reach into the next calendar day, so start one day early
    first_day = max(start.astimezone(tz).date() - _DAY, prescription.start_date)
    last_day = end.astimezone(tz).date()
    if prescription.end_date is not None:
        last_day = min(last_day, prescription.end_date)

    regimen_began = (
        datetime.combine(prescription.start_date, prescription.start_time)
        if prescription.start_time is not None
        else None
    )

    day = first_day
    while day <= last_day:
        if day.isoweekday() in frequency.days_of_week:
            midnight = datetime.combine(day, time(0))
            instants: list[datetime] = []
            for offset in slots:
                local = midnight + offset
                if regimen_began is not None and day == prescription.start_date:
                    if local < regimen_began:
                        continue
                instant = local.replace(tzinfo=tz).astimezone(UTC)
                if start <= instant < end and instant not in instants:
                    instants.append(instant)

            # DST gaps can reorder wall-clock slots once converted
            for instant in sorted(instants):
                yield ScheduledDose(
                    prescription_id=prescription.id, scheduled_at=instant, schedule_date=day
                )
        day += _DAY

    logger.debug(
        "schedule_expanded",
        prescription_id=prescription.id,
        window_start=start.isoformat(),
        window_end=end.isoformat(),
    )


def _since_midnight(t: time) -> timedelta:
    return timedelta(hours=t.hour, minutes=t.minute, seconds=t.second, microseconds=t.microsecond)


def _to_instant(bound: WindowBound, tz: ZoneInfo, end_of_day: bool) -> datetime:
    if isinstance(bound, datetime):
        if bound.tzinfo is None:
            raise ValueError("Window datetimes must be timezone-aware")
        return bound.astimezone(UTC)
    day = bound + _DAY if end_of_day else bound
    return datetime.combine(day, time(0), tzinfo=tz).astimezone(UTC)
