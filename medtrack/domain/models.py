"""
Domain models for medication scheduling and adherence tracking.

These models represent the core business concepts and are framework-agnostic.
Records are immutable; services produce updated copies and hand them to the
persistence collaborator.
"""

import re
from datetime import UTC, date, datetime, time
from enum import Enum
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from medtrack.domain.errors import InvalidFrequency

ALL_WEEKDAYS: frozenset[int] = frozenset(range(1, 8))  # ISO weekdays, Monday=1

_PRESET_TIMES: dict[str, list[time]] = {
    "once_daily": [time(8, 0)],
    "twice_daily": [time(8, 0), time(20, 0)],
    "three_times_daily": [time(8, 0), time(14, 0), time(20, 0)],
    "four_times_daily": [time(8, 0), time(12, 0), time(16, 0), time(20, 0)],
}
_INTERVAL_PRESET = re.compile(r"^every_(\d+(?:\.\d+)?)_hours?$")


class MedicationForm(str, Enum):
    """Physical forms a medication is dispensed in."""

    TABLET = "tablet"
    CAPSULE = "capsule"
    LIQUID = "liquid"
    INJECTION = "injection"
    INHALER = "inhaler"
    PATCH = "patch"
    CREAM = "cream"
    DROPS = "drops"
    OTHER = "other"


class FrequencyKind(str, Enum):
    FIXED_TIMES = "fixed_times"
    INTERVAL = "interval"


class Disposition(str, Enum):
    """What the patient did with a scheduled dose."""

    TAKEN = "taken"
    SKIPPED = "skipped"
    NONE = "none"


class DoseStatus(str, Enum):
    """Classified state of a scheduled dose at a point in time."""

    TAKEN = "taken"
    SKIPPED = "skipped"
    OVERDUE = "overdue"
    DUE = "due"
    PENDING = "pending"


class Medication(BaseModel):
    """Catalog reference data. Never mutated by the core."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(min_length=1)
    form: MedicationForm = MedicationForm.TABLET
    default_strength: str | None = Field(None, description="e.g. '10mg'")


class Dosage(BaseModel):
    model_config = ConfigDict(frozen=True)

    strength: float = Field(gt=0.0)
    unit: str = Field(min_length=1, description="e.g. mg, ml, IU")
    units_per_dose: float = Field(
        default=1.0, gt=0.0, description="Inventory units consumed per dose (pills, puffs, ...)"
    )

    def __str__(self) -> str:
        return f"{self.strength:g}{self.unit}"


class FrequencySpec(BaseModel):
    """
    How often a prescription is taken.

    Either a list of local clock times (fixed_times) or a cadence of
    interval_hours starting at first_dose_time (interval). Resolution to
    concrete slots happens at expansion time so that a stored, malformed
    frequency surfaces as InvalidFrequency instead of failing on load.
    """

    model_config = ConfigDict(frozen=True)

    kind: FrequencyKind
    times: list[time] = Field(default_factory=list)
    interval_hours: float | None = None
    first_dose_time: time | None = None
    days_of_week: frozenset[int] = Field(default=ALL_WEEKDAYS)
    label: str | None = Field(None, description="Preset name the frequency was built from")

    @field_validator("days_of_week")
    @classmethod
    def validate_weekdays(cls, v: frozenset[int]) -> frozenset[int]:
        if any(day < 1 or day > 7 for day in v):
            raise ValueError("days_of_week must contain ISO weekdays 1-7")
        return v

    @classmethod
    def daily_at(cls, *times: time, days_of_week: frozenset[int] = ALL_WEEKDAYS) -> "FrequencySpec":
        return cls(kind=FrequencyKind.FIXED_TIMES, times=list(times), days_of_week=days_of_week)

    @classmethod
    def every(
        cls, hours: float, starting: time = time(8, 0), days_of_week: frozenset[int] = ALL_WEEKDAYS
    ) -> "FrequencySpec":
        return cls(
            kind=FrequencyKind.INTERVAL,
            interval_hours=hours,
            first_dose_time=starting,
            days_of_week=days_of_week,
        )

    @classmethod
    def from_preset(
        cls,
        name: str,
        first_dose_time: time = time(8, 0),
        days_of_week: frozenset[int] = ALL_WEEKDAYS,
    ) -> "FrequencySpec":
        """Build from the dashboard's frequency presets (once_daily, every_8_hours, ...)."""
        key = name.strip().lower()
        if key in _PRESET_TIMES:
            return cls(
                kind=FrequencyKind.FIXED_TIMES,
                times=_PRESET_TIMES[key],
                days_of_week=days_of_week,
                label=key,
            )

        match = _INTERVAL_PRESET.match(key)
        if match:
            return cls(
                kind=FrequencyKind.INTERVAL,
                interval_hours=float(match.group(1)),
                first_dose_time=first_dose_time,
                days_of_week=days_of_week,
                label=key,
            )

        if key == "as_needed":
            raise InvalidFrequency("as_needed medication has no schedule", preset=key)
        raise InvalidFrequency(f"Unknown frequency preset: {name}", preset=name)


class Prescription(BaseModel):
    """A patient's medication regimen."""

    model_config = ConfigDict(frozen=True)

    id: str
    patient_id: str
    medication: Medication
    dosage: Dosage
    frequency: FrequencySpec
    start_date: date
    start_time: time | None = Field(
        None, description="Local time the regimen began on start_date; earlier slots are dropped"
    )
    end_date: date | None = None
    is_active: bool = True
    prescriber: str | None = None
    timezone: str = "UTC"
    refills_remaining: int = Field(default=0, ge=0)
    instructions: str | None = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def end_not_before_start(self) -> "Prescription":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def is_active_on(self, day: date) -> bool:
        """Discontinued regimens keep their history up to end_date."""
        if day < self.start_date:
            return False
        if self.end_date is None:
            return self.is_active
        return day <= self.end_date


class ScheduledDose(BaseModel):
    """A computed point in time when a dose is due. Never persisted."""

    model_config = ConfigDict(frozen=True)

    prescription_id: str
    scheduled_at: datetime
    schedule_date: date = Field(description="Dosing day this slot belongs to")

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.prescription_id, self.scheduled_at)


class DoseLogEntry(BaseModel):
    """Persisted disposition of one scheduled dose."""

    model_config = ConfigDict(frozen=True)

    prescription_id: str
    scheduled_at: datetime
    disposition: Disposition = Disposition.NONE
    disposition_at: datetime | None = None
    actual_dosage: float | None = Field(
        None, ge=0.0, description="Units actually taken when it differs from the prescription"
    )
    notes: str | None = None
    skip_reason: str | None = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.prescription_id, self.scheduled_at)


class InventoryRecord(BaseModel):
    """Stock on hand for one prescription."""

    model_config = ConfigDict(frozen=True)

    prescription_id: str
    current_quantity: float = Field(ge=0.0)
    low_stock_threshold: float = Field(default=7.0, ge=0.0)
    last_refill_date: date | None = None
    refill_quantity_increment: float = Field(default=30.0, gt=0.0)

    # Over-consumption bookkeeping; never blocks a dose write
    anomaly_flag: bool = False
    anomaly_detected_at: datetime | None = None
    anomaly_count: int = Field(default=0, ge=0)
    unbacked_units: float = Field(
        default=0.0, ge=0.0, description="Units recorded as taken that stock could not cover"
    )

    @computed_field(return_type=bool)
    def is_low_stock(self) -> bool:
        return self.current_quantity <= self.low_stock_threshold


class InventoryStatus(BaseModel):
    prescription_id: str
    current_quantity: float
    is_low_stock: bool
    daily_consumption_rate: float = Field(ge=0.0)
    projected_depletion_at: datetime | None = None
    needs_refill: bool = False
    anomaly_flag: bool = False


class DailyAdherence(BaseModel):
    day: date
    taken_count: int = 0
    skipped_count: int = 0
    overdue_count: int = 0
    total_scheduled: int = 0

    @computed_field(return_type=float)
    def adherence_ratio(self) -> float:
        return self.taken_count / self.total_scheduled if self.total_scheduled > 0 else 0.0


class PrescriptionAdherence(BaseModel):
    prescription_id: str
    medication_name: str
    taken_count: int = 0
    skipped_count: int = 0
    overdue_count: int = 0
    total_scheduled: int = 0

    @computed_field(return_type=float)
    def adherence_ratio(self) -> float:
        return self.taken_count / self.total_scheduled if self.total_scheduled > 0 else 0.0


class AdherenceSummary(BaseModel):
    """Adherence tallies over a window; plain data for report collaborators."""

    window_start: datetime
    window_end: datetime
    evaluated_at: datetime
    taken_count: int = 0
    skipped_count: int = 0
    overdue_count: int = Field(default=0, description="Past doses with no disposition (missed)")
    pending_count: int = Field(default=0, description="Doses not yet past their time")
    total_scheduled: int = 0
    daily_breakdown: list[DailyAdherence] = Field(default_factory=list)
    by_prescription: list[PrescriptionAdherence] = Field(default_factory=list)

    @computed_field(return_type=float)
    def adherence_ratio(self) -> float:
        return self.taken_count / self.total_scheduled if self.total_scheduled > 0 else 0.0

    @computed_field(return_type=float)
    def adherence_percentage(self) -> float:
        return round(self.adherence_ratio * 100, 1)


class AdherenceTrend(BaseModel):
    """Day-by-day adherence for trend charts (the dashboard's weekly bars)."""

    daily: list[DailyAdherence]
    average_ratio: float = Field(ge=0.0, le=1.0, description="Mean of per-day ratios")
    direction: Literal["improving", "stable", "declining"]
