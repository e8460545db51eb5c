"""Shared fixtures for the medication tracking tests."""

from collections.abc import Callable
from datetime import UTC, date, datetime, time
from typing import Any

import pytest

from adapters.memory.store import InMemoryStore
from medtrack.config import AppConfig
from medtrack.domain.models import Dosage, FrequencySpec, Medication, Prescription
from medtrack.services.clock import FixedClock
from medtrack.services.tracker import MedicationTracker

LISINOPRIL = Medication(id="med-lisinopril", name="Lisinopril", default_strength="10mg")

PrescriptionFactory = Callable[..., Prescription]


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(_utc(2024, 1, 15, 8, 10))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_prescription() -> PrescriptionFactory:
    """Lisinopril 10mg daily at 08:00 UTC for January 2024, overridable per test."""

    def factory(**overrides: Any) -> Prescription:
        fields: dict[str, Any] = {
            "id": "rx-1",
            "patient_id": "patient-1",
            "medication": LISINOPRIL,
            "dosage": Dosage(strength=10, unit="mg"),
            "frequency": FrequencySpec.daily_at(time(8, 0)),
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 1, 31),
        }
        fields.update(overrides)
        return Prescription(**fields)

    return factory


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def tracker(store: InMemoryStore, clock: FixedClock, config: AppConfig) -> MedicationTracker:
    return MedicationTracker(store, clock=clock, config=config)
