"""Tests for domain model validation."""

from collections.abc import Callable
from datetime import UTC, date, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from medtrack.domain.models import (
    AdherenceSummary,
    Dosage,
    InventoryRecord,
    Prescription,
)


class TestPrescription:
    def test_unknown_timezone_is_rejected(
        self, make_prescription: Callable[..., Prescription]
    ) -> None:
        with pytest.raises(ValueError, match="Unknown timezone"):
            make_prescription(timezone="Atlantis/Capital")

    def test_end_before_start_is_rejected(
        self, make_prescription: Callable[..., Prescription]
    ) -> None:
        with pytest.raises(ValueError, match="end_date"):
            make_prescription(start_date=date(2024, 2, 1), end_date=date(2024, 1, 1))

    def test_prescription_immutability(
        self, make_prescription: Callable[..., Prescription]
    ) -> None:
        prescription = make_prescription()

        # This should raise an error due to frozen=True
        with pytest.raises(ValueError, match="frozen"):
            prescription.is_active = False  # type: ignore

    def test_active_days(self, make_prescription: Callable[..., Prescription]) -> None:
        prescription = make_prescription()
        open_ended = make_prescription(end_date=None)
        stopped = make_prescription(end_date=None, is_active=False)

        assert prescription.is_active_on(date(2024, 1, 15))
        assert not prescription.is_active_on(date(2024, 2, 1))
        assert not prescription.is_active_on(date(2023, 12, 31))
        assert open_ended.is_active_on(date(2030, 1, 1))
        assert not stopped.is_active_on(date(2024, 1, 15))

    def test_dosage_label(self) -> None:
        assert str(Dosage(strength=10, unit="mg")) == "10mg"
        assert str(Dosage(strength=2.5, unit="ml")) == "2.5ml"


class TestInventoryRecord:
    @given(
        quantity=st.floats(min_value=0, max_value=1000, allow_nan=False),
        threshold=st.floats(min_value=0, max_value=1000, allow_nan=False),
    )
    def test_low_stock_is_at_or_below_threshold(self, quantity: float, threshold: float) -> None:
        record = InventoryRecord(
            prescription_id="rx-1", current_quantity=quantity, low_stock_threshold=threshold
        )

        assert record.is_low_stock == (quantity <= threshold)

    def test_negative_quantity_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            InventoryRecord(prescription_id="rx-1", current_quantity=-1)

    def test_low_stock_is_serialized(self) -> None:
        record = InventoryRecord(prescription_id="rx-1", current_quantity=3)

        assert record.model_dump()["is_low_stock"] is True


class TestAdherenceSummary:
    def test_percentage_is_rounded(self) -> None:
        instant = datetime(2024, 1, 15, tzinfo=UTC)
        summary = AdherenceSummary(
            window_start=instant,
            window_end=instant,
            evaluated_at=instant,
            taken_count=2,
            total_scheduled=3,
        )

        assert summary.adherence_ratio == pytest.approx(2 / 3)
        assert summary.adherence_percentage == 66.7
        assert summary.model_dump()["adherence_percentage"] == 66.7
