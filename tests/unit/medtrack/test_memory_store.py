"""Tests for the in-memory store adapter and the keyed lock table."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from adapters.memory.store import InMemoryStore
from medtrack.domain.models import Disposition, DoseLogEntry, InventoryRecord
from medtrack.services.locks import KeyedLocks

SCHEDULED = datetime(2024, 1, 15, 8, 0, tzinfo=UTC)


def entry(scheduled_at: datetime, notes: str | None = None) -> DoseLogEntry:
    return DoseLogEntry(
        prescription_id="rx-1",
        scheduled_at=scheduled_at,
        disposition=Disposition.TAKEN,
        notes=notes,
    )


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_dose_log_upserts_by_key(self, store: InMemoryStore) -> None:
        await store.save_dose_log(entry(SCHEDULED, "first"))
        await store.save_dose_log(entry(SCHEDULED, "second"))

        entries = await store.load_dose_log("rx-1", SCHEDULED, SCHEDULED + timedelta(hours=1))

        assert [e.notes for e in entries] == ["second"]
        assert store.dose_log_count() == 1

    @pytest.mark.asyncio
    async def test_dose_log_range_is_half_open_and_sorted(self, store: InMemoryStore) -> None:
        for hours in (16, 0, 8):
            await store.save_dose_log(entry(SCHEDULED + timedelta(hours=hours)))

        entries = await store.load_dose_log("rx-1", SCHEDULED, SCHEDULED + timedelta(hours=16))

        assert [e.scheduled_at for e in entries] == [SCHEDULED, SCHEDULED + timedelta(hours=8)]

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_every_touched_key(self, store: InMemoryStore) -> None:
        await store.save_inventory(InventoryRecord(prescription_id="rx-1", current_quantity=10))

        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.save_dose_log(entry(SCHEDULED))
                await store.save_inventory(
                    InventoryRecord(prescription_id="rx-1", current_quantity=9)
                )
                raise RuntimeError("boom")

        inventory = await store.load_inventory("rx-1")
        assert inventory is not None and inventory.current_quantity == 10
        assert store.dose_log_count() == 0

    @pytest.mark.asyncio
    async def test_nested_transaction_joins_outer(self, store: InMemoryStore) -> None:
        with pytest.raises(RuntimeError):
            async with store.transaction():
                async with store.transaction():
                    await store.save_dose_log(entry(SCHEDULED))
                raise RuntimeError("boom")

        assert store.dose_log_count() == 0

    @pytest.mark.asyncio
    async def test_rollback_keeps_a_concurrent_committed_write(
        self, store: InMemoryStore
    ) -> None:
        await store.save_inventory(InventoryRecord(prescription_id="rx-1", current_quantity=10))
        written = asyncio.Event()
        committed = asyncio.Event()

        async def failing_writer() -> None:
            async with store.transaction():
                await store.save_inventory(
                    InventoryRecord(prescription_id="rx-1", current_quantity=9)
                )
                written.set()
                await committed.wait()
                raise RuntimeError("boom")

        async def committing_writer() -> None:
            await written.wait()
            async with store.transaction():
                await store.save_inventory(
                    InventoryRecord(prescription_id="rx-1", current_quantity=8)
                )
            committed.set()

        results = await asyncio.gather(
            failing_writer(), committing_writer(), return_exceptions=True
        )

        assert isinstance(results[0], RuntimeError)
        inventory = await store.load_inventory("rx-1")
        assert inventory is not None and inventory.current_quantity == 8

    @pytest.mark.asyncio
    async def test_committed_transaction_keeps_writes(self, store: InMemoryStore) -> None:
        async with store.transaction():
            await store.save_dose_log(entry(SCHEDULED))

        assert store.dose_log_count("rx-1") == 1
        assert store.dose_log_count("rx-2") == 0


class TestKeyedLocks:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self) -> None:
        locks = KeyedLocks()
        active = 0
        peak = 0

        async def worker() -> None:
            nonlocal active, peak
            async with locks.hold("rx-1"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.001)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(5)))

        assert peak == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self) -> None:
        locks = KeyedLocks()
        inside = asyncio.Event()

        async def holder() -> None:
            async with locks.hold("rx-1"):
                await inside.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        async with locks.hold("rx-2"):
            inside.set()
        await task

        assert len(locks) == 0
