"""Tests for the barcode store and allocator."""

from __future__ import annotations

import asyncio
import threading

import httpx
import pytest

from patron_creator import luhn
from patron_creator.allocator import BarcodeAllocator
from patron_creator.errors import AllocationFailure, ILSIntegrationError
from patron_creator.storage.barcodes import BarcodeStore

PREFIX = "28888"
SEED = "28888055432443"
NEXT = "28888055432450"
AFTER_NEXT = "28888055432468"


def ils_holding(*taken: str):
    """Find handler for an ILS that already has patrons with *taken* barcodes."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["varFieldContent"] in taken:
            return httpx.Response(200, json={"id": 1, "barcodes": [request.url.params["varFieldContent"]]})
        return httpx.Response(404, json={"name": "Record not found"})

    return handler


class ThreadRecordingStore(BarcodeStore):
    """Records the thread each reservation query runs on."""

    def __init__(self, engine) -> None:
        super().__init__(engine)
        self.threads: set[int] = set()

    def lowest_unused(self, prefix: str = "") -> str | None:
        self.threads.add(threading.get_ident())
        return super().lowest_unused(prefix)

    def mark_unused(self, barcode: str) -> bool:
        self.threads.add(threading.get_ident())
        return super().mark_unused(barcode)


class RacingStore(BarcodeStore):
    """Loses the first insert to a concurrent writer."""

    def __init__(self, engine) -> None:
        super().__init__(engine)
        self.lost = False

    def insert_used(self, barcode: str) -> bool:
        if not self.lost:
            self.lost = True
            super().insert_used(barcode)
            return False
        return super().insert_used(barcode)


@pytest.fixture
def alerts() -> list[tuple[str, int]]:
    return []


@pytest.fixture
def allocator(seeded_store, gateway, alerts) -> BarcodeAllocator:
    return BarcodeAllocator(
        seeded_store, gateway, prefix=PREFIX, alert=lambda prefix, left: alerts.append((prefix, left))
    )


@pytest.mark.unit
class TestBarcodeStore:
    def test_seed_is_idempotent(self, store) -> None:
        assert store.seed(SEED) is True
        assert store.seed(SEED) is False
        assert store.count(PREFIX) == 1

    def test_insert_used_detects_existing_row(self, seeded_store) -> None:
        assert seeded_store.insert_used(NEXT) is True
        assert seeded_store.insert_used(NEXT) is False

    def test_claim_unused_only_once(self, store) -> None:
        store.seed(NEXT, used=False)
        assert store.claim_unused(NEXT) is True
        assert store.claim_unused(NEXT) is False

    def test_highest_respects_prefix_and_length(self, store) -> None:
        store.seed(SEED)
        store.seed("2888805543244312")
        store.seed("29999000000009")
        assert store.highest(PREFIX, length=14) == SEED

    def test_timestamps_are_set(self, seeded_store) -> None:
        record = seeded_store.get(SEED)
        assert record.used is True
        assert record.created_at is not None


@pytest.mark.unit
class TestAllocate:
    def test_allocates_next_in_sequence(self, allocator, fake_ils, seeded_store) -> None:
        fake_ils.on("GET", "/patrons/find", ils_holding())

        barcode = asyncio.run(allocator.allocate())

        assert barcode == NEXT
        assert luhn.validate(barcode)
        assert seeded_store.get(NEXT).used is True

    def test_skips_barcode_held_by_ils(self, allocator, fake_ils, seeded_store) -> None:
        fake_ils.on("GET", "/patrons/find", ils_holding(NEXT))

        assert asyncio.run(allocator.allocate()) == AFTER_NEXT
        # The ILS-held barcode stays reserved locally.
        assert seeded_store.get(NEXT).used is True

    def test_race_loser_retries_with_next_candidate(self, gateway, fake_ils) -> None:
        store = RacingStore(BarcodeStore.from_url("sqlite://").engine)
        store.seed(SEED)
        fake_ils.on("GET", "/patrons/find", ils_holding())

        barcode = asyncio.run(BarcodeAllocator(store, gateway, prefix=PREFIX).allocate())

        assert barcode == AFTER_NEXT
        assert store.get(NEXT).used is True

    def test_unused_rows_are_handed_out_first(self, allocator, fake_ils, seeded_store) -> None:
        seeded_store.seed(NEXT, used=False)
        fake_ils.on("GET", "/patrons/find", ils_holding())

        assert asyncio.run(allocator.allocate()) == NEXT
        assert seeded_store.count_unused(PREFIX) == 0

    def test_release_returns_barcode_to_pool(self, allocator, fake_ils, seeded_store) -> None:
        fake_ils.on("GET", "/patrons/find", ils_holding())
        barcode = asyncio.run(allocator.allocate())

        asyncio.run(allocator.release(barcode))

        assert seeded_store.get(barcode).used is False
        assert asyncio.run(allocator.allocate()) == barcode

    def test_release_unknown_barcode_is_harmless(self, allocator, seeded_store) -> None:
        asyncio.run(allocator.release("28888000000000"))
        asyncio.run(allocator.release(None))
        assert seeded_store.count(PREFIX) == 1

    def test_ils_failure_releases_and_propagates(self, allocator, fake_ils, seeded_store) -> None:
        fake_ils.on("GET", "/patrons/find", (500, {"description": "boom"}))

        with pytest.raises(ILSIntegrationError):
            asyncio.run(allocator.allocate())

        assert seeded_store.get(NEXT).used is False

    def test_cancelled_check_releases_barcode(self, allocator, fake_ils, seeded_store) -> None:
        async def hang(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(3600)
            return httpx.Response(404, json={"name": "Record not found"})

        fake_ils.on("GET", "/patrons/find", hang)

        async def cancel_during_check() -> None:
            task = asyncio.create_task(allocator.allocate())
            while not fake_ils.calls("GET", "/patrons/find"):
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(cancel_during_check())

        assert seeded_store.get(NEXT).used is False

    def test_store_calls_leave_the_event_loop_thread(self, gateway, fake_ils) -> None:
        store = ThreadRecordingStore(BarcodeStore.from_url("sqlite://").engine)
        store.seed(SEED)
        fake_ils.on("GET", "/patrons/find", ils_holding())
        allocator = BarcodeAllocator(store, gateway, prefix=PREFIX)

        async def allocate_and_release() -> int:
            barcode = await allocator.allocate()
            await allocator.release(barcode)
            return threading.get_ident()

        loop_thread = asyncio.run(allocate_and_release())

        assert store.threads
        assert loop_thread not in store.threads

    def test_exhausted_tries_raise_and_alert(self, seeded_store, gateway, fake_ils, alerts) -> None:
        fake_ils.on("GET", "/patrons/find", ils_holding(*(luhn.calculate(f"28888055432{n}") for n in range(45, 60))))
        allocator = BarcodeAllocator(
            seeded_store,
            gateway,
            prefix=PREFIX,
            max_tries=3,
            alert=lambda prefix, left: alerts.append((prefix, left)),
        )

        with pytest.raises(AllocationFailure):
            asyncio.run(allocator.allocate())

        assert len(alerts) == 1
        assert alerts[0][0] == PREFIX
        assert seeded_store.count(PREFIX) == 4

    def test_unseeded_prefix_fails(self, store, gateway) -> None:
        with pytest.raises(AllocationFailure) as excinfo:
            asyncio.run(BarcodeAllocator(store, gateway, prefix=PREFIX).allocate())
        assert "seeded" in excinfo.value.debug_message

    def test_sequence_leaving_prefix_fails(self, store, gateway) -> None:
        store.seed(luhn.calculate("2888899999999"))
        with pytest.raises(AllocationFailure):
            asyncio.run(BarcodeAllocator(store, gateway, prefix=PREFIX).allocate())


@pytest.mark.unit
class TestSupply:
    def test_remaining_supply(self, allocator) -> None:
        assert allocator.remaining_supply() == 94456755

    def test_remaining_supply_counts_unused_rows(self, allocator, seeded_store) -> None:
        seeded_store.seed(luhn.calculate("2888800000001"), used=False)
        assert allocator.remaining_supply() == 94456756

    def test_low_supply_alert_at_threshold(self, store, gateway, fake_ils, alerts) -> None:
        store.seed(luhn.calculate("2888899999993"))
        fake_ils.on("GET", "/patrons/find", ils_holding())
        allocator = BarcodeAllocator(
            store, gateway, prefix=PREFIX, alert=lambda prefix, left: alerts.append((prefix, left))
        )

        asyncio.run(allocator.allocate())

        assert alerts == [(PREFIX, 5)]

    def test_no_alert_between_thresholds(self, allocator, fake_ils, alerts) -> None:
        fake_ils.on("GET", "/patrons/find", ils_holding())
        asyncio.run(allocator.allocate())
        assert alerts == []
