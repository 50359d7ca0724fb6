"""Barcode allocation.

A barcode is reserved locally first (marked used in the sequence store),
then checked against the ILS.  If the ILS already holds it the local row
stays used and the next candidate is tried.  ``release`` is the
compensating action when a later step fails.

Store calls are synchronous SQLAlchemy sessions, so the async entry points
run them in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from patron_creator import constants, luhn
from patron_creator.errors import AllocationFailure
from patron_creator.ils.gateway import IdentityGateway
from patron_creator.storage.barcodes import BarcodeStore

logger = logging.getLogger(__name__)

LOW_SUPPLY_THRESHOLDS: frozenset[int] = frozenset({1, 5, 10, 25, 50, 100, 250, 500})
MAX_TRIES: int = 10
ALLOCATION_ERROR: str = "Could not generate a new barcode. Please try again."

SupplyAlert = Callable[[str, int], None]


def log_low_supply(prefix: str, remaining: int) -> None:
    logger.warning("Only %d barcodes remain for prefix %s.", remaining, prefix)


class BarcodeAllocator:
    """Hands out Luhn-valid barcodes that are unused both locally and in the ILS."""

    def __init__(
        self,
        store: BarcodeStore,
        gateway: IdentityGateway,
        *,
        prefix: str,
        barcode_length: int = constants.BARCODE_LENGTHS[0],
        max_tries: int = MAX_TRIES,
        alert: SupplyAlert = log_low_supply,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.prefix = prefix
        self.barcode_length = barcode_length
        self.max_tries = max_tries
        self._alert = alert

    async def allocate(self, prefix: str | None = None) -> str:
        """Reserve and return the next free barcode in the *prefix* family.

        Raises
        ------
        AllocationFailure
            When no candidate could be confirmed within ``max_tries``.
        """
        prefix = prefix or self.prefix
        for attempt in range(1, self.max_tries + 1):
            candidate = await asyncio.to_thread(self._reserve_next, prefix)
            if candidate is None:
                logger.info("Lost the race for a barcode (attempt %d); retrying.", attempt)
                continue

            checked = False
            try:
                available = await self.gateway.available(candidate, is_barcode=True)
                checked = True
            finally:
                if not checked:
                    await self.release(candidate)

            if available:
                await asyncio.to_thread(self._check_supply, prefix)
                logger.info("Allocated barcode %s", candidate)
                return candidate
            logger.warning("Barcode %s already exists in the ILS; skipping it.", candidate)

        remaining = await asyncio.to_thread(self.remaining_supply, prefix)
        self._alert(prefix, remaining)
        raise AllocationFailure(
            ALLOCATION_ERROR,
            debug_message=f"No free barcode for prefix {prefix} after {self.max_tries} tries.",
        )

    async def release(self, barcode: str | None) -> None:
        """Return *barcode* to the pool after a failed patron creation."""
        if not barcode:
            return
        await asyncio.to_thread(self._release, barcode)

    def _release(self, barcode: str) -> None:
        if self.store.mark_unused(barcode):
            logger.info("Released barcode %s", barcode)
        else:
            logger.warning("Tried to release unknown barcode %s", barcode)

    def _reserve_next(self, prefix: str) -> str | None:
        unused = self.store.lowest_unused(prefix)
        if unused is not None:
            return unused if self.store.claim_unused(unused) else None

        latest = self.store.highest(prefix, length=self.barcode_length)
        if latest is None:
            raise AllocationFailure(
                ALLOCATION_ERROR,
                debug_message=f"No barcode sequence has been seeded for prefix {prefix}.",
            )
        try:
            candidate = luhn.next_in_sequence(latest)
        except ValueError as exc:
            raise AllocationFailure(ALLOCATION_ERROR, debug_message=str(exc)) from exc
        if not candidate.startswith(prefix):
            raise AllocationFailure(
                ALLOCATION_ERROR,
                debug_message=f"Barcode sequence for prefix {prefix} is exhausted.",
            )
        return candidate if self.store.insert_used(candidate) else None

    def remaining_supply(self, prefix: str | None = None) -> int:
        """Unused rows plus the sequence numbers left in the *prefix* family."""
        prefix = prefix or self.prefix
        unused = self.store.count_unused(prefix)
        latest = self.store.highest(prefix, length=self.barcode_length)
        if latest is None:
            return unused
        partial = latest[:-1]
        ceiling = prefix + "9" * (len(partial) - len(prefix))
        return unused + max(int(ceiling) - int(partial), 0)

    def _check_supply(self, prefix: str) -> None:
        remaining = self.remaining_supply(prefix)
        if remaining in LOW_SUPPLY_THRESHOLDS:
            self._alert(prefix, remaining)
