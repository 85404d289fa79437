"""Versioned counter over ``Gift.current_winners``.

The store offers row-level conditional writes but no cross-request lock, so
the counter value doubles as its own version token: every write is guarded
by "still equals what I read" and retried a bounded number of times.
"""

from __future__ import annotations

import logging
from typing import Optional

from django.conf import settings
from django.db.models import F

from .exceptions import NotFound, StoreUnavailable
from .models import Gift

logger = logging.getLogger(__name__)

RESERVE_ATTEMPTS = getattr(settings, "PRIZE_RESERVE_ATTEMPTS", 3)


class GiftCounter:
    def __init__(self, gift_id: int, attempts: Optional[int] = None):
        self.gift_id = gift_id
        self.attempts = attempts or RESERVE_ATTEMPTS

    def read(self) -> int:
        value = (
            Gift.objects.filter(pk=self.gift_id)
            .values_list("current_winners", flat=True)
            .first()
        )
        if value is None:
            raise NotFound(f"Gift {self.gift_id} does not exist.")
        return value

    def _swap(self, expected: int, new: int) -> bool:
        updated = Gift.objects.filter(pk=self.gift_id, current_winners=expected).update(
            current_winners=new
        )
        return updated == 1

    def try_reserve(self, ceiling: Optional[int], amount: int = 1) -> bool:
        """Add ``amount`` unless it would pass ``ceiling`` (``None`` = unlimited).

        Returns False when the ceiling is reached or when every attempt lost
        the compare-and-swap race.
        """

        for attempt in range(1, self.attempts + 1):
            current = self.read()
            if ceiling is not None and current + amount > ceiling:
                return False
            if self._swap(current, current + amount):
                return True
            logger.debug(
                "Reserve contention on gift %s (attempt %s/%s)",
                self.gift_id,
                attempt,
                self.attempts,
            )
        logger.info("Gave up reserving gift %s after %s attempts", self.gift_id, self.attempts)
        return False

    def release(self, amount: int = 1) -> bool:
        """Undo a reservation. Never goes below zero."""

        for _ in range(self.attempts):
            current = self.read()
            if current <= 0:
                logger.warning("Nothing to release on gift %s", self.gift_id)
                return False
            if self._swap(current, max(current - amount, 0)):
                return True
        # Contention outlasted the bound; fall back to a guarded decrement so
        # the compensation is never lost.
        updated = Gift.objects.filter(
            pk=self.gift_id, current_winners__gte=amount
        ).update(current_winners=F("current_winners") - amount)
        return updated == 1

    def reset(self) -> int:
        """Bring the counter back to zero and return the cleared value."""

        for _ in range(self.attempts):
            current = self.read()
            if current == 0 or self._swap(current, 0):
                return current
        raise StoreUnavailable(
            f"Reset of gift {self.gift_id} kept losing to concurrent spins."
        )
