"""Spin finalization and operator resets.

Finalizing a spin is an application-level saga over row-level conditional
writes: the gift counter is reserved first, then venue stock and the ticket
are checked, and every later rejection rolls the reservation back before the
error reaches the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.utils import timezone

from . import availability
from .counters import GiftCounter
from .exceptions import (
    AlreadySpun,
    GlobalLimitReached,
    NoLongerAvailable,
    NotFound,
    VenueStockExhausted,
    VenueStockNotConfigured,
    translate_store_errors,
)
from .models import Gift, GiftVenueLimit, Participant
from .notifications import publish_gift_changed
from .participation import reopen_ticket

logger = logging.getLogger(__name__)


class ReservationState(str, Enum):
    RESERVED = "reserved"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class Reservation:
    """One provisional unit taken from a gift counter."""

    def __init__(self, counter: GiftCounter, amount: int = 1):
        self.counter = counter
        self.amount = amount
        self.state = ReservationState.RESERVED

    @classmethod
    def acquire(cls, counter: GiftCounter, ceiling: Optional[int]) -> Optional["Reservation"]:
        if not counter.try_reserve(ceiling):
            return None
        return cls(counter)

    def confirm(self) -> None:
        if self.state is not ReservationState.RESERVED:
            raise RuntimeError(f"Cannot confirm a {self.state.value} reservation.")
        self.state = ReservationState.CONFIRMED

    def roll_back(self, reason: str) -> None:
        if self.state is not ReservationState.RESERVED:
            raise RuntimeError(f"Cannot roll back a {self.state.value} reservation.")
        logger.info("Rolling back reservation on gift %s: %s", self.counter.gift_id, reason)
        try:
            self.counter.release(self.amount)
        except DatabaseError:
            logger.exception(
                "Compensation failed on gift %s; counter may be one too high",
                self.counter.gift_id,
            )
            raise
        finally:
            self.state = ReservationState.ROLLED_BACK


@dataclass(slots=True)
class SpinResult:
    participant: Participant
    gift: Gift


def _load_participant(participant_id) -> Participant:
    try:
        return Participant.objects.get(pk=participant_id)
    except (Participant.DoesNotExist, ValueError, ValidationError) as exc:
        raise NotFound(f"Participant {participant_id} does not exist.") from exc


def _check_venue_stock(participant: Participant, gift: Gift) -> None:
    if participant.venue_id is None:
        return

    limit = (
        GiftVenueLimit.objects.filter(gift_id=gift.id, venue_id=participant.venue_id)
        .values_list("max_winners", flat=True)
        .first()
    )
    if limit is None:
        if availability.VENUE_SCOPE_POLICY.allows_missing():
            return
        raise VenueStockNotConfigured(
            f"Gift {gift.id} has no stock configured for venue {participant.venue_id}."
        )

    winners = Participant.objects.filter(
        won=True, prize_id=gift.id, venue_id=participant.venue_id
    ).count()
    if winners >= limit:
        raise VenueStockExhausted(
            f"Gift {gift.id} is exhausted at venue {participant.venue_id} ({winners}/{limit})."
        )


def _claim_ticket(participant: Participant, gift: Gift) -> None:
    updated = Participant.objects.filter(pk=participant.pk, won=False).update(
        won=True, prize_id=gift.id, won_at=timezone.now()
    )
    if updated != 1:
        raise AlreadySpun(f"Participant {participant.pk} was claimed concurrently.")


def _raise_unavailable(participant: Participant, gift: Gift, entry) -> None:
    """Report the narrowest scope that rejected the gift."""

    if entry is not None:
        if not entry.venue_available:
            _check_venue_stock(participant, gift)
        if not entry.global_available:
            raise GlobalLimitReached(f"Gift {gift.id} reached its ceiling of {entry.ceiling}.")
    raise NoLongerAvailable(f"Gift {gift.id} is not available in this context.")


def finalize_spin(participant_id, gift_id) -> SpinResult:
    """Award ``gift_id`` to the ticket ``participant_id``.

    The ticket's own campaign, city and venue drive re-validation; the
    caller cannot pick a context. Raises a :class:`~prize.exceptions.SpinError`
    subclass on rejection, with counters left as if nothing happened.
    """

    with translate_store_errors():
        participant = _load_participant(participant_id)
        if participant.won:
            raise AlreadySpun(f"Participant {participant.pk} has already spun.")

        try:
            gift = Gift.objects.get(pk=gift_id)
        except (Gift.DoesNotExist, ValueError, TypeError) as exc:
            raise NotFound(f"Gift {gift_id} does not exist.") from exc

        entries = availability.resolve_availability(
            participant.campaign_id, participant.city_id, participant.venue_id
        )
        entry = next((item for item in entries if item.gift.id == gift.id), None)
        if entry is None or not entry.available:
            logger.info(
                "Gift %s no longer available for participant %s", gift.id, participant.pk
            )
            _raise_unavailable(participant, gift, entry)

        reservation = Reservation.acquire(GiftCounter(gift.id), entry.ceiling)
        if reservation is None:
            logger.info("Global limit reached on gift %s", gift.id)
            raise GlobalLimitReached(f"Gift {gift.id} reached its ceiling of {entry.ceiling}.")

        try:
            _check_venue_stock(participant, gift)
            _claim_ticket(participant, gift)
        except Exception as exc:
            reservation.roll_back(reason=type(exc).__name__)
            raise
        reservation.confirm()

        participant.refresh_from_db()
        gift.refresh_from_db(fields=["current_winners"])

    publish_gift_changed(gift.id)
    logger.info("Participant %s won gift %s", participant.pk, gift.id)
    return SpinResult(participant=participant, gift=gift)


@dataclass(slots=True)
class ResetResult:
    gift: Gift
    cleared: int
    reopened: int


def _reset(gift: Gift) -> ResetResult:
    # Only tickets won before the counter is cleared are reopened; a spin
    # landing after the reset keeps both its ticket and its increment.
    winners = list(Participant.objects.filter(prize_id=gift.id, won=True))
    cleared = GiftCounter(gift.id).reset()
    reopened = sum(1 for participant in winners if reopen_ticket(participant))
    gift.refresh_from_db(fields=["current_winners"])
    publish_gift_changed(gift.id)
    logger.info("Reset gift %s: cleared %s units, reopened %s tickets", gift.id, cleared, reopened)
    return ResetResult(gift=gift, cleared=cleared, reopened=reopened)


def reset_gift(gift_id) -> ResetResult:
    """Operator reset: counter back to zero and winning tickets reopened."""

    with translate_store_errors():
        try:
            gift = Gift.objects.get(pk=gift_id)
        except (Gift.DoesNotExist, ValueError, TypeError) as exc:
            raise NotFound(f"Gift {gift_id} does not exist.") from exc
        return _reset(gift)


def reset_campaign(campaign_id) -> List[ResetResult]:
    with translate_store_errors():
        gifts = availability.campaign_gifts(campaign_id)
        return [_reset(gift) for gift in gifts]


def reset_all() -> List[ResetResult]:
    """Reset every gift, grouped or legacy."""

    with translate_store_errors():
        return [_reset(gift) for gift in Gift.objects.order_by("id")]
