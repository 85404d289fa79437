"""Ticket lifecycle: register, replay, reopen.

A participant row is a one-shot ticket. Playing again issues a new row with
the same identity; only one pending ticket may hold a given code, so a
collision is resolved by suffixing the code and inserting once more.
"""

from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from campaigns.models import Campaign, City, Venue

from .availability import GiftAvailability, resolve_availability
from .exceptions import NotFound, ParticipationError, translate_store_errors
from .models import Participant

logger = logging.getLogger(__name__)

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 6


class TicketIssueKind(str, Enum):
    ISSUED = "issued"
    ISSUED_WITH_SUFFIX = "issued_with_suffix"
    STILL_PENDING = "still_pending"


@dataclass(slots=True)
class TicketIssue:
    participant: Participant
    kind: TicketIssueKind


@dataclass(slots=True)
class SpinData:
    participant: Participant
    campaign: Optional[Campaign]
    gifts: List[GiftAvailability]
    replaced: Optional[Participant] = None


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _suffixed(code: str) -> str:
    suffix = "".join(random.choices(SUFFIX_ALPHABET, k=SUFFIX_LENGTH))
    return f"{code}-{suffix}"


def _insert_ticket(fields: Dict[str, Any]) -> TicketIssue:
    try:
        with transaction.atomic():
            return TicketIssue(Participant.objects.create(**fields), TicketIssueKind.ISSUED)
    except IntegrityError:
        logger.info("Pending ticket already holds code %s, retrying with a suffix", fields["code"])

    fields = dict(fields, code=_suffixed(fields["code"]))
    with transaction.atomic():
        participant = Participant.objects.create(**fields)
    return TicketIssue(participant, TicketIssueKind.ISSUED_WITH_SUFFIX)


def _get_or_not_found(model, pk, label: str):
    if pk in (None, ""):
        return None
    try:
        return model.objects.get(pk=pk)
    except (model.DoesNotExist, ValueError, ValidationError) as exc:
        raise NotFound(f"{label} {pk} does not exist.") from exc


def register_participation(
    name: str,
    code: str,
    agreed_to_terms: bool,
    *,
    campaign_id: Optional[int] = None,
    city_id: Optional[int] = None,
    venue_id: Optional[int] = None,
    city_name: str = "",
) -> TicketIssue:
    """Validate a registration and issue a pending ticket."""

    name = (name or "").strip()
    code = normalize_code(code)
    if not name or not code:
        raise ParticipationError("Veuillez remplir tous les champs")
    if agreed_to_terms is not True:
        raise ParticipationError("Veuillez accepter les conditions générales")

    with translate_store_errors():
        campaign = _get_or_not_found(Campaign, campaign_id, "Campaign")
        if campaign is not None and not campaign.is_active:
            raise NotFound(f"Campaign {campaign.id} is not active.")
        city = _get_or_not_found(City, city_id, "City")
        venue = _get_or_not_found(Venue, venue_id, "Venue")

        if venue is not None:
            if city is None:
                city = venue.city
            elif venue.city_id != city.id:
                raise ParticipationError("Ce lieu n'appartient pas à cette ville.")
            if campaign is not None and venue.campaign_id not in (None, campaign.id):
                raise ParticipationError("Ce lieu ne participe pas à cette campagne.")

        issue = _insert_ticket(
            {
                "name": name,
                "code": code,
                "city": city,
                "city_name": city.name if city else (city_name or "").strip(),
                "venue": venue,
                "campaign": campaign,
                "agreed_to_terms": True,
                "won": False,
            }
        )

    logger.info("Issued ticket %s for code %s (%s)", issue.participant.id, code, issue.kind.value)
    return issue


def issue_replay(participant_id) -> TicketIssue:
    """Issue a fresh pending ticket carrying the identity of a spun one."""

    with translate_store_errors():
        previous = _get_or_not_found(Participant, participant_id, "Participant")
        if previous is None:
            raise NotFound("Participant id is required.")
        if not previous.won:
            return TicketIssue(previous, TicketIssueKind.STILL_PENDING)

        return _insert_ticket(
            {
                "name": previous.name,
                "code": previous.code,
                "city_id": previous.city_id,
                "city_name": previous.city_name,
                "venue_id": previous.venue_id,
                "campaign_id": previous.campaign_id,
                "agreed_to_terms": previous.agreed_to_terms,
                "won": False,
            }
        )


def reopen_ticket(participant: Participant) -> bool:
    """Operator reset of a winning ticket back to pending.

    The flip is conditional on ``won`` still being set. If another pending
    ticket already holds the code, the reopened one gets a suffixed code.
    """

    reopened = {"won": False, "prize": None, "won_at": None}
    try:
        with transaction.atomic():
            updated = Participant.objects.filter(pk=participant.pk, won=True).update(**reopened)
    except IntegrityError:
        with transaction.atomic():
            updated = Participant.objects.filter(pk=participant.pk, won=True).update(
                code=_suffixed(participant.code), **reopened
            )
    return updated == 1


def spin_data(participant_id) -> SpinData:
    """Everything the wheel page needs for one ticket.

    A ticket that has already been spun is swapped for a fresh replay ticket.
    """

    with translate_store_errors():
        participant = _get_or_not_found(Participant, participant_id, "Participant")
        if participant is None:
            raise NotFound("Participant id is required.")

        replaced = None
        if participant.won:
            replaced = participant
            participant = issue_replay(participant.id).participant

        campaign = participant.campaign
    gifts = resolve_availability(
        participant.campaign_id, participant.city_id, participant.venue_id
    )
    return SpinData(participant=participant, campaign=campaign, gifts=gifts, replaced=replaced)
