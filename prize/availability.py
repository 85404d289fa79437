"""Which gifts can still be won in a given campaign/city/venue context.

Global stock is layered with optional city and venue ceilings. When a gift
has venue limits, their sum replaces the gift's own ``max_winners`` as its
global ceiling. Scoped counts are recomputed from winning tickets on every
call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

from django.conf import settings
from django.db.models import Count, Sum

from campaigns.models import Campaign

from .exceptions import NotFound, translate_store_errors
from .models import Gift, GiftCityLimit, GiftVenueLimit, Participant


class ScopePolicy(str, Enum):
    """What a missing limit row means for a scope."""

    OPEN_BY_DEFAULT = "open"
    CLOSED_BY_DEFAULT = "closed"

    @classmethod
    def from_setting(cls, value) -> "ScopePolicy":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

    def allows_missing(self) -> bool:
        return self is ScopePolicy.OPEN_BY_DEFAULT


CITY_SCOPE_POLICY = ScopePolicy.from_setting(
    getattr(settings, "PRIZE_CITY_SCOPE_POLICY", ScopePolicy.OPEN_BY_DEFAULT)
)
VENUE_SCOPE_POLICY = ScopePolicy.from_setting(
    getattr(settings, "PRIZE_VENUE_SCOPE_POLICY", ScopePolicy.CLOSED_BY_DEFAULT)
)
ZERO_CEILING_UNLIMITED = getattr(settings, "PRIZE_ZERO_CEILING_UNLIMITED", True)


@dataclass(slots=True)
class GiftAvailability:
    gift: Gift
    ceiling: Optional[int]
    global_available: bool
    city_available: bool = True
    venue_available: bool = True

    @property
    def available(self) -> bool:
        return self.global_available and self.city_available and self.venue_available

    def to_payload(self) -> dict:
        payload = self.gift.to_payload()
        payload["ceiling"] = self.ceiling
        payload["available"] = self.available
        return payload


def effective_ceiling(gift: Gift, venue_total: Optional[int]) -> Optional[int]:
    """Return the gift's global ceiling; ``None`` means unlimited.

    ``venue_total`` is the sum of the gift's venue limits, or ``None`` when
    the gift has no venue limit rows at all.
    """

    if venue_total is not None:
        return venue_total
    if gift.max_winners is None:
        return None
    if gift.max_winners == 0 and ZERO_CEILING_UNLIMITED:
        return None
    return gift.max_winners


def venue_totals(gift_ids: Iterable[int]) -> Dict[int, int]:
    rows = (
        GiftVenueLimit.objects.filter(gift_id__in=list(gift_ids))
        .values("gift_id")
        .annotate(total=Sum("max_winners"))
    )
    return {row["gift_id"]: row["total"] or 0 for row in rows}


def city_totals(gift_ids: Iterable[int]) -> Dict[int, int]:
    rows = (
        GiftCityLimit.objects.filter(gift_id__in=list(gift_ids))
        .values("gift_id")
        .annotate(total=Sum("max_winners"))
    )
    return {row["gift_id"]: row["total"] or 0 for row in rows}


def effective_ceilings(gifts: List[Gift]) -> Dict[int, Optional[int]]:
    totals = venue_totals(gift.id for gift in gifts)
    return {gift.id: effective_ceiling(gift, totals.get(gift.id)) for gift in gifts}


def _win_counts(gift_ids: List[int], **scope) -> Dict[int, int]:
    rows = (
        Participant.objects.filter(won=True, prize_id__in=gift_ids, **scope)
        .values("prize_id")
        .annotate(total=Count("id"))
    )
    return {row["prize_id"]: row["total"] for row in rows}


def _scope_flags(
    gift_ids: List[int],
    limits: Dict[int, int],
    counts: Dict[int, int],
    policy: ScopePolicy,
) -> Dict[int, bool]:
    flags = {}
    for gift_id in gift_ids:
        limit = limits.get(gift_id)
        if limit is None:
            flags[gift_id] = policy.allows_missing()
        else:
            flags[gift_id] = counts.get(gift_id, 0) < limit
    return flags


def campaign_gifts(campaign_id: Optional[int]) -> List[Gift]:
    """Gifts of a campaign in creation order; ``None`` selects legacy gifts."""

    if campaign_id is None:
        return list(Gift.objects.filter(campaign__isnull=True).order_by("id"))
    if not Campaign.objects.filter(pk=campaign_id).exists():
        raise NotFound(f"Campaign {campaign_id} does not exist.")
    return list(Gift.objects.filter(campaign_id=campaign_id).order_by("id"))


def resolve_availability(
    campaign_id: Optional[int],
    city_id: Optional[int] = None,
    venue_id: Optional[int] = None,
    *,
    city_policy: Optional[ScopePolicy] = None,
    venue_policy: Optional[ScopePolicy] = None,
) -> List[GiftAvailability]:
    """Compute the availability of every gift of a campaign.

    City and venue scopes are only evaluated when their id is supplied. The
    venue is not cross-checked against the city.
    """

    city_policy = city_policy or CITY_SCOPE_POLICY
    venue_policy = venue_policy or VENUE_SCOPE_POLICY

    with translate_store_errors():
        gifts = campaign_gifts(campaign_id)
        if not gifts:
            return []
        gift_ids = [gift.id for gift in gifts]
        ceilings = effective_ceilings(gifts)

        city_flags: Dict[int, bool] = {}
        if city_id is not None:
            limits = dict(
                GiftCityLimit.objects.filter(city_id=city_id, gift_id__in=gift_ids)
                .values_list("gift_id", "max_winners")
            )
            counts = _win_counts(gift_ids, city_id=city_id)
            city_flags = _scope_flags(gift_ids, limits, counts, city_policy)

        venue_flags: Dict[int, bool] = {}
        if venue_id is not None:
            limits = dict(
                GiftVenueLimit.objects.filter(venue_id=venue_id, gift_id__in=gift_ids)
                .values_list("gift_id", "max_winners")
            )
            counts = _win_counts(gift_ids, venue_id=venue_id)
            venue_flags = _scope_flags(gift_ids, limits, counts, venue_policy)

    results = []
    for gift in gifts:
        ceiling = ceilings[gift.id]
        results.append(
            GiftAvailability(
                gift=gift,
                ceiling=ceiling,
                global_available=ceiling is None or gift.current_winners < ceiling,
                city_available=city_flags.get(gift.id, True),
                venue_available=venue_flags.get(gift.id, True),
            )
        )
    return results


def available_gift_ids(
    campaign_id: Optional[int],
    city_id: Optional[int] = None,
    venue_id: Optional[int] = None,
) -> List[int]:
    return [
        entry.gift.id
        for entry in resolve_availability(campaign_id, city_id, venue_id)
        if entry.available
    ]
