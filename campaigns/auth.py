"""Username/password gates for cities and campaigns.

A successful login stores the resolved identity (id and name) in the signed
session. Callers only ever read that identity back, never the raw cookie.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings

from .models import Campaign, City

logger = logging.getLogger(__name__)

CITY_SESSION_KEY = getattr(settings, "CITY_SESSION_KEY", "spin_city_auth")
CAMPAIGN_SESSION_KEY = getattr(settings, "CAMPAIGN_SESSION_KEY", "spin_campaign_auth")


class GateError(Exception):
    """Raised when gate credentials are rejected."""


@dataclass(frozen=True, slots=True)
class Identity:
    id: int
    name: str

    def to_payload(self) -> dict[str, int | str]:
        return {"id": self.id, "name": self.name}


def _read_identity(request, key: str) -> Optional[Identity]:
    raw = request.session.get(key)
    if not isinstance(raw, dict):
        return None
    try:
        return Identity(id=int(raw["id"]), name=str(raw["name"]))
    except (KeyError, TypeError, ValueError):
        return None


def login_city(request, username: str, password: str) -> Identity:
    city = City.objects.filter(username=(username or "").strip()).first()
    if city is None or not city.check_password(password or ""):
        logger.info("Rejected city login for username=%r", username)
        raise GateError("Identifiants incorrects")

    identity = Identity(id=city.id, name=city.name)
    request.session[CITY_SESSION_KEY] = identity.to_payload()
    return identity


def current_city(request) -> Optional[Identity]:
    return _read_identity(request, CITY_SESSION_KEY)


def logout_city(request) -> None:
    request.session.pop(CITY_SESSION_KEY, None)


def login_campaign(request, campaign: Campaign, username: str, password: str) -> Identity:
    if not campaign.check_access((username or "").strip(), password or ""):
        logger.info("Rejected access to campaign %s for username=%r", campaign.slug, username)
        raise GateError("Identifiants incorrects")

    identity = Identity(id=campaign.id, name=campaign.name)
    request.session[CAMPAIGN_SESSION_KEY] = identity.to_payload()
    return identity


def current_campaign(request) -> Optional[Identity]:
    return _read_identity(request, CAMPAIGN_SESSION_KEY)


def has_campaign_access(request, campaign: Campaign) -> bool:
    """Ungated campaigns are open; gated ones need a matching session identity."""

    if not campaign.is_gated:
        return True
    identity = current_campaign(request)
    return identity is not None and identity.id == campaign.id
