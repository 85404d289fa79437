from __future__ import annotations

import json
from typing import Any, Dict

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .auth import (
    GateError,
    current_city,
    has_campaign_access,
    login_campaign,
    login_city,
    logout_city,
)
from .models import Campaign, City


def _json_error(message: str, status: int = 400) -> JsonResponse:
    return JsonResponse({"success": False, "error": message}, status=status)


def _parse_body(request) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


@require_GET
def campaign_detail(request, slug: str):
    """Public landing data for a campaign: theme plus where it runs."""

    campaign = Campaign.objects.filter(slug=slug, is_active=True).first()
    if campaign is None:
        return _json_error("Campagne introuvable", status=404)

    payload = campaign.to_payload()
    payload["authorized"] = has_campaign_access(request, campaign)
    if payload["authorized"]:
        venues = campaign.venues.select_related("city").order_by("city__name", "name")
        city_ids = sorted({venue.city_id for venue in venues})
        payload["cities"] = [
            city.to_payload() for city in City.objects.filter(id__in=city_ids)
        ]
        payload["venues"] = [venue.to_payload() for venue in venues]
    return JsonResponse({"success": True, "campaign": payload})


@csrf_exempt
@require_POST
def campaign_login(request, slug: str):
    campaign = Campaign.objects.filter(slug=slug, is_active=True).first()
    if campaign is None:
        return _json_error("Campagne introuvable", status=404)

    body = _parse_body(request)
    try:
        identity = login_campaign(
            request, campaign, body.get("username", ""), body.get("password", "")
        )
    except GateError as exc:
        return _json_error(str(exc), status=401)
    return JsonResponse({"success": True, "campaign": identity.to_payload()})


@csrf_exempt
@require_POST
def city_login(request):
    body = _parse_body(request)
    try:
        identity = login_city(request, body.get("username", ""), body.get("password", ""))
    except GateError as exc:
        return _json_error(str(exc), status=401)
    return JsonResponse({"success": True, "city": identity.to_payload()})


@csrf_exempt
@require_POST
def city_logout(request):
    logout_city(request)
    return JsonResponse({"success": True})


@require_GET
def city_me(request):
    identity = current_city(request)
    return JsonResponse(
        {"success": True, "city": identity.to_payload() if identity else None}
    )
