from __future__ import annotations

import json
from typing import Any, Dict, Optional

from django.contrib.admin.views.decorators import staff_member_required
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from campaigns.auth import current_city, has_campaign_access
from campaigns.models import Campaign

from .availability import resolve_availability
from .exceptions import (
    NotFound,
    ParticipationError,
    SpinError,
    StoreUnavailable,
    translate_store_errors,
)
from .models import Participant
from .participation import issue_replay, register_participation, spin_data
from .services import finalize_spin, reset_campaign, reset_gift

CAMPAIGN_LOCKED_MESSAGE = "Accès réservé. Veuillez vous connecter à la campagne."


def _json_error(message: str, status: int = 400, code: Optional[str] = None) -> JsonResponse:
    payload: Dict[str, Any] = {"success": False, "error": message}
    if code:
        payload["code"] = code
    return JsonResponse(payload, status=status)


def _campaign_locked() -> JsonResponse:
    return _json_error(CAMPAIGN_LOCKED_MESSAGE, status=403, code="campaign_locked")


def _gate_campaign(request, campaign_id: Optional[int]) -> Optional[JsonResponse]:
    """Return a 403 response when a gated campaign has no session access."""

    if campaign_id is None:
        return None
    with translate_store_errors():
        campaign = Campaign.objects.filter(pk=campaign_id).first()
    if campaign is None or has_campaign_access(request, campaign):
        return None
    return _campaign_locked()


def _gate_ticket(request, participant_id) -> Optional[JsonResponse]:
    with translate_store_errors():
        campaign_id = (
            Participant.objects.filter(pk=participant_id)
            .values_list("campaign_id", flat=True)
            .first()
        )
    return _gate_campaign(request, campaign_id)


def _spin_error(exc: SpinError) -> JsonResponse:
    if isinstance(exc, NotFound):
        status = 404
    elif isinstance(exc, StoreUnavailable):
        status = 503
    else:
        status = 409
    return _json_error(exc.user_message, status=status, code=exc.code)


def _parse_body(request) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParticipationError(f"Request body is not valid JSON: {exc}")
    if not isinstance(payload, dict):
        raise ParticipationError("Request body must be a JSON object.")
    return payload


def _optional_int(value: Any, field: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ParticipationError(f"{field} must be an integer")


@require_http_methods(["GET"])
def campaign_gifts(request, campaign_id: int):
    """Gifts of a campaign with their availability for an optional city/venue."""

    try:
        city_id = _optional_int(request.GET.get("city"), "city")
        venue_id = _optional_int(request.GET.get("venue"), "venue")
    except ParticipationError as exc:
        return _json_error(str(exc))

    if city_id is None:
        identity = current_city(request)
        city_id = identity.id if identity else None

    try:
        locked = _gate_campaign(request, campaign_id)
        if locked is not None:
            return locked
        entries = resolve_availability(campaign_id, city_id, venue_id)
    except SpinError as exc:
        return _spin_error(exc)
    return JsonResponse(
        {"success": True, "gifts": [entry.to_payload() for entry in entries]},
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["POST"])
def submit_participation(request):
    try:
        body = _parse_body(request)
        city_id = _optional_int(body.get("city_id"), "city_id")
        if city_id is None:
            identity = current_city(request)
            city_id = identity.id if identity else None
        campaign_id = _optional_int(body.get("campaign_id"), "campaign_id")
        locked = _gate_campaign(request, campaign_id)
        if locked is not None:
            return locked
        issue = register_participation(
            body.get("name", ""),
            body.get("code", ""),
            body.get("agreed_to_terms") is True,
            campaign_id=campaign_id,
            city_id=city_id,
            venue_id=_optional_int(body.get("venue_id"), "venue_id"),
            city_name=body.get("city", ""),
        )
    except ParticipationError as exc:
        return _json_error(str(exc))
    except SpinError as exc:
        return _spin_error(exc)
    return JsonResponse(
        {"success": True, "participant_id": str(issue.participant.id), "issue": issue.kind.value},
        status=201,
    )


@require_http_methods(["GET"])
def get_spin_data(request, participant_id):
    try:
        locked = _gate_ticket(request, participant_id)
        if locked is not None:
            return locked
        data = spin_data(participant_id)
    except SpinError as exc:
        return _spin_error(exc)
    return JsonResponse(
        {
            "success": True,
            "participant": data.participant.to_payload(),
            "replaced_participant_id": str(data.replaced.id) if data.replaced else None,
            "campaign": data.campaign.to_payload() if data.campaign else None,
            "gifts": [entry.to_payload() for entry in data.gifts],
        },
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["POST"])
def finalize(request, participant_id):
    try:
        body = _parse_body(request)
    except ParticipationError as exc:
        return _json_error(str(exc))

    gift_id = body.get("gift_id")
    if gift_id in (None, ""):
        return _json_error("gift_id is required")

    try:
        locked = _gate_ticket(request, participant_id)
        if locked is not None:
            return locked
        result = finalize_spin(participant_id, gift_id)
    except SpinError as exc:
        return _spin_error(exc)
    return JsonResponse(
        {
            "success": True,
            "participant": result.participant.to_payload(),
            "gift": result.gift.to_payload(),
        },
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["POST"])
def replay(request, participant_id):
    try:
        locked = _gate_ticket(request, participant_id)
        if locked is not None:
            return locked
        issue = issue_replay(participant_id)
    except SpinError as exc:
        return _spin_error(exc)
    return JsonResponse(
        {"success": True, "participant_id": str(issue.participant.id), "issue": issue.kind.value}
    )


@csrf_exempt
@staff_member_required
@require_http_methods(["POST"])
def reset_gift_winners(request, gift_id: int):
    try:
        result = reset_gift(gift_id)
    except SpinError as exc:
        return _spin_error(exc)
    return JsonResponse(
        {
            "success": True,
            "gift": result.gift.to_payload(),
            "cleared": result.cleared,
            "reopened": result.reopened,
        }
    )


@csrf_exempt
@staff_member_required
@require_http_methods(["POST"])
def reset_campaign_winners(request, campaign_id: int):
    try:
        results = reset_campaign(campaign_id)
    except SpinError as exc:
        return _spin_error(exc)
    return JsonResponse(
        {
            "success": True,
            "gifts": [result.gift.to_payload() for result in results],
            "cleared": sum(result.cleared for result in results),
            "reopened": sum(result.reopened for result in results),
        }
    )
