"""Fan-out of gift stock changes to connected clients.

Purely observational: events are sent after the database commit and a
failed delivery is logged, never raised into the allocation path.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis
import requests
from django.conf import settings
from django.db import transaction
from requests import RequestException

from .models import Gift

logger = logging.getLogger(__name__)

NOTIFY_CHANNEL = getattr(settings, "PRIZE_NOTIFY_CHANNEL", "prize:gifts")


def _redis_client() -> Optional[redis.Redis]:
    redis_url = getattr(settings, "REDIS_URL", None)
    if not redis_url:
        return None
    return redis.Redis.from_url(redis_url, decode_responses=True)


def _publish_redis(event: Dict[str, Any]) -> None:
    client = _redis_client()
    if client is None:
        return
    try:
        client.publish(NOTIFY_CHANNEL, json.dumps(event, ensure_ascii=True))
    except redis.RedisError as exc:
        logger.warning("Failed to publish %s on %s: %s", event["event"], NOTIFY_CHANNEL, exc)


def _post_broadcast(event: Dict[str, Any]) -> None:
    url = getattr(settings, "PRIZE_BROADCAST_URL", None)
    if not url:
        return

    headers = {"Content-Type": "application/json"}
    token = getattr(settings, "PRIZE_BROADCAST_TOKEN", None)
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        response = requests.post(
            url,
            headers=headers,
            json={"channel": NOTIFY_CHANNEL, "event": event["event"], "payload": event},
            timeout=getattr(settings, "PRIZE_BROADCAST_TIMEOUT", 5),
        )
        response.raise_for_status()
    except RequestException as exc:
        logger.warning("Broadcast of %s to %s failed: %s", event["event"], url, exc)


def broadcast(event: Dict[str, Any]) -> None:
    _publish_redis(event)
    _post_broadcast(event)


def gift_event(gift_id: int) -> Optional[Dict[str, Any]]:
    gift = Gift.objects.filter(pk=gift_id).first()
    if gift is None:
        return None
    return {"event": "gift.updated", "gift": gift.to_payload()}


def publish_gift_changed(gift_id: int) -> None:
    """Schedule a "gift.updated" event once the current transaction commits."""

    def _send() -> None:
        event = gift_event(gift_id)
        if event is not None:
            broadcast(event)

    transaction.on_commit(_send)
