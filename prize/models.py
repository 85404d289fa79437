from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q


class Gift(models.Model):
    """A prize type with finite stock.

    ``current_winners`` is a contended counter: it is only ever written by
    :mod:`prize.counters` through conditional updates.
    """

    campaign = models.ForeignKey(
        "campaigns.Campaign",
        on_delete=models.CASCADE,
        related_name="gifts",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=255)
    emoji = models.CharField(max_length=16, blank=True)
    image_url = models.URLField(max_length=500, blank=True)
    color = models.CharField(max_length=32, blank=True)
    max_winners = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Global stock ceiling. Empty means unlimited.",
    )
    current_winners = models.PositiveIntegerField(default=0, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.current_winners}/{self.max_winners})"

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "image_url": self.image_url,
            "color": self.color,
            "campaign_id": self.campaign_id,
            "max_winners": self.max_winners,
            "current_winners": self.current_winners,
        }


class GiftCityLimit(models.Model):
    gift = models.ForeignKey(Gift, on_delete=models.CASCADE, related_name="city_limits")
    city = models.ForeignKey(
        "campaigns.City", on_delete=models.CASCADE, related_name="gift_limits"
    )
    max_winners = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["gift", "city"], name="prize_unique_gift_city"),
        ]

    def __str__(self) -> str:
        return f"{self.gift_id}@city:{self.city_id} <= {self.max_winners}"


class GiftVenueLimit(models.Model):
    gift = models.ForeignKey(Gift, on_delete=models.CASCADE, related_name="venue_limits")
    venue = models.ForeignKey(
        "campaigns.Venue", on_delete=models.CASCADE, related_name="gift_limits"
    )
    max_winners = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["gift", "venue"], name="prize_unique_gift_venue"),
        ]

    def __str__(self) -> str:
        return f"{self.gift_id}@venue:{self.venue_id} <= {self.max_winners}"


class Participant(models.Model):
    """A one-shot ticket: the right to spin the wheel exactly once.

    Playing again means issuing a new row, never flipping ``won`` back.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=128)
    city_name = models.CharField(max_length=255, blank=True)
    city = models.ForeignKey(
        "campaigns.City",
        on_delete=models.SET_NULL,
        related_name="participants",
        null=True,
        blank=True,
    )
    venue = models.ForeignKey(
        "campaigns.Venue",
        on_delete=models.SET_NULL,
        related_name="participants",
        null=True,
        blank=True,
    )
    campaign = models.ForeignKey(
        "campaigns.Campaign",
        on_delete=models.SET_NULL,
        related_name="participants",
        null=True,
        blank=True,
    )
    agreed_to_terms = models.BooleanField(default=False)
    won = models.BooleanField(default=False)
    prize = models.ForeignKey(
        Gift,
        on_delete=models.SET_NULL,
        related_name="winners",
        null=True,
        blank=True,
    )
    won_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["prize", "won"], name="prize_participant_prize_won"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["code"],
                condition=Q(won=False),
                name="prize_unique_pending_code",
            ),
        ]

    def __str__(self) -> str:
        state = "won" if self.won else "pending"
        return f"{self.name} [{self.code}] ({state})"

    def to_payload(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "code": self.code,
            "city": self.city_name,
            "city_id": self.city_id,
            "venue_id": self.venue_id,
            "campaign_id": self.campaign_id,
            "won": self.won,
            "prize_id": self.prize_id,
        }
