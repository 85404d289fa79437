"""Campaign, city and venue dimension tables."""

from __future__ import annotations

from django.contrib.auth.hashers import check_password, make_password
from django.db import models


class Campaign(models.Model):
    """Groups gifts and venues under one theme and optional access gate."""

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=120, unique=True)
    description = models.TextField(blank=True)
    theme = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    access_username = models.CharField(max_length=150, blank=True)
    access_password = models.CharField(max_length=128, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_gated(self) -> bool:
        return bool(self.access_username and self.access_password)

    def set_access_password(self, raw_password: str) -> None:
        self.access_password = make_password(raw_password)

    def check_access(self, username: str, raw_password: str) -> bool:
        if not self.is_gated or username != self.access_username:
            return False
        return check_password(raw_password, self.access_password)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "theme": self.theme,
            "is_active": self.is_active,
            "is_gated": self.is_gated,
        }


class City(models.Model):
    name = models.CharField(max_length=255)
    username = models.CharField(max_length=150, unique=True)
    password = models.CharField(max_length=128)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "cities"

    def __str__(self) -> str:
        return self.name

    def set_password(self, raw_password: str) -> None:
        self.password = make_password(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password(raw_password, self.password)

    def to_payload(self) -> dict[str, int | str]:
        return {"id": self.id, "name": self.name}


class Venue(models.Model):
    """A physical point of sale (bar, restaurant...) inside one city."""

    name = models.CharField(max_length=255)
    type = models.CharField(max_length=64, blank=True)
    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name="venues")
    campaign = models.ForeignKey(
        Campaign,
        on_delete=models.CASCADE,
        related_name="venues",
        null=True,
        blank=True,
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.city.name})"

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "city_id": self.city_id,
            "campaign_id": self.campaign_id,
        }
