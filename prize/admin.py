from django.contrib import admin, messages

from .availability import effective_ceilings
from .exceptions import SpinError
from .models import Gift, GiftCityLimit, GiftVenueLimit, Participant
from .services import reset_gift


class GiftCityLimitInline(admin.TabularInline):
    model = GiftCityLimit
    extra = 0


class GiftVenueLimitInline(admin.TabularInline):
    model = GiftVenueLimit
    extra = 0


@admin.register(Gift)
class GiftAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "campaign", "max_winners", "current_winners", "ceiling")
    list_filter = ("campaign",)
    search_fields = ("name",)
    ordering = ("id",)
    readonly_fields = ("current_winners",)
    inlines = (GiftCityLimitInline, GiftVenueLimitInline)
    actions = ("reset_winners",)

    @admin.display(description="Effective ceiling")
    def ceiling(self, obj):
        value = effective_ceilings([obj])[obj.id]
        return "∞" if value is None else value

    @admin.action(description="Reset winners of selected gifts")
    def reset_winners(self, request, queryset):
        for gift in queryset:
            try:
                result = reset_gift(gift.id)
            except SpinError as exc:
                self.message_user(request, f"{gift.name}: {exc}", level=messages.ERROR)
                continue
            self.message_user(
                request,
                f"{gift.name}: {result.cleared} cleared, {result.reopened} tickets reopened.",
            )


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "city_name", "venue", "campaign", "won", "prize", "created_at")
    list_filter = ("won", "campaign", "city")
    search_fields = ("name", "code")
    readonly_fields = ("won", "prize", "won_at")
    ordering = ("-created_at",)
