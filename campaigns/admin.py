from django import forms
from django.contrib import admin

from .models import Campaign, City, Venue


class CityAdminForm(forms.ModelForm):
    raw_password = forms.CharField(
        label="Password",
        required=False,
        widget=forms.PasswordInput(render_value=False),
        help_text="Leave empty to keep the current password.",
    )

    class Meta:
        model = City
        fields = ("name", "username")

    def save(self, commit=True):
        city = super().save(commit=False)
        if self.cleaned_data.get("raw_password"):
            city.set_password(self.cleaned_data["raw_password"])
        if commit:
            city.save()
        return city


class CampaignAdminForm(forms.ModelForm):
    raw_access_password = forms.CharField(
        label="Access password",
        required=False,
        widget=forms.PasswordInput(render_value=False),
        help_text="Leave empty to keep the current password.",
    )

    class Meta:
        model = Campaign
        fields = ("name", "slug", "description", "theme", "is_active", "access_username")

    def save(self, commit=True):
        campaign = super().save(commit=False)
        if self.cleaned_data.get("raw_access_password"):
            campaign.set_access_password(self.cleaned_data["raw_access_password"])
        if commit:
            campaign.save()
        return campaign


@admin.register(Campaign)
class CampaignAdmin(admin.ModelAdmin):
    form = CampaignAdminForm
    list_display = ("name", "slug", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(City)
class CityAdmin(admin.ModelAdmin):
    form = CityAdminForm
    list_display = ("name", "username", "created_at")
    search_fields = ("name", "username")
    ordering = ("name",)


@admin.register(Venue)
class VenueAdmin(admin.ModelAdmin):
    list_display = ("name", "type", "city", "campaign")
    list_filter = ("city", "campaign")
    search_fields = ("name",)
    ordering = ("name",)
