from django.urls import path

from . import views


app_name = "prize"

urlpatterns = [
    path("campaigns/<int:campaign_id>/gifts/", views.campaign_gifts, name="campaign_gifts"),
    path(
        "campaigns/<int:campaign_id>/reset/",
        views.reset_campaign_winners,
        name="reset_campaign_winners",
    ),
    path("gifts/<int:gift_id>/reset/", views.reset_gift_winners, name="reset_gift_winners"),
    path("participations/", views.submit_participation, name="submit_participation"),
    path("spin/<uuid:participant_id>/", views.get_spin_data, name="spin_data"),
    path("spin/<uuid:participant_id>/finalize/", views.finalize, name="finalize"),
    path("spin/<uuid:participant_id>/replay/", views.replay, name="replay"),
]
