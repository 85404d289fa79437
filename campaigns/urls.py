from django.urls import path

from . import views


app_name = "campaigns"

urlpatterns = [
    path("c/<slug:slug>/", views.campaign_detail, name="campaign_detail"),
    path("c/<slug:slug>/login/", views.campaign_login, name="campaign_login"),
    path("city/login/", views.city_login, name="city_login"),
    path("city/logout/", views.city_logout, name="city_logout"),
    path("city/me/", views.city_me, name="city_me"),
]
