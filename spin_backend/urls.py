from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("campaigns/", include("campaigns.urls")),
    path("prize/", include("prize.urls")),
]
