from django.apps import AppConfig


class PrizeConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "prize"
