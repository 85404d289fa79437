"""Django settings for the spin-the-wheel campaign backend.

Values come from environment variables so the same module serves local
development (SQLite) and deployments (MySQL through DATABASE_URL).
"""

import os
from pathlib import Path
from urllib.parse import parse_qs, urlparse

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _database_from_url(url: str) -> dict:
    parsed = urlparse(url)
    if parsed.scheme not in {"mysql", "mariadb"}:
        raise ValueError("DATABASE_URL must use mysql:// or mariadb://")
    qs = parse_qs(parsed.query)
    charset = (qs.get("charset", ["utf8mb4"]) or ["utf8mb4"])[0]
    return {
        "ENGINE": "django.db.backends.mysql",
        "NAME": (parsed.path or "/").lstrip("/"),
        "USER": parsed.username or "",
        "PASSWORD": parsed.password or "",
        "HOST": parsed.hostname or "localhost",
        "PORT": str(parsed.port or 3306),
        "OPTIONS": {"charset": charset},
    }


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-spin-backend")

DEBUG = _env_bool("DJANGO_DEBUG")

ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "campaigns",
    "prize",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "spin_backend.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "spin_backend.wsgi.application"

_database_url = os.environ.get("DATABASE_URL")
if _database_url:
    DATABASES = {"default": _database_from_url(_database_url)}
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

LANGUAGE_CODE = "fr-fr"

TIME_ZONE = "Europe/Paris"

USE_I18N = True

USE_TZ = True

STATIC_URL = "/static/"

STATIC_ROOT = BASE_DIR / "static"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

SESSION_COOKIE_AGE = 60 * 60 * 24
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SECURE = not DEBUG

CITY_SESSION_KEY = "spin_city_auth"
CAMPAIGN_SESSION_KEY = "spin_campaign_auth"

# Notification side-channel. Both transports stay off until configured.
REDIS_URL = os.environ.get("REDIS_URL")
PRIZE_NOTIFY_CHANNEL = os.environ.get("PRIZE_NOTIFY_CHANNEL", "prize:gifts")
PRIZE_BROADCAST_URL = os.environ.get("PRIZE_BROADCAST_URL")
PRIZE_BROADCAST_TOKEN = os.environ.get("PRIZE_BROADCAST_TOKEN")
PRIZE_BROADCAST_TIMEOUT = int(os.environ.get("PRIZE_BROADCAST_TIMEOUT", "5"))

# Allocation engine.
PRIZE_RESERVE_ATTEMPTS = int(os.environ.get("PRIZE_RESERVE_ATTEMPTS", "3"))
PRIZE_CITY_SCOPE_POLICY = os.environ.get("PRIZE_CITY_SCOPE_POLICY", "open")
PRIZE_VENUE_SCOPE_POLICY = os.environ.get("PRIZE_VENUE_SCOPE_POLICY", "closed")
PRIZE_ZERO_CEILING_UNLIMITED = _env_bool("PRIZE_ZERO_CEILING_UNLIMITED", True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.environ.get("DJANGO_LOG_LEVEL", "INFO"),
    },
}
