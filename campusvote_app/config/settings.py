"""Django settings for Campus Vote.

All deploy-specific values come from the environment. The defaults are
suitable for local development and the test suite (sqlite, console email).
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


BASE_DIR: Path = Path(__file__).resolve().parent.parent

DEBUG: bool = _env_bool("DEBUG", False)
SECRET_KEY: str = os.getenv("SECRET_KEY", "campusvote-insecure-development-key")

if os.getenv("ALLOWED_HOSTS"):
    ALLOWED_HOSTS: list[str] = [h.strip() for h in os.environ["ALLOWED_HOSTS"].split(",") if h.strip()]
else:
    ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "post_office",
    "voting",
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

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]


if os.getenv("DATABASE_URL"):
    database_url: str = os.environ["DATABASE_URL"]
    parsed = urlparse(database_url)

    if parsed.scheme in {"postgres", "postgresql"}:
        DATABASES = {
            "default": {
                "ENGINE": "django.db.backends.postgresql",
                "NAME": parsed.path.lstrip("/"),
                "USER": parsed.username,
                "PASSWORD": parsed.password,
                "HOST": parsed.hostname,
                "PORT": parsed.port or "5432",
                "ATOMIC_REQUESTS": False,
            }
        }
    elif parsed.scheme == "sqlite":
        DATABASES = {
            "default": {
                "ENGINE": "django.db.backends.sqlite3",
                "NAME": parsed.path or str(BASE_DIR / "db.sqlite3"),
            }
        }
    else:
        raise ValueError(f"For DATABASE_URL, only postgres and sqlite are supported, not {parsed.scheme!r}.")
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE: str = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = os.getenv("STATIC_ROOT", str(BASE_DIR / "staticfiles"))


# Email goes through django-post-office's queue; the actual transport is the
# backend configured under POST_OFFICE["BACKENDS"].
EMAIL_BACKEND = "post_office.EmailBackend"
DEFAULT_FROM_EMAIL: str = os.getenv("DEFAULT_FROM_EMAIL", "Campus Vote <noreply@campusvote.local>")

if os.getenv("EMAIL_HOST"):
    _delivery_backend = "django.core.mail.backends.smtp.EmailBackend"
    EMAIL_HOST = os.getenv("EMAIL_HOST")
    EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
    EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
    EMAIL_PORT = _env_int("EMAIL_PORT", 587)
    EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", True)
else:
    _delivery_backend = "django.core.mail.backends.console.EmailBackend"

POST_OFFICE = {
    "BACKENDS": {
        "default": _delivery_backend,
    },
    "DEFAULT_PRIORITY": "now" if DEBUG else "medium",
    "MESSAGE_ID_ENABLED": True,
}


# Elections.
ELECTION_IRV_MAX_ROUNDS: int = _env_int("ELECTION_IRV_MAX_ROUNDS", 100)

# PostgreSQL statement_timeout applied to the ballot insert transaction.
# 0 disables it; other database vendors ignore it.
ELECTION_CAST_STATEMENT_TIMEOUT_MS: int = _env_int("ELECTION_CAST_STATEMENT_TIMEOUT_MS", 5000)

ELECTION_VOTE_RECEIPT_EMAIL_ENABLED: bool = _env_bool("ELECTION_VOTE_RECEIPT_EMAIL_ENABLED", True)
ELECTION_VOTE_RECEIPT_EMAIL_SUBJECT: str = os.getenv(
    "ELECTION_VOTE_RECEIPT_EMAIL_SUBJECT",
    "Your vote in {election_title} was recorded",
)

# Election titles containing any of these (case-insensitive) count as
# "special" elections for the impact score.
ELECTION_SPECIAL_TITLE_KEYWORDS: tuple[str, ...] = tuple(
    k.strip().lower()
    for k in os.getenv("ELECTION_SPECIAL_TITLE_KEYWORDS", "sga,general,student government").split(",")
    if k.strip()
)


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "health_endpoint": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
    },
    "formatters": {
        "default": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
        "server": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["health_endpoint"],
        },
    },
    "loggers": {
        "django.server": {
            "handlers": ["server"],
            "level": "INFO",
            "propagate": False,
        },
        "voting": {
            "handlers": ["console"],
            "level": os.getenv("VOTING_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("LOG_LEVEL", "WARNING"),
    },
}


SENTRY_DSN: str | None = os.getenv("SENTRY_DSN") or None
if SENTRY_DSN:
    import logging

    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0")),
        send_default_pii=False,
    )
