"""Django settings for the Estate Ledger settlement service.


The project runs two flows over one relational store:
- Settlement: orders, payment confirmation, admin mints, wallet cash movements
- Reconciliation: backfill of settled state onto the distributed ledger


Everything environment-specific is read here once; services receive plain values.
"""

import os
from pathlib import Path
from decimal import Decimal


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_bool(name, default=""):
    v = os.getenv(name, default)
    return v.lower() in ("1", "true", "yes", "on")

def env_decimal(name, default=None):
    v = os.getenv(name)
    if v is None or v == "":
        return default
    if v.lower() == "none":
        return None
    return Decimal(v)

#######################
# Distributed ledger integration. Disabled => reconciliation refuses to start.
LEDGER = {
    "ENABLED": env_bool("LEDGER_ENABLED", "1"),
    "BACKEND": os.getenv("LEDGER_BACKEND", "stub"),  # 'stub' | 'gateway'
    "CONTRACT": os.getenv("LEDGER_CONTRACT", "estathub"),
    "GATEWAY_URL": os.getenv("LEDGER_GATEWAY_URL", "http://localhost:8000/stub/chain"),
    "TIMEOUT": float(os.getenv("LEDGER_TIMEOUT", "10")),
}

# Investment limits applied at order creation (None disables a bound)
SETTLEMENT = {
    "MIN_INVESTMENT_AMOUNT": env_decimal("MIN_INVESTMENT_AMOUNT", Decimal("100.00")),
    "MAX_INVESTMENT_AMOUNT": env_decimal("MAX_INVESTMENT_AMOUNT", Decimal("1000000.00")),
}
#######################


INSTALLED_APPS = [
	"django.contrib.admin",
	"django.contrib.auth",
	"django.contrib.contenttypes",
	"django.contrib.sessions",
	"django.contrib.messages",
	"django.contrib.staticfiles",
	# local apps
	"core",
	"api",
	"chain_stub",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.contrib.sessions.middleware.SessionMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
	"django.contrib.auth.middleware.AuthenticationMiddleware",
	"django.contrib.messages.middleware.MessageMiddleware",
]


ROOT_URLCONF = "estate_ledger.urls"
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


WSGI_APPLICATION = "estate_ledger.wsgi.application"


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "estate_ledger"),
            "USER": os.getenv("POSTGRES_USER", "estate_ledger"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "estate_ledger"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
            # BEGIN IMMEDIATE: writers queue on the database lock instead of failing on upgrade
            "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
            # File-backed so concurrent test threads share one database
            "TEST": {"NAME": BASE_DIR / "test_db.sqlite3"},
        }
    }


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOGGING = {
	"version": 1,
	"disable_existing_loggers": False,
	"formatters": {
		"plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
	},
	"handlers": {
		"console": {"class": "logging.StreamHandler", "formatter": "plain"},
	},
	"loggers": {
		"core": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
		"api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
		"chain_stub": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
	},
}


AUTH_PASSWORD_VALIDATORS = []


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Cash amounts are stored with 2 decimal places; certificate codes use this prefix.
CASH_DECIMAL_PLACES = 2
CERTIFICATE_CODE_PREFIX = "CERT"
