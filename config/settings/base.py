import os
from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent.parent

env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    CSRF_TRUSTED_ORIGINS=(list, []),
)
environ.Env.read_env(os.path.join(BASE_DIR, ".env"))


# ============================================
# Docker Secrets Support
# ============================================
def get_secret(secret_name, default=None):
    """
    Read secret from Docker secrets or fall back to environment variable.

    Docker secrets are mounted at /run/secrets/<secret_name> in containers.
    """
    secret_path = f"/run/secrets/{secret_name}"
    if os.path.exists(secret_path):
        with open(secret_path) as f:
            return f.read().strip()
    env_key = secret_name.upper().replace("-", "_")
    return os.environ.get(env_key, default)


# ============================================
# Core Django Settings
# ============================================
SECRET_KEY = get_secret("django_secret_key", env("SECRET_KEY", default="insecure-dev-key-change-in-production"))
DEBUG = env("DEBUG")
ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# Public URL of this service, used to build gateway return URLs
SITE_URL = env("SITE_URL", default="http://localhost:8000")

_csrf_origins = env("CSRF_TRUSTED_ORIGINS", default=[])
if SITE_URL and SITE_URL not in _csrf_origins:
    _csrf_origins.insert(0, SITE_URL)
CSRF_TRUSTED_ORIGINS = _csrf_origins

AUTH_USER_MODEL = "accounts.User"

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "django_q",
    # Local apps
    "apps.core",
    "apps.accounts",
    "apps.properties",
    "apps.cards",
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

WSGI_APPLICATION = "config.wsgi.application"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
# Fee cycles and "today" for reminders are computed in this zone
TIME_ZONE = env("TIME_ZONE", default="Asia/Ho_Chi_Minh")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ============================================
# Redis Configuration (optional)
# ============================================
REDIS_URL = env("REDIS_URL", default=None)

if REDIS_URL:
    # Use django-redis for caching; also backs the shared order store and job locks
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": REDIS_URL,
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        }
    }
else:
    # Default to database cache when Redis not available
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.db.DatabaseCache",
            "LOCATION": "django_cache",
        }
    }

# ============================================
# Django-Q2 Task Queue
# ============================================
Q_CLUSTER = {
    "name": "cardmanager",
    "workers": env.int("Q_WORKERS", default=2),
    "recycle": 500,
    "timeout": 120,
    "retry": 180,
    "queue_limit": 50,
    "bulk": 10,
}

# Use Redis broker when available, otherwise fall back to ORM
if REDIS_URL:
    Q_CLUSTER["redis"] = REDIS_URL
else:
    Q_CLUSTER["orm"] = "default"

# ============================================
# Card Pricing & Capacity
# ============================================
CARD_DEFAULT_PRICE = env.int("CARD_DEFAULT_PRICE", default=30000)
CARD_CURRENCY = env("CARD_CURRENCY", default="VND")
CARD_CAPACITY_PER_BEDROOM = env.int("CARD_CAPACITY_PER_BEDROOM", default=2)
CARD_CAPACITY_DEFAULT = env.int("CARD_CAPACITY_DEFAULT", default=4)

# In-process map by default; point at CacheOrderStore to share it across workers
CARD_ORDER_STORE = env("CARD_ORDER_STORE", default="apps.cards.order_store.InMemoryOrderStore")

# ============================================
# Card Fee Cycle & Reminders
# ============================================
CARD_FEE_CYCLE_MONTHS = env.int("CARD_FEE_CYCLE_MONTHS", default=30)
CARD_FEE_REMINDER_INTERVAL_HOURS = env.int("CARD_FEE_REMINDER_INTERVAL_HOURS", default=24)
CARD_FEE_GRACE_DAYS = env.int("CARD_FEE_GRACE_DAYS", default=6)
CARD_FEE_MAX_REMINDERS = env.int("CARD_FEE_MAX_REMINDERS", default=6)
CARD_FEE_REMINDERS_ENABLED = env.bool("CARD_FEE_REMINDERS_ENABLED", default=True)
CARD_STATUS_UPDATE_ENABLED = env.bool("CARD_STATUS_UPDATE_ENABLED", default=True)
CARD_SUSPEND_AFTER_DAYS = env.int("CARD_SUSPEND_AFTER_DAYS", default=6)

# ============================================
# VNPAY Gateway
# ============================================
VNPAY_TMN_CODE = env("VNPAY_TMN_CODE", default="")
VNPAY_HASH_SECRET = get_secret("vnpay_hash_secret", env("VNPAY_HASH_SECRET", default=""))
VNPAY_URL = env("VNPAY_URL", default="https://sandbox.vnpayment.vn/paymentv2/vpcpay.html")
VNPAY_RETURN_URL = env("VNPAY_RETURN_URL", default=f"{SITE_URL}/payments/vnpay/return/")
VNPAY_VERSION = env("VNPAY_VERSION", default="2.1.0")
VNPAY_COMMAND = env("VNPAY_COMMAND", default="pay")

# ============================================
# Collaborating Services
# ============================================
NOTIFICATION_SERVICE_URL = env("NOTIFICATION_SERVICE_URL", default="http://localhost:8086")
BILLING_SERVICE_URL = env("BILLING_SERVICE_URL", default="http://localhost:8085")
SERVICE_HTTP_TIMEOUT = env.int("SERVICE_HTTP_TIMEOUT", default=10)

# Logging
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
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
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": env("DJANGO_LOG_LEVEL", default="INFO"),
            "propagate": False,
        },
        "django.security": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "apps": {
            "handlers": ["console"],
            "level": env("APPS_LOG_LEVEL", default="INFO"),
            "propagate": False,
        },
    },
}
