from .base import *  # noqa: F401, F403

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "cardmanager-tests",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# Run django-q tasks inline
Q_CLUSTER = {"name": "cardmanager-tests", "sync": True, "orm": "default"}

CARD_DEFAULT_PRICE = 30000
CARD_CAPACITY_PER_BEDROOM = 2
CARD_CAPACITY_DEFAULT = 4
CARD_ORDER_STORE = "apps.cards.order_store.InMemoryOrderStore"

VNPAY_TMN_CODE = "TESTTMN1"
VNPAY_HASH_SECRET = "test-hash-secret"
VNPAY_RETURN_URL = "http://testserver/payments/vnpay/return/"

NOTIFICATION_SERVICE_URL = "http://notifications.test"
BILLING_SERVICE_URL = "http://billing.test"

LOGGING["loggers"]["apps"]["level"] = "WARNING"  # noqa: F405
