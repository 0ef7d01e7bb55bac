import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

# Billing endpoints per card type
INVOICE_PATHS = {
    "VEHICLE": "/api/invoices/vehicle-registration-payment",
    "ELEVATOR": "/api/invoices/elevator-card-payment",
    "RESIDENT": "/api/invoices/resident-card-payment",
}


class BillingClient:
    """Reports confirmed card payments to the billing service."""

    def __init__(self):
        self._session = None

    @property
    def session(self):
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def record_payment(self, card_type, payload):
        """
        POST one confirmed card payment.

        Returns True when billing accepted it. Raises ValueError for an
        unknown card type and ``requests.RequestException`` on transport or
        HTTP errors; callers decide whether that is fatal.
        """
        path = INVOICE_PATHS.get(card_type)
        if not path:
            raise ValueError(f"Unknown card type for billing: {card_type}")

        url = settings.BILLING_SERVICE_URL.rstrip("/") + path
        resp = self.session.post(url, json=payload, timeout=settings.SERVICE_HTTP_TIMEOUT)
        resp.raise_for_status()
        logger.info(
            "Billing recorded %s payment for registration %s (status %s)",
            card_type, payload.get("registrationId"), resp.status_code,
        )
        return True


billing_client = BillingClient()
