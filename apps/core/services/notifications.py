import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class ResidentNotificationClient:
    """
    Pushes resident notifications to the notification service.

    A ``building_id`` of None makes the notification private to one resident.
    Delivery failures are logged and reported as False, never raised.
    """

    path = "/api/notifications/internal"

    def __init__(self):
        self._session = None

    @property
    def session(self):
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Content-Type": "application/json"})
        return self._session

    @property
    def url(self):
        return settings.NOTIFICATION_SERVICE_URL.rstrip("/") + self.path

    def send_resident_notification(
        self,
        resident_id,
        building_id,
        notification_type,
        title,
        message,
        reference_id=None,
        reference_type=None,
        data=None,
    ):
        if resident_id is None and building_id is None:
            logger.debug("Skipping %s notification: no resident or building target", notification_type)
            return False

        payload = {
            "type": notification_type or "SYSTEM",
            "title": title,
            "message": message,
        }
        if resident_id is not None:
            payload["residentId"] = str(resident_id)
        if building_id is not None:
            payload["buildingId"] = str(building_id)
        if reference_id is not None:
            payload["referenceId"] = str(reference_id)
        if reference_type:
            payload["referenceType"] = reference_type
        if data:
            payload["data"] = data

        try:
            resp = self.session.post(self.url, json=payload, timeout=settings.SERVICE_HTTP_TIMEOUT)
            resp.raise_for_status()
            logger.info(
                "Notification %s delivered to resident %s (status %s)",
                notification_type, resident_id, resp.status_code,
            )
            return True
        except Exception:
            logger.exception("Notification %s delivery failed for resident %s", notification_type, resident_id)
            return False


notification_client = ResidentNotificationClient()
