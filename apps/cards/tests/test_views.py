import json
from decimal import Decimal
from unittest import mock

from django.test import Client
from django.urls import reverse

from apps.cards.models import CardRegistration, GatewayCallbackLog
from apps.cards.order_store import get_order_store
from apps.core.services.billing import billing_client
from apps.core.services.notifications import notification_client

from .base import BaseTestCase


class ViewTestCase(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.client = Client()
        patcher = mock.patch.object(notification_client, "send_resident_notification", return_value=True)
        self.send_notification = patcher.start()
        self.addCleanup(patcher.stop)

    def post_json(self, url, data=None):
        return self.client.post(url, data=json.dumps(data or {}), content_type="application/json")


# ═══════════════════════════════════════════════════════════
#  RESIDENT ENDPOINTS
# ═══════════════════════════════════════════════════════════

class ResidentCardViewTests(ViewTestCase):

    def setUp(self):
        super().setUp()
        self.client.force_login(self.owner_user)

    def test_login_required(self):
        self.client.logout()
        response = self.client.get(reverse("cards_resident:list", args=["elevator"]))
        self.assertEqual(response.status_code, 401)

    def test_admin_role_cannot_use_resident_endpoints(self):
        self.client.force_login(self.admin_user)
        response = self.client.get(reverse("cards_resident:list", args=["elevator"]))
        self.assertEqual(response.status_code, 403)

    def test_create_and_list(self):
        response = self.post_json(
            reverse("cards_resident:list", args=["vehicle"]),
            {"unit_id": str(self.unit.pk), "license_plate": "30F-888.88", "vehicle_type": "MOTORBIKE"},
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["status"], "READY_FOR_PAYMENT")
        self.assertEqual(Decimal(body["payment_amount"]), Decimal("30000"))
        self.assertEqual(body["license_plate"], "30F-888.88")

        listing = self.client.get(reverse("cards_resident:list", args=["vehicle"]))
        self.assertEqual([r["id"] for r in listing.json()["results"]], [body["id"]])

    def test_create_form_post(self):
        response = self.client.post(reverse("cards_resident:list", args=["elevator"]), {"unit_id": str(self.unit.pk)})
        self.assertEqual(response.status_code, 201)

    def test_errors_map_to_status_codes(self):
        url = reverse("cards_resident:list", args=["elevator"])
        self.assertEqual(self.post_json(url, {}).status_code, 400)
        self.assertEqual(self.post_json(reverse("cards_resident:list", args=["parking"]), {}).status_code, 400)

        self.post_json(url, {"unit_id": str(self.unit.pk)})
        self.post_json(url, {"unit_id": str(self.unit.pk)})
        response = self.post_json(url, {"unit_id": str(self.unit.pk)})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "CapacityExceeded")

        self.client.force_login(self.outsider_user)
        response = self.post_json(url, {"unit_id": str(self.unit.pk)})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "NotHouseholdMember")

    def test_malformed_json(self):
        response = self.client.post(
            reverse("cards_resident:list", args=["elevator"]), data="{not json", content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)

    def test_detail_of_other_users_card(self):
        registration = self.create_card("ELEVATOR", user=self.member_user)
        response = self.client.get(reverse("cards_resident:detail", args=["elevator", registration.pk]))
        self.assertEqual(response.status_code, 403)

    def test_detail_not_found(self):
        import uuid

        response = self.client.get(reverse("cards_resident:detail", args=["elevator", uuid.uuid4()]))
        self.assertEqual(response.status_code, 404)

    def test_pay(self):
        registration = self.create_card("ELEVATOR")
        response = self.post_json(reverse("cards_resident:pay", args=["elevator", registration.pk]))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertIn("vnp_SecureHash=", body["payment_url"])
        self.assertEqual(Decimal(body["amount"]), Decimal("30000"))
        registration.refresh_from_db()
        self.assertEqual(registration.status, "PAYMENT_PENDING")

    def test_batch_pay(self):
        first = self.create_card("ELEVATOR")
        second = self.create_card("ELEVATOR")
        response = self.post_json(
            reverse("cards_resident:batch_pay", args=["elevator"]),
            {"unit_id": str(self.unit.pk), "registration_ids": [str(first.pk), str(second.pk)]},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["amount"]), Decimal("60000"))

    def test_batch_pay_requires_ids(self):
        response = self.post_json(
            reverse("cards_resident:batch_pay", args=["elevator"]),
            {"unit_id": str(self.unit.pk), "registration_ids": []},
        )
        self.assertEqual(response.status_code, 400)

    def test_cancel(self):
        registration = self.create_card("ELEVATOR")
        url = reverse("cards_resident:cancel", args=["elevator", registration.pk])
        self.assertEqual(self.post_json(url).json()["status"], "CANCELLED")
        self.assertEqual(self.post_json(url).status_code, 200)

    def test_capacity(self):
        self.create_card("ELEVATOR")
        response = self.client.get(reverse("cards_resident:capacity", args=["elevator", self.unit.pk]))
        self.assertEqual(response.json()["max_cards"], 2)
        self.assertEqual(response.json()["active_cards"], 1)

    def test_pricing(self):
        response = self.client.get(reverse("cards_resident:pricing"))
        self.assertEqual(response.json(), {"RESIDENT": "30000", "ELEVATOR": "30000", "VEHICLE": "30000"})


# ═══════════════════════════════════════════════════════════
#  ADMIN ENDPOINTS
# ═══════════════════════════════════════════════════════════

class AdminCardViewTests(ViewTestCase):

    def setUp(self):
        super().setUp()
        self.client.force_login(self.admin_user)

    def test_resident_cannot_decide(self):
        self.client.force_login(self.owner_user)
        card = self.make_card("ELEVATOR", status="PENDING", approved_days_ago=None)
        response = self.post_json(reverse("cards_admin:decision", args=["elevator", card.pk]), {"decision": "APPROVE"})
        self.assertEqual(response.status_code, 403)

    def test_approve(self):
        card = self.make_card("ELEVATOR", status="PENDING", approved_days_ago=None)
        response = self.post_json(
            reverse("cards_admin:decision", args=["elevator", card.pk]), {"decision": "APPROVE", "note": "OK"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "APPROVED")
        self.send_notification.assert_called_once()

    def test_approve_unpaid_is_conflict(self):
        registration = self.create_card("ELEVATOR")
        response = self.post_json(
            reverse("cards_admin:decision", args=["elevator", registration.pk]), {"decision": "APPROVE"},
        )
        self.assertEqual(response.status_code, 409)

    def test_list_filters_by_status(self):
        self.make_card("ELEVATOR", status="PENDING", approved_days_ago=None)
        self.make_card("ELEVATOR", status="APPROVED")
        response = self.client.get(reverse("cards_admin:list", args=["elevator"]), {"status": "pending"})
        self.assertEqual(len(response.json()["results"]), 1)

    def test_update_price(self):
        response = self.post_json(reverse("cards_admin:update_price", args=["vehicle"]), {"price": "50000"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["price"]), Decimal("50000"))
        self.assertEqual(self.post_json(reverse("cards_admin:update_price", args=["vehicle"]), {"price": "0"}).status_code, 400)
        self.assertEqual(self.post_json(reverse("cards_admin:update_price", args=["vehicle"]), {"price": "NaN"}).status_code, 400)

    def test_reminder_states(self):
        self.make_state(self.make_card("ELEVATOR"))
        response = self.client.get(reverse("cards_admin:reminder_states"), {"card_type": "elevator"})
        self.assertEqual(len(response.json()["results"]), 1)


# ═══════════════════════════════════════════════════════════
#  GATEWAY RETURN
# ═══════════════════════════════════════════════════════════

class GatewayReturnViewTests(ViewTestCase):

    def setUp(self):
        super().setUp()
        self.client.force_login(self.owner_user)
        self.registration = self.create_card("ELEVATOR")
        # Pay through the view so the shared order store holds the mapping
        response = self.post_json(reverse("cards_resident:pay", args=["elevator", self.registration.pk]))
        self.transaction_ref = response.json()["transaction_ref"]
        self.client.logout()

    def test_success_return(self):
        with mock.patch.object(billing_client, "record_payment", return_value=True) as record:
            response = self.client.get(reverse("cards_gateway:vnpay_return"), self.callback_params(self.transaction_ref))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["registration_id"], str(self.registration.pk))
        record.assert_called_once()
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, "PENDING")

        log = GatewayCallbackLog.objects.get()
        self.assertEqual(log.status, "processed")
        self.assertTrue(log.success)
        self.assertEqual(log.registration_id, self.registration.pk)
        self.assertIsNone(get_order_store().get(int(self.transaction_ref.split("_")[0])))

    def test_ipn_post_failure(self):
        params = self.callback_params(self.transaction_ref, response_code="24", transaction_status="02")
        response = self.client.post(reverse("cards_gateway:vnpay_return"), params)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["success"])
        self.assertEqual(CardRegistration.objects.get(pk=self.registration.pk).status, "READY_FOR_PAYMENT")

    def test_unknown_reference_rejected(self):
        response = self.client.get(reverse("cards_gateway:vnpay_return"), self.callback_params("987654_1"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(GatewayCallbackLog.objects.get().status, "rejected")


class HealthCheckTests(ViewTestCase):

    def test_health(self):
        response = self.client.get("/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["checks"]["database"], "connected")
        self.assertEqual(response.json()["checks"]["vnpay"], "configured")
