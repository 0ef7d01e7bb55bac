from datetime import timedelta
from io import StringIO
from unittest import mock

from dateutil.relativedelta import relativedelta
from django.core.cache import cache
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone

from apps.cards.models import CardFeeReminderState
from apps.cards.tasks import send_card_fee_reminders, sync_card_reminder_states, update_card_statuses
from apps.core.services.notifications import notification_client

from .base import BaseTestCase


# ═══════════════════════════════════════════════════════════
#  FEE REMINDER JOB
# ═══════════════════════════════════════════════════════════

class SendCardFeeRemindersTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.today = timezone.localdate()
        self.elevator = self.make_card("ELEVATOR")
        self.resident = self.make_card("RESIDENT", citizen_id="079201000001")
        self.elevator_state = self.make_state(self.elevator, next_due_date=self.today)
        self.resident_state = self.make_state(self.resident, next_due_date=self.today - timedelta(days=1))

    def test_one_notification_per_resident(self):
        with mock.patch.object(notification_client, "send_resident_notification", return_value=True) as send:
            results = send_card_fee_reminders(self.today)

        self.assertEqual(results["notifications"], 1)
        self.assertEqual(results["states_marked"], 2)
        self.assertEqual(results["errors"], [])

        args = send.call_args[0]
        self.assertEqual(args[0], self.owner.pk)
        self.assertIsNone(args[1])
        self.assertEqual(args[2], "CARD_FEE_REMINDER")
        self.assertEqual(args[6], "CARD_FEE")
        self.assertEqual(args[7]["elevatorCardsDue"], "1")
        self.assertEqual(args[7]["residentCardsDue"], "1")

        for state in (self.elevator_state, self.resident_state):
            state.refresh_from_db()
            self.assertEqual(state.reminder_count, 1)

    def test_second_run_same_day_sends_nothing(self):
        with mock.patch.object(notification_client, "send_resident_notification", return_value=True) as send:
            send_card_fee_reminders(self.today)
            results = send_card_fee_reminders(self.today)
        self.assertEqual(send.call_count, 1)
        self.assertEqual(results["notifications"], 0)

    def test_cancelled_card_not_reminded(self):
        self.resident.status = "CANCELLED"
        self.resident.save(update_fields=["status"])
        with mock.patch.object(notification_client, "send_resident_notification", return_value=True):
            results = send_card_fee_reminders(self.today)
        self.assertEqual(results["states_marked"], 1)
        self.resident_state.refresh_from_db()
        self.assertEqual(self.resident_state.reminder_count, 0)

    def test_delivery_failure_is_reported(self):
        with mock.patch.object(notification_client, "send_resident_notification", return_value=False):
            results = send_card_fee_reminders(self.today)
        self.assertEqual(results["notifications"], 0)
        self.assertEqual(len(results["errors"]), 1)

    @override_settings(CARD_FEE_REMINDERS_ENABLED=False)
    def test_disabled(self):
        self.assertEqual(send_card_fee_reminders(self.today), {"disabled": True})

    def test_skips_while_previous_run_holds_lock(self):
        cache.add("job_lock:cards.send_card_fee_reminders", "other-run", 60)
        with mock.patch.object(notification_client, "send_resident_notification") as send:
            self.assertEqual(send_card_fee_reminders(self.today), {"skipped": True})
        send.assert_not_called()

    def test_notification_client_posts_private_notification(self):
        with mock.patch.object(notification_client.session, "post") as post:
            post.return_value.status_code = 201
            results = send_card_fee_reminders(self.today)

        self.assertEqual(results["notifications"], 1)
        url = post.call_args[0][0]
        payload = post.call_args[1]["json"]
        self.assertEqual(url, "http://notifications.test/api/notifications/internal")
        self.assertEqual(payload["residentId"], str(self.owner.pk))
        self.assertNotIn("buildingId", payload)
        self.assertEqual(payload["type"], "CARD_FEE_REMINDER")


class SyncCardReminderStatesTests(BaseTestCase):

    def test_seeds_missing_states(self):
        card = self.make_card("ELEVATOR")
        results = sync_card_reminder_states()
        self.assertEqual(results["seeded"], 1)
        self.assertTrue(CardFeeReminderState.objects.filter(card_id=card.pk).exists())


# ═══════════════════════════════════════════════════════════
#  STATUS SWEEP
# ═══════════════════════════════════════════════════════════

class UpdateCardStatusesTests(BaseTestCase):

    def approved_months_ago(self, months, days=0, **fields):
        card = self.make_card("ELEVATOR", **fields)
        card.approved_at = timezone.now() - relativedelta(months=months, days=days)
        card.save(update_fields=["approved_at"])
        return card

    def test_renewal_then_suspension(self):
        fresh = self.approved_months_ago(29)
        due = self.approved_months_ago(30, days=1)
        overdue = self.approved_months_ago(30, days=12)

        results = update_card_statuses(timezone.localdate())
        self.assertEqual(results, {"needs_renewal": 1, "suspended": 1})

        for card, status in ((fresh, "APPROVED"), (due, "NEEDS_RENEWAL"), (overdue, "SUSPENDED")):
            card.refresh_from_db()
            self.assertEqual(card.status, status)

    def test_needs_renewal_card_gets_suspended(self):
        card = self.approved_months_ago(30, days=15, status="NEEDS_RENEWAL")
        update_card_statuses(timezone.localdate())
        card.refresh_from_db()
        self.assertEqual(card.status, "SUSPENDED")

    def test_unpaid_or_cancelled_cards_untouched(self):
        cancelled = self.approved_months_ago(31, status="CANCELLED")
        results = update_card_statuses(timezone.localdate())
        self.assertEqual(results, {"needs_renewal": 0, "suspended": 0})
        cancelled.refresh_from_db()
        self.assertEqual(cancelled.status, "CANCELLED")

    @override_settings(CARD_STATUS_UPDATE_ENABLED=False)
    def test_disabled(self):
        self.assertEqual(update_card_statuses(), {"disabled": True})


class SetupCardSchedulesTests(BaseTestCase):

    def test_registers_schedules_idempotently(self):
        from django_q.models import Schedule

        call_command("setup_card_schedules", stdout=StringIO())
        call_command("setup_card_schedules", stdout=StringIO())
        self.assertEqual(
            set(Schedule.objects.values_list("func", flat=True)),
            {
                "apps.cards.tasks.send_card_fee_reminders",
                "apps.cards.tasks.update_card_statuses",
                "apps.cards.tasks.sync_card_reminder_states",
            },
        )
