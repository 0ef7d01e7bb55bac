from datetime import date, timedelta

from dateutil.relativedelta import relativedelta
from django.test import override_settings
from django.utils import timezone

from apps.accounts.models import User
from apps.cards.exceptions import ReminderStateNotFound
from apps.cards.models import CardFeeReminderState
from apps.cards.reminders import (
    FeeReminderService,
    ReminderConfig,
    build_reminder_batches,
    counts_text,
    reminder_message,
    unit_label,
)

from .base import BaseTestCase


# ═══════════════════════════════════════════════════════════
#  CYCLE RESET
# ═══════════════════════════════════════════════════════════

class ResetReminderTests(BaseTestCase):

    def test_cycle_starts_at_approval(self):
        card = self.make_card("ELEVATOR", approved_days_ago=3)
        state = FeeReminderService.reset_for_registration(card)
        start = timezone.localtime(card.approved_at).date()
        self.assertEqual(state.cycle_start_date, start)
        self.assertEqual(state.next_due_date, start + relativedelta(months=30))
        self.assertEqual(state.max_reminders, 6)

    def test_cycle_falls_back_to_payment_then_creation(self):
        card = self.make_card("ELEVATOR", status="PENDING", approved_days_ago=None)
        paid_at = timezone.now() - timedelta(days=2)
        state = FeeReminderService.reset_for_registration(card, payment_date=paid_at)
        self.assertEqual(state.cycle_start_date, timezone.localtime(paid_at).date())

        unpaid = self.make_card("ELEVATOR", status="PENDING", approved_days_ago=None, payment_date=None)
        state = FeeReminderService.reset_for_registration(unpaid)
        self.assertEqual(state.cycle_start_date, timezone.localtime(unpaid.created_at).date())

    def test_reset_resurrects_dormant_state(self):
        card = self.make_card("ELEVATOR")
        state = self.make_state(card, reminder_count=6, last_reminded_at=timezone.now())
        self.assertTrue(state.is_dormant)

        FeeReminderService.reset_for_registration(card)
        state.refresh_from_db()
        self.assertEqual(state.reminder_count, 0)
        self.assertIsNone(state.last_reminded_at)
        self.assertFalse(state.is_dormant)
        self.assertEqual(CardFeeReminderState.objects.filter(card_id=card.pk).count(), 1)

    def test_reset_keeps_populated_address(self):
        card = self.make_card("ELEVATOR")
        self.make_state(card, apartment_number="Old label", building_name="")
        state = FeeReminderService.reset_reminder_after_payment(
            "ELEVATOR", card.pk, apartment_number="New label", building_name="Tower A",
        )
        self.assertEqual(state.apartment_number, "Old label")
        self.assertEqual(state.building_name, "Tower A")

    @override_settings(CARD_FEE_CYCLE_MONTHS=12, CARD_FEE_MAX_REMINDERS=3)
    def test_cycle_and_limit_from_settings(self):
        card = self.make_card("ELEVATOR", approved_days_ago=0)
        state = FeeReminderService.reset_for_registration(card)
        self.assertEqual(state.next_due_date, state.cycle_start_date + relativedelta(months=12))
        self.assertEqual(state.max_reminders, 3)

    def test_get_state(self):
        card = self.make_card("ELEVATOR")
        with self.assertRaises(ReminderStateNotFound):
            FeeReminderService.get_state("ELEVATOR", card.pk)
        self.make_state(card)
        self.assertEqual(FeeReminderService.get_state("ELEVATOR", card.pk).card_id, card.pk)


# ═══════════════════════════════════════════════════════════
#  DUE SELECTION
# ═══════════════════════════════════════════════════════════

class FindDueStatesTests(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.today = timezone.localdate()
        self.card = self.make_card("ELEVATOR")

    def due_ids(self):
        return [state.pk for state in FeeReminderService.find_due_states(self.today)]

    def test_due_today(self):
        state = self.make_state(self.card, next_due_date=self.today)
        self.assertEqual(self.due_ids(), [state.pk])

    def test_not_yet_due(self):
        self.make_state(self.card, next_due_date=self.today + timedelta(days=1))
        self.assertEqual(self.due_ids(), [])

    def test_past_grace_window(self):
        self.make_state(self.card, next_due_date=self.today - timedelta(days=7))
        self.assertEqual(self.due_ids(), [])

    def test_inside_grace_window(self):
        state = self.make_state(self.card, next_due_date=self.today - timedelta(days=6))
        self.assertEqual(self.due_ids(), [state.pk])

    def test_inactive_cards_excluded(self):
        self.make_state(self.card)
        for status in ("CANCELLED", "SUSPENDED", "REJECTED"):
            self.card.status = status
            self.card.save(update_fields=["status"])
            self.assertEqual(self.due_ids(), [], status)

    def test_needs_renewal_card_still_reminded(self):
        self.card.status = "NEEDS_RENEWAL"
        self.card.save(update_fields=["status"])
        state = self.make_state(self.card)
        self.assertEqual(self.due_ids(), [state.pk])

    def test_maxed_out_state_excluded(self):
        self.make_state(self.card, reminder_count=6)
        self.assertEqual(self.due_ids(), [])

    def test_interval_between_reminders(self):
        state = self.make_state(self.card, reminder_count=1, last_reminded_at=timezone.now() - timedelta(hours=2))
        self.assertEqual(self.due_ids(), [])

        state.last_reminded_at = timezone.now() - timedelta(hours=25)
        state.save()
        self.assertEqual(self.due_ids(), [state.pk])

    def test_state_without_card_skipped(self):
        import uuid

        self.make_state(self.card, card_id=uuid.uuid4())
        self.assertEqual(self.due_ids(), [])


# ═══════════════════════════════════════════════════════════
#  MARK SENT
# ═══════════════════════════════════════════════════════════

class MarkReminderSentTests(BaseTestCase):

    def test_increments_and_stamps(self):
        state = self.make_state(self.make_card("ELEVATOR"))
        self.assertEqual(FeeReminderService.mark_reminder_sent([state]), 1)
        state.refresh_from_db()
        self.assertEqual(state.reminder_count, 1)
        self.assertIsNotNone(state.last_reminded_at)

    def test_count_never_exceeds_max(self):
        state = self.make_state(self.make_card("ELEVATOR"), reminder_count=5)
        self.assertEqual(FeeReminderService.mark_reminder_sent([state]), 1)
        self.assertEqual(FeeReminderService.mark_reminder_sent([state]), 0)
        state.refresh_from_db()
        self.assertEqual(state.reminder_count, 6)

    def test_six_daily_reminders_then_dormant(self):
        card = self.make_card("ELEVATOR")
        today = timezone.localdate()
        state = self.make_state(card, next_due_date=today - timedelta(days=5))
        for _ in range(6):
            due = FeeReminderService.find_due_states(today)
            self.assertEqual([s.pk for s in due], [state.pk])
            FeeReminderService.mark_reminder_sent(due)
            CardFeeReminderState.objects.filter(pk=state.pk).update(
                last_reminded_at=timezone.now() - timedelta(hours=24)
            )
        self.assertEqual(FeeReminderService.find_due_states(today), [])
        state.refresh_from_db()
        self.assertEqual(state.reminder_count, 6)


# ═══════════════════════════════════════════════════════════
#  SYNC SWEEP
# ═══════════════════════════════════════════════════════════

class SyncActiveCardsTests(BaseTestCase):

    def test_seeds_paid_active_cards_once(self):
        card = self.make_card("ELEVATOR")
        self.make_card("ELEVATOR", status="CANCELLED")
        self.make_card("ELEVATOR", status="READY_FOR_PAYMENT", payment_status="UNPAID", approved_days_ago=None)

        results = FeeReminderService.sync_active_cards_into_reminder_state()
        self.assertEqual(results["seeded"], 1)
        state = CardFeeReminderState.objects.get()
        self.assertEqual(state.card_id, card.pk)
        self.assertEqual(state.resident_id, self.owner.pk)

        again = FeeReminderService.sync_active_cards_into_reminder_state()
        self.assertEqual(again["seeded"], 0)
        self.assertEqual(CardFeeReminderState.objects.count(), 1)

    def test_backfills_without_overwriting(self):
        card = self.make_card("ELEVATOR")
        state = self.make_state(card, resident_id=None, apartment_number="", building_name="Kept Name")

        results = FeeReminderService.sync_active_cards_into_reminder_state()
        self.assertEqual(results["backfilled"], 1)
        state.refresh_from_db()
        self.assertEqual(state.resident_id, self.owner.pk)
        self.assertEqual(state.apartment_number, "A-1203")
        self.assertEqual(state.building_name, "Kept Name")

    def test_vehicle_card_resolves_resident_from_user(self):
        card = self.make_card("VEHICLE", resident=None, user=self.member_user, license_plate="51A-55555")
        FeeReminderService.sync_active_cards_into_reminder_state()
        state = CardFeeReminderState.objects.get(card_id=card.pk)
        self.assertEqual(state.resident_id, self.member.pk)

    def test_vehicle_card_without_resident_skipped(self):
        user = User.objects.create_user(username="driver", password="pass1234")
        self.make_card("VEHICLE", resident=None, user=user, license_plate="51A-77777")
        results = FeeReminderService.sync_active_cards_into_reminder_state()
        self.assertEqual(results["skipped"], 1)
        self.assertFalse(CardFeeReminderState.objects.exists())

    def test_unresolved_vehicle_card_reported_on_every_sweep(self):
        user = User.objects.create_user(username="driver", password="pass1234")
        card = self.make_card("VEHICLE", resident=None, user=user, license_plate="51A-88888")
        for _ in range(2):
            with self.assertLogs("apps.cards.reminders", level="DEBUG") as logs:
                results = FeeReminderService.sync_active_cards_into_reminder_state()
            self.assertEqual(results["skipped"], 1)
            self.assertTrue(any(str(card.pk) in line for line in logs.output))


# ═══════════════════════════════════════════════════════════
#  MESSAGES
# ═══════════════════════════════════════════════════════════

class ReminderMessageTests(BaseTestCase):

    def test_counts_text(self):
        self.assertEqual(counts_text({"VEHICLE": 1}), "1 vehicle card")
        self.assertEqual(counts_text({"VEHICLE": 2, "ELEVATOR": 1}), "2 vehicle cards and 1 elevator card")
        self.assertEqual(
            counts_text({"RESIDENT": 1, "ELEVATOR": 2, "VEHICLE": 3}),
            "3 vehicle cards, 2 elevator cards and 1 resident card",
        )
        self.assertEqual(counts_text({}), "service cards")

    def test_unit_label(self):
        self.assertEqual(unit_label("A-1203", "Tower A"), "Apartment A-1203 - Tower A")
        self.assertEqual(unit_label(None, None), "Your apartment")

    def test_batches_group_by_resident_and_unit(self):
        today = date(2026, 10, 19)
        elevator = self.make_state(self.make_card("ELEVATOR"), next_due_date=today - timedelta(days=2))
        resident = self.make_state(
            self.make_card("RESIDENT", citizen_id="079201000001"), next_due_date=today,
        )
        other = self.make_state(
            self.make_card("ELEVATOR", resident=self.member, user=self.member_user), next_due_date=today,
        )

        batches = build_reminder_batches([elevator, resident, other], today)
        self.assertEqual(len(batches), 2)
        owner_batch = next(b for b in batches if b.resident_id == self.owner.pk)
        self.assertEqual(owner_batch.counts, {"ELEVATOR": 1, "RESIDENT": 1})
        self.assertEqual(owner_batch.max_days_since_due, 2)

        config = ReminderConfig(cycle_months=30, interval_hours=24, grace_days=6, max_reminders=6)
        title, message, data = reminder_message(owner_batch, config)
        self.assertEqual(title, "Service card fee reminder")
        self.assertIn("1 elevator card and 1 resident card", message)
        self.assertIn("within the next 4 days", message)
        self.assertEqual(data["elevatorCardsDue"], "1")
        self.assertEqual(data["residentCardsDue"], "1")
        self.assertEqual(data["vehicleCardsDue"], "0")
        self.assertEqual(data["reminderType"], "CARD_FEE")
