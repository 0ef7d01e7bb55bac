"""
Fee cycles and reminder selection for paid cards.

Every card that is paid and still active owns one CardFeeReminderState. The
cycle starts at approval (else payment, else creation) and is due
``CARD_FEE_CYCLE_MONTHS`` later. From the due date the daily job reminds the
resident at most ``max_reminders`` times, spaced by the reminder interval,
while the state is within the grace window.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import timedelta

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .address import Found, address_resolver
from .exceptions import ReminderStateNotFound

logger = logging.getLogger(__name__)

LABEL_MAX_LENGTH = 100


@dataclass(frozen=True)
class ReminderConfig:
    cycle_months: int
    interval_hours: int
    grace_days: int
    max_reminders: int

    @classmethod
    def from_settings(cls):
        return cls(
            cycle_months=settings.CARD_FEE_CYCLE_MONTHS,
            interval_hours=settings.CARD_FEE_REMINDER_INTERVAL_HOURS,
            grace_days=settings.CARD_FEE_GRACE_DAYS,
            max_reminders=settings.CARD_FEE_MAX_REMINDERS,
        )


def _label(value):
    return (value or "")[:LABEL_MAX_LENGTH]


def _local_date(value):
    if value is None:
        return None
    if timezone.is_aware(value):
        return timezone.localtime(value).date()
    return value.date()


class FeeReminderService:

    @staticmethod
    def cycle_start_for(registration, payment_date=None):
        """Approval date, else payment date, else creation date, else today."""
        candidates = [payment_date]
        if registration is not None:
            candidates = [registration.approved_at, payment_date, registration.payment_date, registration.created_at]
        for candidate in candidates:
            if candidate is not None:
                return _local_date(candidate)
        return timezone.localdate()

    @staticmethod
    def reset_reminder_after_payment(
        card_type,
        card_id,
        unit_id=None,
        resident_id=None,
        user_id=None,
        apartment_number=None,
        building_name=None,
        payment_date=None,
    ):
        """
        Start a fresh fee cycle for a card: recompute both cycle dates and zero
        the counters. Address fields are only filled where still empty.
        """
        from .models import CardFeeReminderState, CardRegistration

        config = ReminderConfig.from_settings()
        registration = CardRegistration.objects.filter(pk=card_id, card_type=card_type).first()
        cycle_start = FeeReminderService.cycle_start_for(registration, payment_date)

        with transaction.atomic():
            state = (
                CardFeeReminderState.objects.select_for_update()
                .filter(card_type=card_type, card_id=card_id)
                .first()
            )
            if state is None:
                state = CardFeeReminderState(card_type=card_type, card_id=card_id)

            state.unit_id = state.unit_id or unit_id
            state.resident_id = state.resident_id or resident_id
            state.user_id = state.user_id or user_id
            state.apartment_number = state.apartment_number or _label(apartment_number)
            state.building_name = state.building_name or _label(building_name)
            state.cycle_start_date = cycle_start
            state.next_due_date = cycle_start + relativedelta(months=config.cycle_months)
            state.reminder_count = 0
            state.max_reminders = config.max_reminders
            state.last_reminded_at = None
            state.save()

        logger.info(
            "Reminder cycle reset for %s card %s: start %s, due %s",
            card_type, card_id, state.cycle_start_date, state.next_due_date,
        )
        return state

    @staticmethod
    def reset_for_registration(registration, payment_date=None):
        return FeeReminderService.reset_reminder_after_payment(
            card_type=registration.card_type,
            card_id=registration.pk,
            unit_id=registration.unit_id,
            resident_id=registration.resident_id,
            user_id=registration.user_id,
            apartment_number=registration.apartment_number,
            building_name=registration.building_name,
            payment_date=payment_date or registration.payment_date,
        )

    @staticmethod
    def get_state(card_type, card_id):
        from .models import CardFeeReminderState

        state = CardFeeReminderState.objects.filter(card_type=card_type, card_id=card_id).first()
        if state is None:
            raise ReminderStateNotFound(f"No reminder state for {card_type} card {card_id}.")
        return state

    @staticmethod
    def find_due_states(today=None):
        """
        States due for a reminder on ``today``.

        The date and counter conditions are applied in the query; the card's
        current status is then checked against the live registration.
        """
        from .models import CardFeeReminderState, CardRegistration

        config = ReminderConfig.from_settings()
        today = today or timezone.localdate()
        cutoff = today - timedelta(days=config.grace_days)

        candidates = list(
            CardFeeReminderState.objects.filter(
                next_due_date__lte=today,
                next_due_date__gte=cutoff,
                reminder_count__lt=F("max_reminders"),
            )
        )
        if not candidates:
            return []

        cards = {
            pk: (card_type, status)
            for pk, card_type, status in CardRegistration.objects.filter(
                pk__in=[state.card_id for state in candidates]
            ).values_list("pk", "card_type", "status")
        }

        now = timezone.now()
        interval = timedelta(hours=config.interval_hours)
        due = []
        for state in candidates:
            card = cards.get(state.card_id)
            if card is None or card[0] != state.card_type:
                logger.debug("Reminder state %s has no matching card; skipping", state.pk)
                continue
            if card[1] in CardRegistration.INACTIVE_STATUSES:
                continue
            if state.last_reminded_at is None or now - state.last_reminded_at >= interval:
                due.append(state)
        return due

    @staticmethod
    def mark_reminder_sent(states):
        """Count one reminder on each state; states already at their maximum are left alone."""
        from .models import CardFeeReminderState

        now = timezone.now()
        marked = 0
        with transaction.atomic():
            for state in states:
                updated = CardFeeReminderState.objects.filter(
                    pk=state.pk, reminder_count__lt=F("max_reminders"),
                ).update(reminder_count=F("reminder_count") + 1, last_reminded_at=now)
                if updated:
                    state.reminder_count += 1
                    state.last_reminded_at = now
                    marked += 1
        return marked

    @staticmethod
    def days_since_due(state, today=None):
        today = today or timezone.localdate()
        if state.next_due_date is None or today <= state.next_due_date:
            return 0
        return (today - state.next_due_date).days

    @staticmethod
    def update_recipient_info(state, resident_id=None, apartment_number=None, building_name=None):
        """Fill in missing recipient fields; populated ones are kept."""
        changed = []
        if state.resident_id is None and resident_id is not None:
            state.resident_id = resident_id
            changed.append("resident_id")
        if not state.apartment_number and apartment_number:
            state.apartment_number = _label(apartment_number)
            changed.append("apartment_number")
        if not state.building_name and building_name:
            state.building_name = _label(building_name)
            changed.append("building_name")
        if changed:
            state.save(update_fields=changed + ["updated_at"])
        return changed

    @staticmethod
    def sync_active_cards_into_reminder_state():
        """
        Seed reminder states for paid, active cards that have none, and backfill
        missing recipient fields on existing states.
        """
        from .models import CardFeeReminderState, CardRegistration

        results = {"seeded": 0, "backfilled": 0, "skipped": 0}
        cards = (
            CardRegistration.objects.filter(payment_status="PAID")
            .exclude(status__in=CardRegistration.INACTIVE_STATUSES)
            .select_related("unit__building")
        )
        states = {
            (state.card_type, state.card_id): state
            for state in CardFeeReminderState.objects.filter(card_id__in=cards.values("pk"))
        }

        for card in cards:
            resident_id = card.resident_id
            apartment_number = card.apartment_number or card.unit.code
            building_name = card.building_name or card.unit.building.name
            if resident_id is None:
                resolution = address_resolver.resolve_by_user(card.user_id, card.unit_id)
                if isinstance(resolution, Found):
                    resident_id = resolution.info.resident_id
            if resident_id is None and card.card_type == "VEHICLE":
                logger.debug("Vehicle card %s has no resolvable resident; not tracking fees", card.pk)
                results["skipped"] += 1
                continue

            state = states.get((card.card_type, card.pk))
            try:
                if state is None:
                    FeeReminderService.reset_reminder_after_payment(
                        card_type=card.card_type,
                        card_id=card.pk,
                        unit_id=card.unit_id,
                        resident_id=resident_id,
                        user_id=card.user_id,
                        apartment_number=apartment_number,
                        building_name=building_name,
                        payment_date=card.payment_date,
                    )
                    results["seeded"] += 1
                    continue

                changed = FeeReminderService.update_recipient_info(
                    state, resident_id, apartment_number, building_name,
                )
                extra = []
                if state.unit_id is None:
                    state.unit_id = card.unit_id
                    extra.append("unit_id")
                if state.user_id is None:
                    state.user_id = card.user_id
                    extra.append("user_id")
                if extra:
                    state.save(update_fields=extra + ["updated_at"])
                if changed or extra:
                    results["backfilled"] += 1
            except Exception:
                logger.exception("Failed to sync reminder state for %s card %s", card.card_type, card.pk)
                results["skipped"] += 1

        return results


# --- Reminder batches ------------------------------------------------------

COUNT_LABELS = OrderedDict([
    ("VEHICLE", ("vehicle card", "vehicle cards")),
    ("ELEVATOR", ("elevator card", "elevator cards")),
    ("RESIDENT", ("resident card", "resident cards")),
])


@dataclass
class ReminderBatch:
    """Due states of one resident in one unit."""

    resident_id: object
    unit_id: object
    apartment_number: str = ""
    building_name: str = ""
    states: list = field(default_factory=list)
    counts: dict = field(default_factory=dict)
    max_days_since_due: int = 0

    def add(self, state, days_since_due):
        self.states.append(state)
        self.counts[state.card_type] = self.counts.get(state.card_type, 0) + 1
        self.max_days_since_due = max(self.max_days_since_due, days_since_due)


def unit_label(apartment_number, building_name):
    if apartment_number and building_name:
        return f"Apartment {apartment_number} - {building_name}"
    if apartment_number:
        return f"Apartment {apartment_number}"
    if building_name:
        return building_name
    return "Your apartment"


def counts_text(counts):
    parts = []
    for card_type, (singular, plural) in COUNT_LABELS.items():
        count = counts.get(card_type, 0)
        if count > 0:
            parts.append(f"{count} {singular if count == 1 else plural}")
    if not parts:
        return "service cards"
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


def ensure_resident(state):
    """Resident of a state, resolving and storing it from the user when missing."""
    if state.resident_id is not None:
        return state.resident_id
    if state.user_id is None:
        return None
    resolution = address_resolver.resolve_by_user(state.user_id, state.unit_id)
    if not isinstance(resolution, Found) or resolution.info.resident_id is None:
        return None
    info = resolution.info
    FeeReminderService.update_recipient_info(state, info.resident_id, info.apartment_number, info.building_name)
    return info.resident_id


def build_reminder_batches(states, today=None):
    """Group due states per unit and resident. States without a resident are dropped."""
    today = today or timezone.localdate()
    batches = OrderedDict()
    for state in states:
        resident_id = ensure_resident(state)
        if resident_id is None:
            logger.warning("Reminder state %s (card %s) has no resident; skipping", state.pk, state.card_id)
            continue
        key = (state.unit_id, resident_id)
        batch = batches.get(key)
        if batch is None:
            batch = ReminderBatch(
                resident_id=resident_id,
                unit_id=state.unit_id,
                apartment_number=state.apartment_number,
                building_name=state.building_name,
            )
            batches[key] = batch
        batch.add(state, FeeReminderService.days_since_due(state, today))
    return list(batches.values())


def reminder_message(batch, config=None):
    config = config or ReminderConfig.from_settings()
    remaining_days = max(0, config.grace_days - batch.max_days_since_due)
    title = "Service card fee reminder"
    message = (
        f"{unit_label(batch.apartment_number, batch.building_name)} has "
        f"{counts_text(batch.counts)} due for payment after {config.cycle_months} months of use. "
        f"Please complete payment within the next {remaining_days} days."
    )
    data = {
        "unitId": str(batch.unit_id) if batch.unit_id else "",
        "apartmentNumber": batch.apartment_number or "",
        "buildingName": batch.building_name or "",
        "vehicleCardsDue": str(batch.counts.get("VEHICLE", 0)),
        "elevatorCardsDue": str(batch.counts.get("ELEVATOR", 0)),
        "residentCardsDue": str(batch.counts.get("RESIDENT", 0)),
        "reminderType": "CARD_FEE",
    }
    return title, message, data
