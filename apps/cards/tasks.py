"""
Django-Q2 scheduled tasks for the cards app.

Register the schedules with ``python manage.py setup_card_schedules`` or
queue a run by hand:
    from django_q.tasks import async_task
    async_task('apps.cards.tasks.send_card_fee_reminders')
    async_task('apps.cards.tasks.update_card_statuses')
    async_task('apps.cards.tasks.sync_card_reminder_states')
"""

import logging
from datetime import timedelta

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.core.services.locks import single_instance

logger = logging.getLogger(__name__)


@single_instance("cards.sync_card_reminder_states")
def sync_card_reminder_states():
    """Seed missing reminder states and backfill recipient data."""
    from .reminders import FeeReminderService

    results = FeeReminderService.sync_active_cards_into_reminder_state()
    logger.info(
        "sync_card_reminder_states: %d seeded, %d backfilled, %d skipped.",
        results["seeded"], results["backfilled"], results["skipped"],
    )
    return results


@single_instance("cards.send_card_fee_reminders")
def send_card_fee_reminders(today=None):
    """
    Daily task (08:00): remind residents about card fees that are due.

    Sync states first, select the due ones, send one private notification per
    resident and unit, then count the reminder on every state that was sent.

    Returns:
        dict with notification and state counts.
    """
    from apps.core.services.notifications import notification_client

    from .reminders import (
        FeeReminderService,
        ReminderConfig,
        build_reminder_batches,
        reminder_message,
    )

    if not settings.CARD_FEE_REMINDERS_ENABLED:
        logger.debug("send_card_fee_reminders: disabled by configuration.")
        return {"disabled": True}

    today = today or timezone.localdate()
    results = {"notifications": 0, "states_marked": 0, "errors": []}

    try:
        FeeReminderService.sync_active_cards_into_reminder_state()
    except Exception as e:
        logger.exception("Reminder state sync failed before sending reminders")
        results["errors"].append(str(e))

    due_states = FeeReminderService.find_due_states(today)
    if not due_states:
        logger.info("send_card_fee_reminders: no card fees due on %s.", today)
        return results

    config = ReminderConfig.from_settings()
    processed = []
    for batch in build_reminder_batches(due_states, today):
        title, message, data = reminder_message(batch, config)
        try:
            sent = notification_client.send_resident_notification(
                batch.resident_id,
                None,
                "CARD_FEE_REMINDER",
                title,
                message,
                None,
                "CARD_FEE",
                data,
            )
            if sent:
                results["notifications"] += 1
            else:
                results["errors"].append(f"delivery failed for resident {batch.resident_id}")
        except Exception as e:
            logger.exception("Failed to send fee reminder to resident %s", batch.resident_id)
            results["errors"].append(str(e))
        processed.extend(batch.states)

    if processed:
        results["states_marked"] = FeeReminderService.mark_reminder_sent(processed)

    logger.info(
        "send_card_fee_reminders: %d notifications, %d states marked, %d errors.",
        results["notifications"], results["states_marked"], len(results["errors"]),
    )
    return results


@single_instance("cards.update_card_statuses")
def update_card_statuses(today=None):
    """
    Daily task: move approved, paid cards to NEEDS_RENEWAL once a fee cycle has
    passed since approval, and to SUSPENDED once ``CARD_SUSPEND_AFTER_DAYS`` past
    that due date have gone by.

    Returns:
        dict with needs_renewal and suspended counts.
    """
    from .models import CardRegistration

    if not settings.CARD_STATUS_UPDATE_ENABLED:
        logger.debug("update_card_statuses: disabled by configuration.")
        return {"disabled": True}

    today = today or timezone.localdate()
    cycle = relativedelta(months=settings.CARD_FEE_CYCLE_MONTHS)
    grace = timedelta(days=settings.CARD_SUSPEND_AFTER_DAYS)
    results = {"needs_renewal": 0, "suspended": 0}

    cards = CardRegistration.objects.filter(
        status__in=["APPROVED", "NEEDS_RENEWAL"],
        payment_status="PAID",
        approved_at__isnull=False,
    )

    with transaction.atomic():
        for card in cards.select_for_update():
            approved_date = timezone.localtime(card.approved_at).date()
            due_date = approved_date + cycle

            if today >= due_date + grace:
                new_status = "SUSPENDED"
            elif today >= due_date:
                new_status = "NEEDS_RENEWAL"
            else:
                continue
            if card.status == new_status:
                continue

            card.status = new_status
            card.save(update_fields=["status", "updated_at"])
            results["needs_renewal" if new_status == "NEEDS_RENEWAL" else "suspended"] += 1
            logger.info(
                "%s card %s moved to %s (approved %s, due %s)",
                card.card_type, card.pk, new_status, approved_date, due_date,
            )

    logger.info(
        "update_card_statuses: %d need renewal, %d suspended.",
        results["needs_renewal"], results["suspended"],
    )
    return results
