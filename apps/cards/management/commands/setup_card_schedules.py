"""
Register the Django-Q2 schedules of the cards app.

Usage:
    python manage.py setup_card_schedules
"""

from datetime import datetime, time, timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

SCHEDULES = [
    ("card-fee-reminders", "apps.cards.tasks.send_card_fee_reminders", time(8, 0)),
    ("card-status-update", "apps.cards.tasks.update_card_statuses", time(8, 0)),
    ("card-reminder-sync", "apps.cards.tasks.sync_card_reminder_states", time(2, 0)),
]


class Command(BaseCommand):
    help = "Create or update the daily Django-Q2 schedules for card fees and statuses"

    def handle(self, *args, **options):
        from django_q.models import Schedule

        for name, func, run_at in SCHEDULES:
            next_run = self._next_run(run_at)
            _, created = Schedule.objects.update_or_create(
                name=name,
                defaults={
                    "func": func,
                    "schedule_type": Schedule.DAILY,
                    "next_run": next_run,
                    "repeats": -1,
                },
            )
            verb = "Created" if created else "Updated"
            self.stdout.write(self.style.SUCCESS(f"{verb} schedule {name} ({func}) next run {next_run}"))

    def _next_run(self, run_at):
        now = timezone.localtime()
        candidate = timezone.make_aware(datetime.combine(now.date(), run_at))
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate
