import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

CARD_TYPE_CHOICES = [("RESIDENT", "Resident Card"), ("ELEVATOR", "Elevator Card"), ("VEHICLE", "Vehicle Card")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("properties", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CardPricing",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("card_type", models.CharField(choices=CARD_TYPE_CHOICES, max_length=10, unique=True)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal("0.01"))])),
                ("currency", models.CharField(default="VND", max_length=3)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="cards_cardpricing_created", to=settings.AUTH_USER_MODEL)),
                ("updated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="cards_cardpricing_updated", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "Card pricing",
                "ordering": ["card_type"],
            },
        ),
        migrations.CreateModel(
            name="CardRegistration",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("card_type", models.CharField(choices=CARD_TYPE_CHOICES, db_index=True, max_length=10)),
                ("request_type", models.CharField(choices=[("NEW_CARD", "New Card"), ("REPLACE_CARD", "Replacement Card")], default="NEW_CARD", max_length=15)),
                ("full_name", models.CharField(blank=True, default="", max_length=200)),
                ("phone_number", models.CharField(blank=True, default="", max_length=20)),
                ("citizen_id", models.CharField(blank=True, db_index=True, default="", max_length=20)),
                ("license_plate", models.CharField(blank=True, db_index=True, default="", max_length=20)),
                ("vehicle_type", models.CharField(blank=True, choices=[("CAR", "Car"), ("MOTORBIKE", "Motorbike")], default="", max_length=10)),
                ("vehicle_brand", models.CharField(blank=True, default="", max_length=100)),
                ("vehicle_color", models.CharField(blank=True, default="", max_length=50)),
                ("note", models.TextField(blank=True, default="")),
                ("apartment_number", models.CharField(blank=True, default="", max_length=50)),
                ("building_name", models.CharField(blank=True, default="", max_length=200)),
                ("payment_amount", models.DecimalField(decimal_places=2, editable=False, max_digits=12)),
                ("payment_status", models.CharField(choices=[("UNPAID", "Unpaid"), ("PAYMENT_PENDING", "Payment Pending"), ("PAYMENT_IN_PROGRESS", "Payment In Progress"), ("PAID", "Paid")], db_index=True, default="UNPAID", max_length=20)),
                ("payment_date", models.DateTimeField(blank=True, null=True)),
                ("payment_gateway", models.CharField(blank=True, default="", max_length=20)),
                ("transaction_ref", models.CharField(blank=True, db_index=True, default="", max_length=100)),
                ("payment_initiated_at", models.DateTimeField(blank=True, null=True)),
                ("status", models.CharField(choices=[("READY_FOR_PAYMENT", "Ready for Payment"), ("PAYMENT_PENDING", "Payment Pending"), ("PENDING", "Awaiting Review"), ("APPROVED", "Approved"), ("REJECTED", "Rejected"), ("CANCELLED", "Cancelled"), ("NEEDS_RENEWAL", "Needs Renewal"), ("SUSPENDED", "Suspended")], db_index=True, default="READY_FOR_PAYMENT", max_length=20)),
                ("admin_note", models.TextField(blank=True, default="")),
                ("rejection_reason", models.TextField(blank=True, default="")),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("approved_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="approved_card_registrations", to=settings.AUTH_USER_MODEL)),
                ("reissued_from", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reissues", to="cards.cardregistration")),
                ("resident", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="card_registrations", to="properties.resident")),
                ("unit", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="card_registrations", to="properties.unit")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="card_registrations", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [models.Index(fields=["card_type", "unit", "status"], name="card_reg_type_unit_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="CardFeeReminderState",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("card_type", models.CharField(choices=CARD_TYPE_CHOICES, max_length=10)),
                ("card_id", models.UUIDField(db_index=True)),
                ("unit_id", models.UUIDField(blank=True, null=True)),
                ("resident_id", models.UUIDField(blank=True, null=True)),
                ("user_id", models.UUIDField(blank=True, null=True)),
                ("apartment_number", models.CharField(blank=True, default="", max_length=100)),
                ("building_name", models.CharField(blank=True, default="", max_length=100)),
                ("cycle_start_date", models.DateField()),
                ("next_due_date", models.DateField(db_index=True)),
                ("reminder_count", models.PositiveSmallIntegerField(default=0)),
                ("max_reminders", models.PositiveSmallIntegerField(default=6)),
                ("last_reminded_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["next_due_date"],
                "constraints": [models.UniqueConstraint(fields=("card_type", "card_id"), name="unique_reminder_per_card")],
            },
        ),
        migrations.CreateModel(
            name="GatewayCallbackLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("provider", models.CharField(default="VNPAY", max_length=20)),
                ("transaction_ref", models.CharField(blank=True, db_index=True, default="", max_length=100)),
                ("response_code", models.CharField(blank=True, default="", max_length=10)),
                ("signature_valid", models.BooleanField(default=False)),
                ("success", models.BooleanField(default=False)),
                ("registration_id", models.UUIDField(blank=True, null=True)),
                ("payload", models.JSONField(default=dict)),
                ("status", models.CharField(choices=[("received", "Received"), ("processed", "Processed"), ("failed", "Failed"), ("rejected", "Rejected")], default="received", max_length=10)),
                ("error_message", models.TextField(blank=True, default="")),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="CardPaymentRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("transaction_ref", models.CharField(max_length=100)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("gateway", models.CharField(default="VNPAY", max_length=20)),
                ("gateway_transaction_no", models.CharField(blank=True, default="", max_length=100)),
                ("bank_code", models.CharField(blank=True, default="", max_length=50)),
                ("gateway_card_type", models.CharField(blank=True, default="", max_length=50)),
                ("paid_at", models.DateTimeField()),
                ("billing_status", models.CharField(choices=[("pending", "Pending"), ("recorded", "Recorded"), ("failed", "Failed")], default="pending", max_length=10)),
                ("billing_error", models.TextField(blank=True, default="")),
                ("registration", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payment_records", to="cards.cardregistration")),
            ],
            options={
                "ordering": ["-paid_at"],
                "constraints": [models.UniqueConstraint(fields=("registration", "transaction_ref"), name="unique_payment_per_card_transaction")],
            },
        ),
    ]
