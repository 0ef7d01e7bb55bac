from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from apps.core.models import AuditMixin, TimeStampedModel

CARD_TYPE_CHOICES = [
    ("RESIDENT", "Resident Card"),
    ("ELEVATOR", "Elevator Card"),
    ("VEHICLE", "Vehicle Card"),
]


class CardPricing(TimeStampedModel, AuditMixin):
    card_type = models.CharField(max_length=10, choices=CARD_TYPE_CHOICES, unique=True)
    price = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))]
    )
    currency = models.CharField(max_length=3, default="VND")
    description = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        verbose_name_plural = "Card pricing"
        ordering = ["card_type"]

    def __str__(self):
        return f"{self.get_card_type_display()}: {self.price} {self.currency}"


class CardRegistrationQuerySet(models.QuerySet):
    def live(self):
        """Registrations that still count toward capacity and uniqueness."""
        return self.exclude(status__in=CardRegistration.DEAD_STATUSES)

    def of_kind(self, card_type):
        return self.filter(card_type=card_type)


class CardRegistration(TimeStampedModel):
    REQUEST_TYPE_CHOICES = [
        ("NEW_CARD", "New Card"),
        ("REPLACE_CARD", "Replacement Card"),
    ]
    STATUS_CHOICES = [
        ("READY_FOR_PAYMENT", "Ready for Payment"),
        ("PAYMENT_PENDING", "Payment Pending"),
        ("PENDING", "Awaiting Review"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
        ("CANCELLED", "Cancelled"),
        ("NEEDS_RENEWAL", "Needs Renewal"),
        ("SUSPENDED", "Suspended"),
    ]
    PAYMENT_STATUS_CHOICES = [
        ("UNPAID", "Unpaid"),
        ("PAYMENT_PENDING", "Payment Pending"),
        ("PAYMENT_IN_PROGRESS", "Payment In Progress"),
        ("PAID", "Paid"),
    ]
    VEHICLE_TYPE_CHOICES = [
        ("CAR", "Car"),
        ("MOTORBIKE", "Motorbike"),
    ]

    # Never count toward capacity, uniqueness, or reminders
    DEAD_STATUSES = ("REJECTED", "CANCELLED")
    # A card in one of these no longer receives fee reminders
    INACTIVE_STATUSES = ("CANCELLED", "SUSPENDED", "REJECTED")
    RENEWAL_STATUSES = ("NEEDS_RENEWAL", "SUSPENDED")
    DECIDABLE_STATUSES = ("PENDING", "READY_FOR_PAYMENT")

    card_type = models.CharField(max_length=10, choices=CARD_TYPE_CHOICES, db_index=True)
    request_type = models.CharField(max_length=15, choices=REQUEST_TYPE_CHOICES, default="NEW_CARD")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="card_registrations"
    )
    resident = models.ForeignKey(
        "properties.Resident",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="card_registrations",
    )
    unit = models.ForeignKey(
        "properties.Unit", on_delete=models.PROTECT, related_name="card_registrations"
    )
    reissued_from = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reissues",
    )

    # Holder / vehicle details
    full_name = models.CharField(max_length=200, blank=True, default="")
    phone_number = models.CharField(max_length=20, blank=True, default="")
    citizen_id = models.CharField(max_length=20, blank=True, default="", db_index=True)
    license_plate = models.CharField(max_length=20, blank=True, default="", db_index=True)
    vehicle_type = models.CharField(max_length=10, choices=VEHICLE_TYPE_CHOICES, blank=True, default="")
    vehicle_brand = models.CharField(max_length=100, blank=True, default="")
    vehicle_color = models.CharField(max_length=50, blank=True, default="")
    note = models.TextField(blank=True, default="")

    # Address snapshot taken at creation
    apartment_number = models.CharField(max_length=50, blank=True, default="")
    building_name = models.CharField(max_length=200, blank=True, default="")

    # Payment
    payment_amount = models.DecimalField(max_digits=12, decimal_places=2, editable=False)
    payment_status = models.CharField(
        max_length=20, choices=PAYMENT_STATUS_CHOICES, default="UNPAID", db_index=True
    )
    payment_date = models.DateTimeField(null=True, blank=True)
    payment_gateway = models.CharField(max_length=20, blank=True, default="")
    transaction_ref = models.CharField(max_length=100, blank=True, default="", db_index=True)
    payment_initiated_at = models.DateTimeField(null=True, blank=True)

    # Workflow
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="READY_FOR_PAYMENT", db_index=True
    )
    admin_note = models.TextField(blank=True, default="")
    rejection_reason = models.TextField(blank=True, default="")
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_card_registrations",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    objects = CardRegistrationQuerySet.as_manager()

    class Meta(TimeStampedModel.Meta):
        indexes = [
            models.Index(fields=["card_type", "unit", "status"], name="card_reg_type_unit_status_idx"),
        ]

    def __str__(self):
        return f"{self.get_card_type_display()} {self.pk} ({self.status})"

    @property
    def is_paid(self):
        return self.payment_status == "PAID"

    @property
    def is_renewal(self):
        return self.status in self.RENEWAL_STATUSES

    @property
    def is_reminder_active(self):
        return self.status not in self.INACTIVE_STATUSES


class CardFeeReminderState(TimeStampedModel):
    """Fee cycle and reminder counters for one card."""

    card_type = models.CharField(max_length=10, choices=CARD_TYPE_CHOICES)
    card_id = models.UUIDField(db_index=True)

    # Recipient snapshot, backfilled but never overwritten
    unit_id = models.UUIDField(null=True, blank=True)
    resident_id = models.UUIDField(null=True, blank=True)
    user_id = models.UUIDField(null=True, blank=True)
    apartment_number = models.CharField(max_length=100, blank=True, default="")
    building_name = models.CharField(max_length=100, blank=True, default="")

    cycle_start_date = models.DateField()
    next_due_date = models.DateField(db_index=True)
    reminder_count = models.PositiveSmallIntegerField(default=0)
    max_reminders = models.PositiveSmallIntegerField(default=6)
    last_reminded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["next_due_date"]
        constraints = [
            models.UniqueConstraint(fields=["card_type", "card_id"], name="unique_reminder_per_card"),
        ]

    def __str__(self):
        return f"{self.card_type} {self.card_id} due {self.next_due_date} ({self.reminder_count}/{self.max_reminders})"

    @property
    def is_dormant(self):
        return self.reminder_count >= self.max_reminders


class CardPaymentRecord(TimeStampedModel):
    """Local ledger of confirmed card payments; one row per card and transaction."""

    BILLING_STATUS_CHOICES = [
        ("pending", "Pending"),
        ("recorded", "Recorded"),
        ("failed", "Failed"),
    ]

    registration = models.ForeignKey(
        CardRegistration, on_delete=models.PROTECT, related_name="payment_records"
    )
    transaction_ref = models.CharField(max_length=100)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    gateway = models.CharField(max_length=20, default="VNPAY")
    gateway_transaction_no = models.CharField(max_length=100, blank=True, default="")
    bank_code = models.CharField(max_length=50, blank=True, default="")
    gateway_card_type = models.CharField(max_length=50, blank=True, default="")
    paid_at = models.DateTimeField()
    billing_status = models.CharField(max_length=10, choices=BILLING_STATUS_CHOICES, default="pending")
    billing_error = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-paid_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["registration", "transaction_ref"], name="unique_payment_per_card_transaction"
            ),
        ]

    def __str__(self):
        return f"{self.transaction_ref} - {self.amount}"


class GatewayCallbackLog(TimeStampedModel):
    STATUS_CHOICES = [
        ("received", "Received"),
        ("processed", "Processed"),
        ("failed", "Failed"),
        ("rejected", "Rejected"),
    ]

    provider = models.CharField(max_length=20, default="VNPAY")
    transaction_ref = models.CharField(max_length=100, blank=True, default="", db_index=True)
    response_code = models.CharField(max_length=10, blank=True, default="")
    signature_valid = models.BooleanField(default=False)
    success = models.BooleanField(default=False)
    registration_id = models.UUIDField(null=True, blank=True)
    payload = models.JSONField(default=dict)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="received")
    error_message = models.TextField(blank=True, default="")
    ip_address = models.GenericIPAddressField(null=True, blank=True)

    def __str__(self):
        return f"{self.provider} {self.transaction_ref} ({self.status})"
