from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.models import TimeStampedModel


class Building(TimeStampedModel):
    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    address = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return self.name


class Unit(TimeStampedModel):
    building = models.ForeignKey(Building, on_delete=models.CASCADE, related_name="units")
    code = models.CharField(max_length=20, help_text="Apartment number shown to residents")
    floor = models.PositiveSmallIntegerField(null=True, blank=True)
    bedrooms = models.PositiveSmallIntegerField(null=True, blank=True)
    area_m2 = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)

    class Meta:
        ordering = ["building", "code"]
        unique_together = [("building", "code")]

    def __str__(self):
        return f"{self.building.name} - {self.code}"


class Resident(TimeStampedModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resident",
    )
    full_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    national_id = models.CharField(max_length=20, blank=True, default="", db_index=True)

    class Meta:
        ordering = ["full_name"]

    def __str__(self):
        return self.full_name


class HouseholdQuerySet(models.QuerySet):
    def active(self, on_date=None):
        on_date = on_date or timezone.localdate()
        return self.filter(Q(end_date__isnull=True) | Q(end_date__gte=on_date))


class Household(TimeStampedModel):
    KIND_CHOICES = [
        ("OWNER", "Owner"),
        ("TENANT", "Tenant"),
    ]

    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name="households")
    kind = models.CharField(max_length=10, choices=KIND_CHOICES, default="OWNER")
    primary_resident = models.ForeignKey(
        Resident,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="primary_households",
    )
    start_date = models.DateField(default=timezone.localdate)
    end_date = models.DateField(null=True, blank=True)

    objects = HouseholdQuerySet.as_manager()

    class Meta:
        ordering = ["-start_date"]

    def __str__(self):
        return f"{self.get_kind_display()} household of {self.unit}"


class HouseholdMemberQuerySet(models.QuerySet):
    def active(self, on_date=None):
        """Members who have not left a household that has not ended."""
        on_date = on_date or timezone.localdate()
        return self.filter(
            Q(left_at__isnull=True) | Q(left_at__gte=on_date),
            Q(household__end_date__isnull=True) | Q(household__end_date__gte=on_date),
        )


class HouseholdMember(TimeStampedModel):
    household = models.ForeignKey(Household, on_delete=models.CASCADE, related_name="members")
    resident = models.ForeignKey(Resident, on_delete=models.CASCADE, related_name="memberships")
    relation = models.CharField(max_length=50, blank=True, default="")
    is_primary = models.BooleanField(default=False)
    joined_at = models.DateField(default=timezone.localdate)
    left_at = models.DateField(null=True, blank=True)

    objects = HouseholdMemberQuerySet.as_manager()

    class Meta:
        ordering = ["-is_primary", "joined_at"]

    def __str__(self):
        return f"{self.resident} in {self.household}"


class HouseholdMemberRequest(TimeStampedModel):
    STATUS_CHOICES = [
        ("PENDING", "Pending"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
    ]

    household = models.ForeignKey(Household, on_delete=models.CASCADE, related_name="member_requests")
    resident = models.ForeignKey(
        Resident,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="member_requests",
    )
    resident_national_id = models.CharField(max_length=20, blank=True, default="")
    resident_phone = models.CharField(max_length=20, blank=True, default="")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="PENDING", db_index=True)

    def __str__(self):
        return f"Member request {self.status} for {self.household}"
