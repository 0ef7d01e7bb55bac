import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Building",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(max_length=20, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("address", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
            ],
            options={
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="Resident",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("full_name", models.CharField(max_length=200)),
                ("phone", models.CharField(blank=True, default="", max_length=20)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("national_id", models.CharField(blank=True, db_index=True, default="", max_length=20)),
                ("user", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="resident", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["full_name"],
            },
        ),
        migrations.CreateModel(
            name="Unit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(help_text="Apartment number shown to residents", max_length=20)),
                ("floor", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("bedrooms", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("area_m2", models.DecimalField(blank=True, decimal_places=2, max_digits=7, null=True)),
                ("building", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="units", to="properties.building")),
            ],
            options={
                "ordering": ["building", "code"],
                "unique_together": {("building", "code")},
            },
        ),
        migrations.CreateModel(
            name="Household",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("kind", models.CharField(choices=[("OWNER", "Owner"), ("TENANT", "Tenant")], default="OWNER", max_length=10)),
                ("start_date", models.DateField(default=django.utils.timezone.localdate)),
                ("end_date", models.DateField(blank=True, null=True)),
                ("primary_resident", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="primary_households", to="properties.resident")),
                ("unit", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="households", to="properties.unit")),
            ],
            options={
                "ordering": ["-start_date"],
            },
        ),
        migrations.CreateModel(
            name="HouseholdMember",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("relation", models.CharField(blank=True, default="", max_length=50)),
                ("is_primary", models.BooleanField(default=False)),
                ("joined_at", models.DateField(default=django.utils.timezone.localdate)),
                ("left_at", models.DateField(blank=True, null=True)),
                ("household", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="members", to="properties.household")),
                ("resident", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="memberships", to="properties.resident")),
            ],
            options={
                "ordering": ["-is_primary", "joined_at"],
            },
        ),
        migrations.CreateModel(
            name="HouseholdMemberRequest",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("resident_national_id", models.CharField(blank=True, default="", max_length=20)),
                ("resident_phone", models.CharField(blank=True, default="", max_length=20)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("APPROVED", "Approved"), ("REJECTED", "Rejected")], db_index=True, default="PENDING", max_length=10)),
                ("household", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="member_requests", to="properties.household")),
                ("resident", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="member_requests", to="properties.resident")),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
            },
        ),
    ]
