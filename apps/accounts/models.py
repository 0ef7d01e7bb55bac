import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    ROLE_CHOICES = [
        ("resident", "Resident"),
        ("admin", "Admin"),
        ("staff", "Staff"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default="resident", db_index=True)
    phone_number = models.CharField(max_length=20, blank=True, default="")

    class Meta:
        ordering = ["last_name", "first_name"]

    def __str__(self):
        return self.get_full_name() or self.username

    @property
    def is_resident(self):
        return self.role == "resident"

    @property
    def is_admin_user(self):
        return self.role in ("admin", "staff")
