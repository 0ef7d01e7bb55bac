from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "first_name", "last_name", "role", "is_active")
    list_filter = ("role", "is_active", "is_staff")
    search_fields = ("username", "email", "first_name", "last_name", "phone_number")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Card Service", {
            "fields": ("role", "phone_number"),
        }),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Card Service", {
            "fields": ("role", "email", "first_name", "last_name", "phone_number"),
        }),
    )
