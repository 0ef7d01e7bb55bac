from django.contrib import admin

from .models import CardFeeReminderState, CardPaymentRecord, CardPricing, CardRegistration, GatewayCallbackLog


@admin.register(CardPricing)
class CardPricingAdmin(admin.ModelAdmin):
    list_display = ("card_type", "price", "currency", "is_active", "updated_at")
    list_filter = ("is_active",)
    readonly_fields = ("created_by", "updated_by", "created_at", "updated_at")


class CardPaymentRecordInline(admin.TabularInline):
    model = CardPaymentRecord
    extra = 0
    readonly_fields = ("transaction_ref", "amount", "paid_at", "billing_status", "billing_error")
    can_delete = False


@admin.register(CardRegistration)
class CardRegistrationAdmin(admin.ModelAdmin):
    list_display = (
        "card_type", "full_name", "license_plate", "unit", "status", "payment_status",
        "payment_amount", "created_at",
    )
    list_filter = ("card_type", "status", "payment_status", "request_type")
    search_fields = ("full_name", "citizen_id", "license_plate", "transaction_ref", "apartment_number")
    readonly_fields = (
        "payment_amount", "payment_date", "payment_gateway", "transaction_ref",
        "payment_initiated_at", "approved_by", "approved_at", "created_at", "updated_at",
    )
    raw_id_fields = ("user", "resident", "unit", "reissued_from")
    inlines = [CardPaymentRecordInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CardFeeReminderState)
class CardFeeReminderStateAdmin(admin.ModelAdmin):
    list_display = (
        "card_type", "card_id", "apartment_number", "next_due_date",
        "reminder_count", "max_reminders", "last_reminded_at",
    )
    list_filter = ("card_type",)
    search_fields = ("card_id", "apartment_number", "building_name")


@admin.register(GatewayCallbackLog)
class GatewayCallbackLogAdmin(admin.ModelAdmin):
    list_display = ("provider", "transaction_ref", "response_code", "signature_valid", "success", "status", "created_at")
    list_filter = ("provider", "status", "success")
    search_fields = ("transaction_ref",)
    readonly_fields = ("payload",)
