from django.contrib import admin

from .models import Building, Household, HouseholdMember, HouseholdMemberRequest, Resident, Unit


class UnitInline(admin.TabularInline):
    model = Unit
    extra = 0


class HouseholdMemberInline(admin.TabularInline):
    model = HouseholdMember
    extra = 0
    raw_id_fields = ("resident",)


@admin.register(Building)
class BuildingAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "address", "is_active")
    list_filter = ("is_active",)
    search_fields = ("code", "name")
    inlines = [UnitInline]


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ("__str__", "floor", "bedrooms", "area_m2")
    list_filter = ("building",)
    search_fields = ("code", "building__name")


@admin.register(Resident)
class ResidentAdmin(admin.ModelAdmin):
    list_display = ("full_name", "phone", "national_id", "user")
    search_fields = ("full_name", "phone", "national_id", "user__username")
    raw_id_fields = ("user",)


@admin.register(Household)
class HouseholdAdmin(admin.ModelAdmin):
    list_display = ("__str__", "kind", "primary_resident", "start_date", "end_date")
    list_filter = ("kind",)
    raw_id_fields = ("unit", "primary_resident")
    inlines = [HouseholdMemberInline]


@admin.register(HouseholdMemberRequest)
class HouseholdMemberRequestAdmin(admin.ModelAdmin):
    list_display = ("household", "resident", "resident_national_id", "status", "created_at")
    list_filter = ("status",)
    raw_id_fields = ("household", "resident")
