import logging

from django.db.models import Q

logger = logging.getLogger(__name__)


class HouseholdService:
    """Membership and ownership queries over units, households and residents."""

    @staticmethod
    def resident_for_user(user_id):
        from .models import Resident

        if user_id is None:
            return None
        return Resident.objects.filter(user_id=user_id).first()

    @staticmethod
    def is_household_member(resident_id, unit_id):
        """Active member of a live household on the unit, or its primary resident."""
        from .models import Household, HouseholdMember

        if resident_id is None or unit_id is None:
            return False
        if Household.objects.active().filter(unit_id=unit_id, primary_resident_id=resident_id).exists():
            return True
        return HouseholdMember.objects.active().filter(
            resident_id=resident_id, household__unit_id=unit_id,
        ).exists()

    @staticmethod
    def is_household_owner_of(owner_resident_id, resident_id, unit_id):
        """Primary resident of the live household on the unit that ``resident_id`` belongs to."""
        from .models import Household, HouseholdMember

        if owner_resident_id is None or resident_id is None or unit_id is None:
            return False
        primary_memberships = HouseholdMember.objects.active().filter(
            resident_id=owner_resident_id, household__unit_id=unit_id, is_primary=True,
        ).values("household_id")
        owned = Household.objects.active().filter(unit_id=unit_id).filter(
            Q(primary_resident_id=owner_resident_id) | Q(pk__in=primary_memberships)
        )
        if owned.filter(primary_resident_id=resident_id).exists():
            return True
        return HouseholdMember.objects.active().filter(
            resident_id=resident_id, household_id__in=owned.values("pk"),
        ).exists()

    @staticmethod
    def are_in_same_household(resident_id, other_resident_id, unit_id):
        from .models import HouseholdMember

        if resident_id is None or other_resident_id is None or unit_id is None:
            return False
        if resident_id == other_resident_id:
            return True
        household_ids = HouseholdMember.objects.active().filter(
            resident_id=resident_id, household__unit_id=unit_id,
        ).values("household_id")
        return HouseholdMember.objects.active().filter(
            resident_id=other_resident_id, household_id__in=household_ids,
        ).exists()

    @staticmethod
    def is_primary_or_approved_member(resident_id, unit_id):
        """
        Primary members are always approved. Other members need an APPROVED
        membership request, matched by resident or by national id and phone.
        """
        from .models import HouseholdMember, HouseholdMemberRequest, Resident

        if resident_id is None or unit_id is None:
            return False
        memberships = HouseholdMember.objects.active().filter(
            resident_id=resident_id, household__unit_id=unit_id,
        )
        if memberships.filter(is_primary=True).exists():
            return True

        resident = Resident.objects.filter(pk=resident_id).first()
        if resident is None:
            return False
        identity_match = Q(resident_id=resident_id)
        if resident.national_id and resident.phone:
            identity_match |= Q(
                resident__isnull=True,
                resident_national_id=resident.national_id,
                resident_phone=resident.phone,
            )
        return HouseholdMemberRequest.objects.filter(
            identity_match,
            household_id__in=memberships.values("household_id"),
            status="APPROVED",
        ).exists()

    @staticmethod
    def bedrooms_for_unit(unit_id):
        from .models import Unit

        return Unit.objects.filter(pk=unit_id).values_list("bedrooms", flat=True).first()
