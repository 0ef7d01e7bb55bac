import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from apps.properties.services import HouseholdService

from .exceptions import CrossHouseholdRegistration, MemberNotApproved, NotHouseholdMember

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Eligibility:
    requester_resident_id: UUID
    target_resident_id: Optional[UUID]


class EligibilityValidator:
    """
    Household rules for requesting or acting on a card.

    Every lookup fails closed: an error while querying counts as "not eligible".
    """

    def __init__(self, households=HouseholdService):
        self.households = households

    def _check(self, name, func, *args):
        try:
            return bool(func(*args))
        except Exception:
            logger.exception("Eligibility lookup %s failed for %s; treating as not eligible", name, args)
            return False

    def requester_resident_id(self, user):
        try:
            resident = self.households.resident_for_user(user.pk)
        except Exception:
            logger.exception("Resident lookup failed for user %s", user.pk)
            resident = None
        return resident.pk if resident else None

    def is_household_member(self, resident_id, unit_id):
        return self._check("is_household_member", self.households.is_household_member, resident_id, unit_id)

    def is_household_owner_of(self, owner_resident_id, resident_id, unit_id):
        return self._check(
            "is_household_owner_of", self.households.is_household_owner_of,
            owner_resident_id, resident_id, unit_id,
        )

    def are_in_same_household(self, resident_id, other_resident_id, unit_id):
        return self._check(
            "are_in_same_household", self.households.are_in_same_household,
            resident_id, other_resident_id, unit_id,
        )

    def is_primary_or_approved_member(self, resident_id, unit_id):
        return self._check(
            "is_primary_or_approved_member", self.households.is_primary_or_approved_member,
            resident_id, unit_id,
        )

    def has_account(self, resident_id):
        def lookup(pk):
            from apps.properties.models import Resident

            return Resident.objects.filter(pk=pk, user__isnull=False).exists()

        return self._check("has_account", lookup, resident_id)

    def validate(self, user, unit_id, target_resident_id=None):
        """
        Check that ``user`` may register a card on ``unit_id`` for
        ``target_resident_id`` (themself when None).

        Raises NotHouseholdMember, CrossHouseholdRegistration or MemberNotApproved.
        """
        requester_id = self.requester_resident_id(user)
        if requester_id is None or not self.is_household_member(requester_id, unit_id):
            raise NotHouseholdMember("You are not a member of this unit's household.")

        if target_resident_id is None or target_resident_id == requester_id:
            return Eligibility(requester_resident_id=requester_id, target_resident_id=target_resident_id)

        if not self.is_household_member(target_resident_id, unit_id):
            raise NotHouseholdMember("The selected resident is not a member of this unit's household.")
        if not self.are_in_same_household(requester_id, target_resident_id, unit_id):
            raise CrossHouseholdRegistration("You can only register cards for members of your own household.")
        if not self.is_primary_or_approved_member(target_resident_id, unit_id) and not self.has_account(target_resident_id):
            raise MemberNotApproved(
                "This member has not been approved yet and has no account. "
                "Wait for the membership request to be approved first."
            )

        return Eligibility(requester_resident_id=requester_id, target_resident_id=target_resident_id)
