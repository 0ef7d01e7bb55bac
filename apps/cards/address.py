import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddressInfo:
    unit_id: Optional[UUID] = None
    apartment_number: Optional[str] = None
    building_id: Optional[UUID] = None
    building_name: Optional[str] = None
    resident_id: Optional[UUID] = None
    resident_full_name: Optional[str] = None


@dataclass(frozen=True)
class Found:
    info: AddressInfo


@dataclass(frozen=True)
class NotFound:
    reason: str = ""


Resolution = Union[Found, NotFound]


class AddressResolver:
    """
    Resolves unit labels and resident identity for cards and notifications.

    Order: active household membership (primary member first), then the
    resident linked to ``user_id`` without an address, then the bare unit
    address without identity.
    """

    def resolve(self, resident_id=None, user_id=None, unit_id=None) -> Resolution:
        if resident_id is None and user_id is None and unit_id is None:
            return NotFound("no identifiers given")

        membership = self._membership(resident_id, user_id, unit_id)
        if membership is not None:
            unit = membership.household.unit
            return Found(AddressInfo(
                unit_id=unit.pk,
                apartment_number=unit.code,
                building_id=unit.building_id,
                building_name=unit.building.name,
                resident_id=membership.resident_id,
                resident_full_name=membership.resident.full_name,
            ))

        if user_id is not None:
            from apps.properties.models import Resident

            resident = Resident.objects.filter(user_id=user_id).first()
            if resident is not None:
                return Found(AddressInfo(resident_id=resident.pk, resident_full_name=resident.full_name))

        if unit_id is not None:
            from apps.properties.models import Unit

            unit = Unit.objects.select_related("building").filter(pk=unit_id).first()
            if unit is not None:
                return Found(AddressInfo(
                    unit_id=unit.pk,
                    apartment_number=unit.code,
                    building_id=unit.building_id,
                    building_name=unit.building.name,
                ))

        return NotFound("no membership, resident or unit matched")

    def resolve_by_user(self, user_id, unit_id=None) -> Resolution:
        return self.resolve(user_id=user_id, unit_id=unit_id)

    def _membership(self, resident_id, user_id, unit_id):
        from apps.properties.models import HouseholdMember

        filters = {}
        if resident_id is not None:
            filters["resident_id"] = resident_id
        if user_id is not None:
            filters["resident__user_id"] = user_id
        if unit_id is not None:
            filters["household__unit_id"] = unit_id
        return (
            HouseholdMember.objects.active()
            .filter(**filters)
            .select_related("resident", "household__unit__building")
            .order_by("-is_primary", "joined_at")
            .first()
        )


address_resolver = AddressResolver()
