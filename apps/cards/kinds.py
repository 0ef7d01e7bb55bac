"""
Per-kind capabilities of card registrations.

The lifecycle is the same for every card; a ``CardKind`` supplies what
differs: the pricing key, whether the unit capacity applies, whether a target
resident is required, and the kind-specific field validation.
"""

import re

from .exceptions import CardStateConflict, CardValidationError

REQUEST_TYPES = ("NEW_CARD", "REPLACE_CARD")

VEHICLE_TYPE_ALIASES = {
    "CAR": "CAR",
    "AUTO": "CAR",
    "OTO": "CAR",
    "Ô TÔ": "CAR",
    "MOTORBIKE": "MOTORBIKE",
    "MOTORCYCLE": "MOTORBIKE",
    "SCOOTER": "MOTORBIKE",
    "XE MAY": "MOTORBIKE",
    "XE MÁY": "MOTORBIKE",
}

CITIZEN_ID_MIN_DIGITS = 12


def normalize_request_type(value):
    """Unknown or blank request types fall back to NEW_CARD."""
    normalized = (value or "").strip().upper()
    return normalized if normalized in REQUEST_TYPES else "NEW_CARD"


def normalize_license_plate(value):
    return re.sub(r"\s+", "", (value or "")).upper()


class CardKind:
    code = ""
    label = ""
    reference_type = ""
    capacity_limited = True
    requires_resident = True

    def clean(self, data):
        """Validate and normalise kind-specific fields in place."""
        return data

    def check_unique(self, data, exclude_pk=None):
        """Raise ``CardStateConflict`` when a live registration already holds the identifier."""

    def live_registrations(self):
        from .models import CardRegistration

        return CardRegistration.objects.of_kind(self.code).live()

    def __repr__(self):
        return f"<CardKind {self.code}>"


class ResidentCardKind(CardKind):
    code = "RESIDENT"
    label = "resident card"
    reference_type = "RESIDENT_CARD_REGISTRATION"

    def clean(self, data):
        if not (data.get("full_name") or "").strip():
            raise CardValidationError("Full name is required for a resident card.")
        digits = re.sub(r"\D", "", data.get("citizen_id") or "")
        if not digits:
            raise CardValidationError("Citizen ID is required for a resident card.")
        if len(digits) < CITIZEN_ID_MIN_DIGITS:
            raise CardValidationError(f"Citizen ID must have at least {CITIZEN_ID_MIN_DIGITS} digits.")
        data["citizen_id"] = digits
        data["full_name"] = data["full_name"].strip()
        return data

    def check_unique(self, data, exclude_pk=None):
        qs = self.live_registrations().filter(citizen_id=data["citizen_id"])
        if exclude_pk:
            qs = qs.exclude(pk=exclude_pk)
        if qs.exists():
            raise CardStateConflict("A resident card for this citizen ID is already registered.")


class ElevatorCardKind(CardKind):
    code = "ELEVATOR"
    label = "elevator card"
    reference_type = "ELEVATOR_CARD_REGISTRATION"


class VehicleCardKind(CardKind):
    code = "VEHICLE"
    label = "vehicle card"
    reference_type = "VEHICLE_REGISTRATION"
    capacity_limited = False
    requires_resident = False

    def clean(self, data):
        plate = normalize_license_plate(data.get("license_plate"))
        if not plate:
            raise CardValidationError("License plate is required for a vehicle card.")
        raw_type = (data.get("vehicle_type") or "").strip().upper()
        if not raw_type:
            raise CardValidationError("Vehicle type is required for a vehicle card.")
        vehicle_type = VEHICLE_TYPE_ALIASES.get(raw_type)
        if vehicle_type is None:
            raise CardValidationError(f"Unsupported vehicle type: {data.get('vehicle_type')}")
        data["license_plate"] = plate
        data["vehicle_type"] = vehicle_type
        return data

    def check_unique(self, data, exclude_pk=None):
        qs = self.live_registrations().filter(license_plate__iexact=data["license_plate"])
        if exclude_pk:
            qs = qs.exclude(pk=exclude_pk)
        if qs.exists():
            raise CardStateConflict(f"License plate {data['license_plate']} is already registered.")


CARD_KINDS = {
    kind.code: kind
    for kind in (ResidentCardKind(), ElevatorCardKind(), VehicleCardKind())
}


def get_card_kind(card_type):
    kind = CARD_KINDS.get((card_type or "").strip().upper())
    if kind is None:
        raise CardValidationError(f"Unknown card type: {card_type}")
    return kind
