import logging
import random
from decimal import Decimal, InvalidOperation
from uuid import UUID

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.core.services.notifications import notification_client

from .address import Found, address_resolver
from .eligibility import EligibilityValidator
from .exceptions import (
    AlreadyReissued,
    CapacityExceeded,
    CardNotFound,
    CardStateConflict,
    CardValidationError,
    NotCardOwner,
    RegistrationNotFound,
)
from .forms import CardRegistrationForm, clean_or_raise
from .kinds import CARD_KINDS, get_card_kind, normalize_request_type
from .order_store import get_order_store
from .reminders import FeeReminderService

logger = logging.getLogger(__name__)

GATEWAY_NAME = "VNPAY"

PAYABLE_PAYMENT_STATUSES = ("UNPAID", "PAYMENT_PENDING", "PAYMENT_IN_PROGRESS")
PAYABLE_STATUSES = ("READY_FOR_PAYMENT", "PAYMENT_PENDING")

PAYMENT_FIELDS = [
    "status", "payment_status", "payment_date", "payment_gateway",
    "transaction_ref", "payment_initiated_at", "approved_at", "updated_at",
]
DECISION_FIELDS = [
    "status", "admin_note", "rejection_reason", "approved_by", "approved_at", "updated_at",
]


class PricingService:
    """Card prices, snapshotted onto each registration at creation."""

    @staticmethod
    def get_price(card_type):
        from .models import CardPricing

        kind = get_card_kind(card_type)
        pricing = CardPricing.objects.filter(card_type=kind.code, is_active=True).first()
        if pricing is None:
            return Decimal(settings.CARD_DEFAULT_PRICE)
        return pricing.price

    @staticmethod
    def update_price(card_type, price, user=None, description=None):
        from .models import CardPricing

        kind = get_card_kind(card_type)
        try:
            price = Decimal(str(price))
        except (InvalidOperation, TypeError):
            raise CardValidationError(f"Invalid price: {price}")
        if not price.is_finite():
            raise CardValidationError(f"Invalid price: {price}")
        if price <= 0:
            raise CardValidationError("Price must be greater than zero.")

        pricing, created = CardPricing.objects.get_or_create(
            card_type=kind.code,
            defaults={
                "price": price,
                "currency": settings.CARD_CURRENCY,
                "description": description or "",
                "created_by": user,
                "updated_by": user,
            },
        )
        if not created:
            pricing.price = price
            pricing.is_active = True
            pricing.updated_by = user
            if description is not None:
                pricing.description = description
            pricing.save()
        logger.info("Price for %s set to %s by %s", kind.code, price, user)
        return pricing

    @staticmethod
    def list_prices():
        return {code: PricingService.get_price(code) for code in CARD_KINDS}


def max_cards_for_unit(unit_id):
    """Capacity of a unit: bedrooms times the per-bedroom allowance, or the default."""
    from apps.properties.services import HouseholdService

    bedrooms = HouseholdService.bedrooms_for_unit(unit_id)
    if bedrooms and bedrooms > 0:
        return max(bedrooms * settings.CARD_CAPACITY_PER_BEDROOM, 1)
    return settings.CARD_CAPACITY_DEFAULT


def order_id_for(registration):
    """Positive numeric order id derived from the registration id."""
    order_id = registration.pk.int & 0x7FFFFFFFFFFFFFFF
    return order_id or random.randint(1, 2 ** 62)


def apply_payment_success(registration, paid_at):
    """
    Settle a payment on one registration.

    A card that was approved before is a renewal and goes straight back to
    APPROVED; a first payment waits for admin review in PENDING. Terminated
    cards keep their status.
    """
    renewal = registration.approved_at is not None
    registration.payment_status = "PAID"
    registration.payment_date = paid_at
    registration.payment_gateway = GATEWAY_NAME
    if registration.status in registration.DEAD_STATUSES:
        logger.warning(
            "Payment confirmed for %s registration %s in status %s; status kept",
            registration.card_type, registration.pk, registration.status,
        )
    elif renewal:
        registration.status = "APPROVED"
        registration.approved_at = paid_at
    else:
        registration.status = "PENDING"
    registration.save(update_fields=PAYMENT_FIELDS)
    return renewal


def apply_payment_failure(registration):
    """Back to READY_FOR_PAYMENT so the requester can retry."""
    if registration.status not in registration.DEAD_STATUSES:
        registration.status = "READY_FOR_PAYMENT"
    registration.payment_status = "UNPAID"
    registration.save(update_fields=PAYMENT_FIELDS)


class RegistrationLifecycle:
    """
    State machine of one card kind: create, pay, decide, cancel.

    Collaborators are injected so tests can swap the order store, gateway or
    notifier.
    """

    def __init__(
        self,
        kind,
        eligibility=None,
        resolver=None,
        order_store=None,
        gateway=None,
        notifier=None,
        reminders=FeeReminderService,
    ):
        self.kind = get_card_kind(kind) if isinstance(kind, str) else kind
        self.eligibility = eligibility or EligibilityValidator()
        self.resolver = resolver or address_resolver
        self._order_store = order_store
        self._gateway = gateway
        self.notifier = notifier or notification_client
        self.reminders = reminders

    @property
    def order_store(self):
        if self._order_store is None:
            self._order_store = get_order_store()
        return self._order_store

    @property
    def gateway(self):
        if self._gateway is None:
            from apps.core.services.payments.factory import get_gateway_for_provider

            self._gateway = get_gateway_for_provider(GATEWAY_NAME)
        return self._gateway

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def queryset(self):
        from .models import CardRegistration

        return CardRegistration.objects.of_kind(self.kind.code)

    def get(self, registration_id, for_update=False):
        qs = self.queryset()
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=registration_id)
        except (qs.model.DoesNotExist, ValidationError, ValueError, TypeError):
            raise RegistrationNotFound(f"{self.kind.label.capitalize()} registration {registration_id} not found.")

    def get_for_user(self, registration_id, user):
        registration = self.get(registration_id)
        if registration.user_id != user.pk:
            raise NotCardOwner("This registration belongs to another user.")
        return registration

    def list_for_user(self, user, unit_id=None):
        qs = self.queryset().filter(user=user)
        if unit_id:
            qs = qs.filter(unit_id=unit_id)
        return qs.select_related("unit__building")

    def count_active(self, unit_id):
        return self.queryset().live().filter(unit_id=unit_id).count()

    def max_cards_for_unit(self, unit_id):
        return max_cards_for_unit(unit_id)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, user, data):
        """
        Validate and persist a new registration in READY_FOR_PAYMENT / UNPAID.

        The price is snapshotted now; the address comes from the household
        records, falling back to the submitted values.
        """
        from apps.properties.models import Unit

        from .models import CardRegistration

        cleaned = dict(clean_or_raise(CardRegistrationForm(data)))
        cleaned = self.kind.clean(cleaned)
        request_type = normalize_request_type(cleaned.get("request_type"))

        unit = Unit.objects.select_related("building").filter(pk=cleaned["unit_id"]).first()
        if unit is None:
            raise CardNotFound(f"Unit {cleaned['unit_id']} not found.")

        eligibility = self.eligibility.validate(user, unit.pk, cleaned.get("resident_id"))
        resident_id = eligibility.target_resident_id
        if resident_id is None and self.kind.requires_resident:
            resident_id = eligibility.requester_resident_id

        price = PricingService.get_price(self.kind.code)
        if price <= 0:
            raise CardValidationError(f"No valid price configured for {self.kind.label}.")

        apartment_number, building_name, full_name = self._resolve_address(user, unit, resident_id, cleaned)

        with transaction.atomic():
            # Serialises concurrent creations on the same unit
            Unit.objects.select_for_update().filter(pk=unit.pk).first()

            if self.kind.capacity_limited:
                self._check_capacity(unit)
            self.kind.check_unique(cleaned)

            original = None
            if request_type == "REPLACE_CARD":
                original = self._reissuable_original(cleaned.get("original_card_id"), user, unit, eligibility)

            registration = CardRegistration.objects.create(
                card_type=self.kind.code,
                request_type=request_type,
                user=user,
                resident_id=resident_id,
                unit=unit,
                reissued_from=original,
                full_name=cleaned.get("full_name") or full_name or "",
                phone_number=cleaned.get("phone_number") or "",
                citizen_id=cleaned.get("citizen_id") or "",
                license_plate=cleaned.get("license_plate") or "",
                vehicle_type=cleaned.get("vehicle_type") or "",
                vehicle_brand=cleaned.get("vehicle_brand") or "",
                vehicle_color=cleaned.get("vehicle_color") or "",
                note=cleaned.get("note") or "",
                apartment_number=apartment_number,
                building_name=building_name,
                payment_amount=price,
                payment_status="UNPAID",
                status="READY_FOR_PAYMENT",
            )

        logger.info(
            "%s registration %s created by user %s for unit %s (amount %s)",
            self.kind.code, registration.pk, user.pk, unit.pk, price,
        )
        return registration

    def _resolve_address(self, user, unit, resident_id, cleaned):
        apartment_number = cleaned.get("apartment_number") or ""
        building_name = cleaned.get("building_name") or ""
        try:
            resolution = self.resolver.resolve(
                resident_id=resident_id,
                user_id=None if resident_id else user.pk,
                unit_id=unit.pk,
            )
        except Exception:
            logger.exception("Address resolution failed for unit %s; using submitted values", unit.pk)
            return apartment_number, building_name, None
        if not isinstance(resolution, Found):
            return apartment_number or unit.code, building_name or unit.building.name, None
        info = resolution.info
        return (
            info.apartment_number or apartment_number or unit.code,
            info.building_name or building_name or unit.building.name,
            info.resident_full_name,
        )

    def _check_capacity(self, unit):
        capacity = self.max_cards_for_unit(unit.pk)
        count = self.count_active(unit.pk)
        if count >= capacity:
            raise CapacityExceeded(
                f"Unit {unit.code} already has {count} of {capacity} allowed {self.kind.label}s."
            )

    def _reissuable_original(self, original_card_id, user, unit, eligibility):
        if not original_card_id:
            raise CardValidationError("A replacement request must reference the original card.")
        original = self.get(original_card_id, for_update=True)
        if original.status != "CANCELLED":
            raise CardStateConflict(
                f"Only cancelled cards can be reissued (current status: {original.status})."
            )
        if original.reissues.exists():
            raise AlreadyReissued("This card has already been reissued.")
        is_owner = self._owns_card_household(eligibility.requester_resident_id, original)
        if not is_owner and original.user_id != user.pk:
            raise NotCardOwner("Only the household owner or the original requester can reissue this card.")
        return original

    def _owns_card_household(self, requester_id, registration):
        """The requester is the primary resident of the household the card belongs to."""
        card_resident_id = registration.resident_id
        if card_resident_id is None:
            card_resident_id = self.eligibility.requester_resident_id(registration.user)
        return self.eligibility.is_household_owner_of(requester_id, card_resident_id, registration.unit_id)

    # ------------------------------------------------------------------
    # Payment initiation
    # ------------------------------------------------------------------

    def _ensure_payable(self, registration):
        if registration.status in registration.DEAD_STATUSES:
            raise CardStateConflict(
                f"Registration is {registration.status.lower()} and can no longer be paid."
            )
        if registration.is_renewal:
            if registration.payment_status != "PAID":
                raise CardStateConflict("Renewal requires a previously paid card.")
            return
        if registration.status not in PAYABLE_STATUSES or registration.payment_status not in PAYABLE_PAYMENT_STATUSES:
            raise CardStateConflict(
                f"Registration is not awaiting payment "
                f"(status {registration.status}, payment {registration.payment_status})."
            )

    def _description(self, registrations):
        if len(registrations) == 1:
            return f"Payment for {self.kind.label} registration {registrations[0].pk}"
        return f"Payment for {len(registrations)} {self.kind.label} registrations"

    def initiate_payment(self, registration_id, user, client_ip=None, return_url=None):
        """Move a registration to PAYMENT_PENDING and return the gateway checkout URL."""
        with transaction.atomic():
            registration = self.get(registration_id, for_update=True)
            if registration.user_id != user.pk:
                raise NotCardOwner("You can only pay for your own registrations.")
            self._ensure_payable(registration)

            order_id = order_id_for(registration)
            result = self.gateway.create_payment_url(
                order_id,
                self._description([registration]),
                registration.payment_amount,
                client_ip,
                return_url,
            )

            registration.status = "PAYMENT_PENDING"
            registration.payment_status = "PAYMENT_PENDING"
            registration.payment_gateway = GATEWAY_NAME
            registration.transaction_ref = result.transaction_ref
            registration.payment_initiated_at = timezone.now()
            registration.save(update_fields=PAYMENT_FIELDS)

        self.order_store.put(order_id, registration.pk)
        logger.info(
            "Payment initiated for %s registration %s (order %s, ref %s)",
            self.kind.code, registration.pk, order_id, result.transaction_ref,
        )
        return {
            "registration_id": registration.pk,
            "payment_url": result.payment_url,
            "transaction_ref": result.transaction_ref,
            "amount": registration.payment_amount,
        }

    def initiate_batch_payment(self, registration_ids, user, unit_id, client_ip=None, return_url=None):
        """One checkout for several registrations of the same user and unit."""
        try:
            ids = list(dict.fromkeys(UUID(str(pk)) for pk in registration_ids))
            unit_id = UUID(str(unit_id))
        except (ValueError, TypeError, AttributeError):
            raise CardValidationError("Invalid registration or unit id.")
        if not ids:
            raise CardValidationError("Select at least one registration to pay.")

        with transaction.atomic():
            registrations = list(
                self.queryset().select_for_update().filter(pk__in=ids).order_by("created_at", "pk")
            )
            if len(registrations) != len(ids):
                missing = set(ids) - {r.pk for r in registrations}
                raise RegistrationNotFound(f"Registrations not found: {', '.join(str(pk) for pk in missing)}")
            for registration in registrations:
                if registration.user_id != user.pk:
                    raise NotCardOwner(f"Registration {registration.pk} belongs to another user.")
                if registration.unit_id != unit_id:
                    raise CardValidationError(f"Registration {registration.pk} belongs to another unit.")
                self._ensure_payable(registration)

            total = sum((r.payment_amount for r in registrations), Decimal("0"))
            order_id = order_id_for(registrations[0])
            result = self.gateway.create_payment_url(
                order_id, self._description(registrations), total, client_ip, return_url,
            )

            now = timezone.now()
            for registration in registrations:
                registration.status = "PAYMENT_PENDING"
                registration.payment_status = "PAYMENT_IN_PROGRESS"
                registration.payment_gateway = GATEWAY_NAME
                registration.transaction_ref = result.transaction_ref
                registration.payment_initiated_at = now
                registration.save(update_fields=PAYMENT_FIELDS)

        self.order_store.put(order_id, registrations[0].pk)
        logger.info(
            "Batch payment initiated for %d %s registrations (order %s, total %s)",
            len(registrations), self.kind.code, order_id, total,
        )
        return {
            "registration_ids": [r.pk for r in registrations],
            "payment_url": result.payment_url,
            "transaction_ref": result.transaction_ref,
            "amount": total,
        }

    # ------------------------------------------------------------------
    # Admin decision
    # ------------------------------------------------------------------

    def decide(self, registration_id, admin, decision, note=None, rejection_reason=None):
        normalized = (decision or "").strip().upper()
        if normalized in ("APPROVE", "APPROVED"):
            return self.approve(registration_id, admin, note)
        if normalized in ("REJECT", "REJECTED", "CANCEL", "CANCELLED"):
            return self.reject(registration_id, admin, note, rejection_reason)
        raise CardValidationError(f"Invalid decision: {decision}")

    def approve(self, registration_id, admin, note=None):
        with transaction.atomic():
            registration = self.get(registration_id, for_update=True)
            if registration.status == "APPROVED":
                # Note-only update, nothing visible changes
                if note is not None:
                    registration.admin_note = note
                    registration.save(update_fields=["admin_note", "updated_at"])
                return registration
            if registration.status not in registration.DECIDABLE_STATUSES:
                raise CardStateConflict(f"Cannot approve a registration in status {registration.status}.")
            if not registration.is_paid:
                raise CardStateConflict(
                    f"Registration must be paid before approval (payment status {registration.payment_status})."
                )
            registration.status = "APPROVED"
            registration.approved_by = admin
            registration.approved_at = timezone.now()
            if note is not None:
                registration.admin_note = note
            registration.save(update_fields=DECISION_FIELDS)

        logger.info("%s registration %s approved by %s", self.kind.code, registration.pk, admin)

        if registration.is_paid:
            try:
                self.reminders.reset_for_registration(registration)
            except Exception:
                logger.exception("Failed to seed reminder cycle for registration %s", registration.pk)

        self._notify_decision(registration, "CARD_APPROVED")
        return registration

    def reject(self, registration_id, admin, note=None, rejection_reason=None):
        with transaction.atomic():
            registration = self.get(registration_id, for_update=True)
            if registration.status == "REJECTED":
                raise CardStateConflict("Registration is already rejected.")
            if registration.status == "CANCELLED":
                raise CardStateConflict("Registration was cancelled by the requester.")
            previous_status = registration.status
            registration.status = "REJECTED"
            if note is not None:
                registration.admin_note = note
            registration.rejection_reason = rejection_reason or note or ""
            registration.save(update_fields=DECISION_FIELDS)

        logger.info(
            "%s registration %s rejected by %s (was %s)",
            self.kind.code, registration.pk, admin, previous_status,
        )
        if previous_status in registration.DECIDABLE_STATUSES:
            self._notify_decision(registration, "CARD_REJECTED")
        return registration

    def _notify_decision(self, registration, notification_type):
        try:
            resident_id = registration.resident_id
            if resident_id is None:
                resident_id = self.eligibility.requester_resident_id(registration.user)
            label = self.kind.label
            if notification_type == "CARD_APPROVED":
                title = f"Your {label} has been approved"
                message = f"Your {label} registration for apartment {registration.apartment_number} was approved."
            else:
                title = f"Your {label} request was rejected"
                message = f"Your {label} registration was rejected."
                if registration.rejection_reason:
                    message += f" Reason: {registration.rejection_reason}"
            data = {
                "cardType": self.kind.code,
                "registrationId": str(registration.pk),
                "status": registration.status,
                "apartmentNumber": registration.apartment_number,
                "buildingName": registration.building_name,
            }
            if registration.license_plate:
                data["licensePlate"] = registration.license_plate
            self.notifier.send_resident_notification(
                resident_id,
                None,
                notification_type,
                title,
                message,
                registration.pk,
                self.kind.reference_type,
                data,
            )
        except Exception:
            logger.exception("Failed to send %s for registration %s", notification_type, registration.pk)

    # ------------------------------------------------------------------
    # Requester cancellation
    # ------------------------------------------------------------------

    def cancel(self, registration_id, user):
        """
        Cancel on behalf of the requester. The owner of the card's household
        may cancel any of its members' cards; other members only their own.
        Already cancelled is a no-op.
        """
        with transaction.atomic():
            registration = self.get(registration_id, for_update=True)
            if registration.status == "CANCELLED":
                return registration

            requester_id = self.eligibility.requester_resident_id(user)
            is_owner = requester_id is not None and self._owns_card_household(requester_id, registration)
            if not is_owner:
                own_card = registration.user_id == user.pk or (
                    requester_id is not None and registration.resident_id == requester_id
                )
                if not own_card:
                    raise NotCardOwner("You can only cancel your own cards.")
            if registration.status == "REJECTED":
                raise CardStateConflict("A rejected registration cannot be cancelled.")

            registration.status = "CANCELLED"
            registration.save(update_fields=["status", "updated_at"])

        logger.info("%s registration %s cancelled by user %s", self.kind.code, registration.pk, user.pk)
        return registration


def lifecycle_for(card_type, **kwargs):
    return RegistrationLifecycle(get_card_kind(card_type), **kwargs)
