import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.core.services.billing import billing_client

from .exceptions import CallbackIntegrityError
from .order_store import get_order_store
from .reminders import FeeReminderService
from .services import GATEWAY_NAME, apply_payment_failure, apply_payment_success

logger = logging.getLogger(__name__)


@dataclass
class CallbackResult:
    registration_id: Optional[UUID]
    success: bool
    response_code: Optional[str]
    signature_valid: bool
    request_type: Optional[str]
    message: str
    card_type: Optional[str] = None

    def as_dict(self):
        return {
            "registration_id": str(self.registration_id) if self.registration_id else None,
            "success": self.success,
            "response_code": self.response_code,
            "signature_valid": self.signature_valid,
            "request_type": self.request_type,
            "card_type": self.card_type,
            "message": self.message,
        }


def parse_order_id(transaction_ref):
    """``<order_id>_<suffix>`` -> order_id."""
    if not transaction_ref or "_" not in transaction_ref:
        raise CallbackIntegrityError("Invalid transaction reference.")
    try:
        order_id = int(transaction_ref.split("_", 1)[0])
    except ValueError:
        raise CallbackIntegrityError("Invalid transaction reference.")
    if order_id <= 0:
        raise CallbackIntegrityError("Invalid transaction reference.")
    return order_id


class PaymentGatewayReconciler:
    """
    Applies a gateway return/IPN to the registrations it pays for.

    All registrations sharing the transaction reference move together. Billing
    and reminder side effects run after the commit and never undo a payment.
    """

    def __init__(self, order_store=None, gateway=None, billing=None, reminders=FeeReminderService):
        self._order_store = order_store
        self._gateway = gateway
        self.billing = billing or billing_client
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

    def handle_callback(self, params):
        params = {key: value for key, value in (params or {}).items() if value not in (None, "")}
        transaction_ref = params.get("vnp_TxnRef", "")
        order_id = parse_order_id(transaction_ref)

        try:
            primary = self._resolve_registration(order_id, transaction_ref)
            verification = self.gateway.verify_callback(params)

            if verification.success:
                confirmed, already_paid = self._apply_success(primary, transaction_ref)
                for registration in confirmed:
                    self._record_billing(registration, transaction_ref, params)
                    self._reset_reminder(registration)
                message = "Payment already confirmed." if already_paid and not confirmed else "Payment successful."
            else:
                self._apply_failure(primary, transaction_ref)
                message = "Payment failed, please retry."
                logger.warning(
                    "Payment failed for ref %s (response %s, status %s, signature %s)",
                    transaction_ref, verification.response_code,
                    verification.transaction_status, verification.signature_valid,
                )
        finally:
            self.order_store.pop(order_id)

        return CallbackResult(
            registration_id=primary.pk,
            success=verification.success,
            response_code=verification.response_code,
            signature_valid=verification.signature_valid,
            request_type=primary.request_type,
            message=message,
            card_type=primary.card_type,
        )

    def _resolve_registration(self, order_id, transaction_ref):
        from .models import CardRegistration

        registration = None
        registration_id = self.order_store.get(order_id)
        if registration_id:
            registration = CardRegistration.objects.filter(pk=registration_id).first()
        if registration is None:
            registration = (
                CardRegistration.objects.filter(transaction_ref=transaction_ref)
                .order_by("created_at", "pk")
                .first()
            )
            if registration is not None:
                logger.info("Order %s not in order store; resolved by transaction ref", order_id)
        if registration is None:
            raise CallbackIntegrityError(f"Registration not found for transaction {transaction_ref}.")
        return registration

    def _locked_batch(self, primary, transaction_ref):
        from .models import CardRegistration

        batch = list(
            CardRegistration.objects.select_for_update()
            .filter(transaction_ref=transaction_ref)
            .order_by("created_at", "pk")
        )
        if not batch:
            batch = [CardRegistration.objects.select_for_update().get(pk=primary.pk)]
        return batch

    def _apply_success(self, primary, transaction_ref):
        paid_at = timezone.now()
        confirmed = []
        already_paid = False
        with transaction.atomic():
            for registration in self._locked_batch(primary, transaction_ref):
                if registration.payment_status == "PAID":
                    already_paid = True
                    continue
                apply_payment_success(registration, paid_at)
                confirmed.append(registration)
        if confirmed:
            logger.info(
                "Payment confirmed for %d registration(s) on ref %s",
                len(confirmed), transaction_ref,
            )
        return confirmed, already_paid

    def _apply_failure(self, primary, transaction_ref):
        with transaction.atomic():
            for registration in self._locked_batch(primary, transaction_ref):
                if registration.payment_status == "PAID":
                    continue
                apply_payment_failure(registration)

    def _record_billing(self, registration, transaction_ref, params):
        """Record the payment once per card and transaction, then report it to billing."""
        from .models import CardPaymentRecord

        record = None
        try:
            record, created = CardPaymentRecord.objects.get_or_create(
                registration=registration,
                transaction_ref=transaction_ref,
                defaults={
                    "amount": registration.payment_amount,
                    "gateway": GATEWAY_NAME,
                    "gateway_transaction_no": params.get("vnp_TransactionNo", ""),
                    "bank_code": params.get("vnp_BankCode", ""),
                    "gateway_card_type": params.get("vnp_CardType", ""),
                    "paid_at": registration.payment_date,
                },
            )
            if not created and record.billing_status == "recorded":
                logger.info("Billing already recorded for %s on ref %s", registration.pk, transaction_ref)
                return

            payload = {
                "registrationId": str(registration.pk),
                "userId": str(registration.user_id),
                "unitId": str(registration.unit_id),
                "fullName": registration.full_name,
                "apartmentNumber": registration.apartment_number,
                "buildingName": registration.building_name,
                "vehicleType": registration.vehicle_type,
                "licensePlate": registration.license_plate,
                "requestType": registration.request_type,
                "note": registration.note,
                "amount": str(registration.payment_amount),
                "paymentDate": registration.payment_date.isoformat(),
                "transactionRef": transaction_ref,
                "transactionNo": params.get("vnp_TransactionNo"),
                "bankCode": params.get("vnp_BankCode"),
                "cardType": params.get("vnp_CardType"),
                "responseCode": params.get("vnp_ResponseCode"),
            }
            self.billing.record_payment(registration.card_type, payload)
            record.billing_status = "recorded"
            record.billing_error = ""
            record.save(update_fields=["billing_status", "billing_error", "updated_at"])
        except Exception as e:
            logger.exception("Failed to record billing for registration %s", registration.pk)
            if record is not None:
                try:
                    record.billing_status = "failed"
                    record.billing_error = str(e)
                    record.save(update_fields=["billing_status", "billing_error", "updated_at"])
                except Exception:
                    logger.exception("Failed to mark billing record %s as failed", record.pk)

    def _reset_reminder(self, registration):
        try:
            self.reminders.reset_for_registration(registration, payment_date=registration.payment_date)
        except Exception:
            logger.exception("Failed to reset reminder cycle for registration %s", registration.pk)


payment_reconciler = PaymentGatewayReconciler()
