import json
import logging
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.core.decorators import admin_required, resident_required

from .exceptions import CardError, CardValidationError
from .forms import AdminDecisionForm, BatchPaymentForm, clean_or_raise
from .kinds import get_card_kind
from .models import CardFeeReminderState, CardRegistration, GatewayCallbackLog
from .reconciler import payment_reconciler
from .services import PricingService, lifecycle_for

logger = logging.getLogger(__name__)


def card_errors(view_func):
    """Render CardError as a JSON error with its status code."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except CardError as e:
            return JsonResponse({"error": str(e), "code": type(e).__name__}, status=e.status_code)
    return wrapper


def _payload(request):
    if request.content_type == "application/json":
        try:
            return json.loads(request.body or b"{}")
        except ValueError:
            raise CardValidationError("Malformed JSON body.")
    return request.POST.dict()


def _client_ip(request):
    ip_address = request.META.get("HTTP_X_FORWARDED_FOR", request.META.get("REMOTE_ADDR", ""))
    if "," in ip_address:
        ip_address = ip_address.split(",")[0].strip()
    return ip_address or None


def _iso(value):
    return value.isoformat() if value else None


def serialize_registration(registration):
    return {
        "id": str(registration.pk),
        "card_type": registration.card_type,
        "request_type": registration.request_type,
        "user_id": str(registration.user_id),
        "resident_id": str(registration.resident_id) if registration.resident_id else None,
        "unit_id": str(registration.unit_id),
        "reissued_from": str(registration.reissued_from_id) if registration.reissued_from_id else None,
        "full_name": registration.full_name,
        "citizen_id": registration.citizen_id,
        "license_plate": registration.license_plate,
        "vehicle_type": registration.vehicle_type,
        "apartment_number": registration.apartment_number,
        "building_name": registration.building_name,
        "payment_amount": str(registration.payment_amount),
        "payment_status": registration.payment_status,
        "payment_date": _iso(registration.payment_date),
        "payment_gateway": registration.payment_gateway,
        "transaction_ref": registration.transaction_ref,
        "status": registration.status,
        "admin_note": registration.admin_note,
        "rejection_reason": registration.rejection_reason,
        "approved_at": _iso(registration.approved_at),
        "created_at": _iso(registration.created_at),
    }


def serialize_reminder_state(state):
    return {
        "id": str(state.pk),
        "card_type": state.card_type,
        "card_id": str(state.card_id),
        "unit_id": str(state.unit_id) if state.unit_id else None,
        "resident_id": str(state.resident_id) if state.resident_id else None,
        "apartment_number": state.apartment_number,
        "building_name": state.building_name,
        "cycle_start_date": _iso(state.cycle_start_date),
        "next_due_date": _iso(state.next_due_date),
        "reminder_count": state.reminder_count,
        "max_reminders": state.max_reminders,
        "last_reminded_at": _iso(state.last_reminded_at),
    }


# ============================================
# Resident endpoints
# ============================================

@resident_required
@require_http_methods(["GET", "POST"])
@card_errors
def resident_cards(request, card_type):
    """GET: the user's registrations of this kind. POST: create one."""
    lifecycle = lifecycle_for(card_type)
    if request.method == "POST":
        registration = lifecycle.create(request.user, _payload(request))
        return JsonResponse(serialize_registration(registration), status=201)

    registrations = lifecycle.list_for_user(request.user, unit_id=request.GET.get("unit_id") or None)
    return JsonResponse({"results": [serialize_registration(r) for r in registrations]})


@resident_required
@require_GET
@card_errors
def resident_card_detail(request, card_type, pk):
    registration = lifecycle_for(card_type).get_for_user(pk, request.user)
    return JsonResponse(serialize_registration(registration))


@resident_required
@require_POST
@card_errors
def resident_card_pay(request, card_type, pk):
    payload = _payload(request)
    result = lifecycle_for(card_type).initiate_payment(
        pk, request.user, client_ip=_client_ip(request), return_url=payload.get("return_url"),
    )
    return JsonResponse({
        "registration_id": str(result["registration_id"]),
        "payment_url": result["payment_url"],
        "transaction_ref": result["transaction_ref"],
        "amount": str(result["amount"]),
    })


@resident_required
@require_POST
@card_errors
def resident_card_batch_pay(request, card_type):
    payload = _payload(request)
    if isinstance(payload.get("registration_ids"), list):
        payload["registration_ids"] = json.dumps(payload["registration_ids"])
    cleaned = clean_or_raise(BatchPaymentForm(payload))
    result = lifecycle_for(card_type).initiate_batch_payment(
        cleaned["registration_ids"],
        request.user,
        cleaned["unit_id"],
        client_ip=_client_ip(request),
        return_url=payload.get("return_url"),
    )
    return JsonResponse({
        "registration_ids": [str(pk) for pk in result["registration_ids"]],
        "payment_url": result["payment_url"],
        "transaction_ref": result["transaction_ref"],
        "amount": str(result["amount"]),
    })


@resident_required
@require_POST
@card_errors
def resident_card_cancel(request, card_type, pk):
    registration = lifecycle_for(card_type).cancel(pk, request.user)
    return JsonResponse(serialize_registration(registration))


@resident_required
@require_GET
@card_errors
def resident_unit_capacity(request, card_type, unit_id):
    lifecycle = lifecycle_for(card_type)
    return JsonResponse({
        "card_type": lifecycle.kind.code,
        "unit_id": str(unit_id),
        "capacity_limited": lifecycle.kind.capacity_limited,
        "max_cards": lifecycle.max_cards_for_unit(unit_id),
        "active_cards": lifecycle.count_active(unit_id),
    })


@require_GET
def card_pricing(request):
    prices = PricingService.list_prices()
    return JsonResponse({code: str(price) for code, price in prices.items()})


# ============================================
# Admin endpoints
# ============================================

@admin_required
@require_GET
@card_errors
def admin_card_list(request, card_type):
    kind = get_card_kind(card_type)
    registrations = CardRegistration.objects.of_kind(kind.code).select_related("unit__building")
    status = request.GET.get("status")
    if status:
        registrations = registrations.filter(status=status.upper())
    unit_id = request.GET.get("unit_id")
    if unit_id:
        registrations = registrations.filter(unit_id=unit_id)
    return JsonResponse({"results": [serialize_registration(r) for r in registrations[:200]]})


@admin_required
@require_POST
@card_errors
def admin_card_decision(request, card_type, pk):
    cleaned = clean_or_raise(AdminDecisionForm(_payload(request)))
    registration = lifecycle_for(card_type).decide(
        pk,
        request.user,
        cleaned["decision"],
        note=cleaned.get("note") or None,
        rejection_reason=cleaned.get("rejection_reason") or None,
    )
    return JsonResponse(serialize_registration(registration))


@admin_required
@require_POST
@card_errors
def admin_update_price(request, card_type):
    payload = _payload(request)
    pricing = PricingService.update_price(
        card_type, payload.get("price"), user=request.user, description=payload.get("description"),
    )
    return JsonResponse({
        "card_type": pricing.card_type,
        "price": str(pricing.price),
        "currency": pricing.currency,
        "description": pricing.description,
    })


@admin_required
@require_GET
def admin_reminder_states(request):
    states = CardFeeReminderState.objects.all()
    card_type = request.GET.get("card_type")
    if card_type:
        states = states.filter(card_type=card_type.upper())
    return JsonResponse({"results": [serialize_reminder_state(s) for s in states[:200]]})


# ============================================
# Gateway return / IPN
# ============================================

@csrf_exempt
@require_http_methods(["GET", "POST"])
def vnpay_return(request):
    """
    Gateway redirect and IPN endpoint. No auth decorator: the reconciler
    verifies the gateway signature.
    """
    params = request.GET.dict() if request.method == "GET" else request.POST.dict()
    callback_log = GatewayCallbackLog.objects.create(
        provider="VNPAY",
        transaction_ref=params.get("vnp_TxnRef", ""),
        response_code=params.get("vnp_ResponseCode", ""),
        payload=params,
        ip_address=_client_ip(request),
    )

    try:
        result = payment_reconciler.handle_callback(params)
    except CardError as e:
        callback_log.status = "rejected"
        callback_log.error_message = str(e)
        callback_log.save(update_fields=["status", "error_message"])
        return JsonResponse({"success": False, "message": str(e)}, status=e.status_code)
    except Exception as e:
        logger.exception("Unexpected error reconciling gateway callback %s", callback_log.pk)
        callback_log.status = "failed"
        callback_log.error_message = str(e)
        callback_log.save(update_fields=["status", "error_message"])
        return JsonResponse({"success": False, "message": "Payment could not be processed."}, status=500)

    callback_log.status = "processed"
    callback_log.success = result.success
    callback_log.signature_valid = result.signature_valid
    callback_log.registration_id = result.registration_id
    callback_log.save(update_fields=["status", "success", "signature_valid", "registration_id"])
    return JsonResponse(result.as_dict())
