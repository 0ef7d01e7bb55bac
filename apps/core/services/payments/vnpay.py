import hashlib
import hmac
import logging
import time
from decimal import Decimal
from urllib.parse import quote_plus

from django.utils import timezone

from .base import CallbackVerification, PaymentGateway, PaymentStatus, PaymentUrlResult

logger = logging.getLogger(__name__)

SUCCESS_CODE = "00"
SIGNATURE_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")


def _hash_data(params):
    return "&".join(f"{key}={quote_plus(str(params[key]))}" for key in sorted(params))


def _query_string(params):
    return "&".join(f"{quote_plus(key)}={quote_plus(str(params[key]))}" for key in sorted(params))


class VnpayGateway(PaymentGateway):
    name = "VNPAY"

    def __init__(self, config):
        super().__init__(config)
        self.tmn_code = config.get("tmn_code", "")
        self.hash_secret = config.get("hash_secret", "")
        self.payment_url = config.get("url", "")
        self.return_url = config.get("return_url", "")
        self.version = config.get("version", "2.1.0")
        self.command = config.get("command", "pay")

    def sign(self, data):
        return hmac.new(
            self.hash_secret.encode("utf-8"),
            data.encode("utf-8"),
            hashlib.sha512,
        ).hexdigest()

    def create_payment_url(self, order_id, description, amount, client_ip, return_url=None) -> PaymentUrlResult:
        transaction_ref = f"{order_id}_{int(time.time() * 1000)}"
        params = {
            "vnp_Version": self.version,
            "vnp_Command": self.command,
            "vnp_TmnCode": self.tmn_code,
            "vnp_Amount": str(int(Decimal(amount) * 100)),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": transaction_ref,
            "vnp_OrderInfo": description,
            "vnp_OrderType": "other",
            "vnp_Locale": "vn",
            "vnp_ReturnUrl": return_url or self.return_url,
            "vnp_IpAddr": client_ip or "127.0.0.1",
            "vnp_CreateDate": timezone.localtime().strftime("%Y%m%d%H%M%S"),
        }
        secure_hash = self.sign(_hash_data(params))
        url = f"{self.payment_url}?{_query_string(params)}&vnp_SecureHash={secure_hash}"
        logger.info("VNPAY payment URL created: order=%s amount=%s txn_ref=%s", order_id, amount, transaction_ref)
        return PaymentUrlResult(payment_url=url, transaction_ref=transaction_ref)

    def _signature_matches(self, params):
        received = params.get("vnp_SecureHash")
        if not received or not self.hash_secret:
            return False
        signed = {k: v for k, v in params.items() if k not in SIGNATURE_FIELDS and v not in (None, "")}
        expected = self.sign(_hash_data(signed))
        return hmac.compare_digest(expected.lower(), str(received).lower())

    def validate_return(self, params) -> bool:
        if not params:
            return False
        return self._signature_matches(params) and params.get("vnp_ResponseCode") == SUCCESS_CODE

    def verify_callback(self, params) -> CallbackVerification:
        params = params or {}
        signature_valid = self._signature_matches(params)
        response_code = params.get("vnp_ResponseCode")
        transaction_status = params.get("vnp_TransactionStatus")
        completed = (
            signature_valid
            and response_code == SUCCESS_CODE
            and transaction_status == SUCCESS_CODE
        )
        if not signature_valid:
            logger.warning("VNPAY callback signature mismatch for %s", params.get("vnp_TxnRef"))
        return CallbackVerification(
            signature_valid=signature_valid,
            response_code=response_code,
            transaction_status=transaction_status,
            transaction_ref=params.get("vnp_TxnRef"),
            status=PaymentStatus.COMPLETED if completed else PaymentStatus.FAILED,
        )

    def test_connection(self) -> tuple:
        if not self.tmn_code or not self.hash_secret:
            return False, "VNPAY terminal code or hash secret not configured"
        return True, "VNPAY credentials present"
