from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PaymentUrlResult:
    payment_url: str
    transaction_ref: str


@dataclass
class CallbackVerification:
    signature_valid: bool
    response_code: Optional[str] = None
    transaction_status: Optional[str] = None
    transaction_ref: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING

    @property
    def success(self):
        return self.status == PaymentStatus.COMPLETED


class PaymentGateway(ABC):
    name = ""

    def __init__(self, config):
        self.config = config

    @abstractmethod
    def create_payment_url(self, order_id, description, amount, client_ip, return_url=None) -> PaymentUrlResult:
        """Build a signed checkout URL.

        ``transaction_ref`` has the form ``<order_id>_<suffix>``.
        """
        ...

    @abstractmethod
    def validate_return(self, params) -> bool:
        """True when the signature matches and the gateway reported success."""
        ...

    @abstractmethod
    def verify_callback(self, params) -> CallbackVerification:
        """Check signature and status codes of a return/IPN parameter set."""
        ...

    def test_connection(self) -> tuple:
        """Test if gateway credentials are valid. Returns (success, message)."""
        return False, "Not implemented"
