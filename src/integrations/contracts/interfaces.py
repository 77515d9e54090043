from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    QRIS = "QRIS"
    EWALLET = "EWALLET"
    VIRTUAL_ACCOUNT = "VIRTUAL_ACCOUNT"
    CARDS = "CARDS"


class PaymentProvider(str, Enum):
    FLIP = "FLIP"
    XENDIT = "XENDIT"


class EwalletChannel(str, Enum):
    DANA = "ID_DANA"
    OVO = "ID_OVO"
    LINKAJA = "ID_LINKAJA"
    SHOPEEPAY = "ID_SHOPEEPAY"
    GOJEK = "ID_GOJEK"


class VirtualAccountBank(str, Enum):
    BNI = "BNI"
    BCA = "BCA"
    BRI = "BRI"
    MANDIRI = "MANDIRI"
    PERMATA = "PERMATA"
    CIMB = "CIMB"


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

@dataclass
class PaymentItem:
    name: str
    quantity: int
    price: float


@dataclass
class UnifiedPaymentRequest:
    order_id: str
    amount: float
    payment_method: PaymentMethod
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    description: Optional[str] = None
    items: List[PaymentItem] = field(default_factory=list)


@dataclass
class UnifiedPaymentResponse:
    provider: PaymentProvider
    payment_id: str
    status: PaymentStatus
    amount: float
    payment_data: Dict[str, Any] = field(default_factory=dict)
    payment_url: Optional[str] = None
    qr_string: Optional[str] = None
    account_number: Optional[str] = None
    bank_code: Optional[str] = None
    expires_at: Optional[str] = None
    fees: Optional[float] = None


@dataclass
class PaymentStatusResult:
    is_paid: bool
    status: PaymentStatus
    raw_status: str
    amount: float = 0.0
    paid_amount: float = 0.0
    payment_data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None            # set when the provider could not be reached


@dataclass
class PaymentSession:
    order_id: str
    payment_id: str
    payment_method: PaymentMethod
    provider: PaymentProvider
    amount: float
    payment_data: Optional[Dict[str, Any]] = None
    start_time: datetime = field(default_factory=datetime.utcnow)


@dataclass
class PendingPayment:
    payment_id: str
    payment_method: PaymentMethod
    order_id: str
    provider: Optional[PaymentProvider]
    max_polling_seconds: float
    poll_interval_seconds: float
    start_time: datetime = field(default_factory=datetime.utcnow)


@dataclass
class OrderPaymentInfo:
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None


# ---------------------------------------------------------------------------
# Abstract provider interfaces
# ---------------------------------------------------------------------------

class XenditGateway(ABC):
    """Every Xendit client (real or mock) must implement this interface."""

    @abstractmethod
    async def create_qris_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        """Create a dynamic QR code."""

    @abstractmethod
    async def create_ewallet_payment(self, request: UnifiedPaymentRequest, channel_code: str) -> Dict[str, Any]:
        """Create an e-wallet charge for the given channel."""

    @abstractmethod
    async def create_virtual_account(self, request: UnifiedPaymentRequest, bank_code: str) -> Dict[str, Any]:
        """Create a closed, single-use callback virtual account."""

    @abstractmethod
    async def check_payment_status_universal(self, payment_id: str, payment_method: PaymentMethod) -> PaymentStatusResult:
        """Query the method-specific endpoint and decide whether the payment is paid."""

    @abstractmethod
    async def simulate_va_payment(self, va_id: str, amount: float) -> Dict[str, Any]:
        """Test-mode helper that pays a virtual account."""

    @abstractmethod
    async def check_health(self) -> Dict[str, Any]:
        """Cheap authenticated call used as a liveness probe."""

    @abstractmethod
    def calculate_fee(self, amount: float, payment_method: PaymentMethod) -> int:
        """Display fee in Rupiah."""

    @abstractmethod
    def validate_webhook_token(self, token: Optional[str]) -> bool:
        """Check the x-callback-token header."""


class FlipGateway(ABC):
    """Every Flip client (real or mock) must implement this interface."""

    @abstractmethod
    async def create_bill_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        """Create a payment link (v2 bill)."""

    @abstractmethod
    async def get_bill_status(self, bill_id: int) -> Dict[str, Any]:
        """Fetch a v2 bill."""

    @abstractmethod
    async def create_qris_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        """Create a QRIS bill through the direct API."""

    @abstractmethod
    async def create_va_payment(self, request: UnifiedPaymentRequest, bank_code: str) -> Dict[str, Any]:
        """Create a virtual-account bill through the direct API."""

    @abstractmethod
    async def create_ewallet_payment(self, request: UnifiedPaymentRequest, ewallet_code: str) -> Dict[str, Any]:
        """Create an e-wallet bill through the direct API."""

    @abstractmethod
    def create_mobile_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        """Bank transfer instructions shown in-app."""

    @abstractmethod
    async def get_available_banks(self) -> List[Dict[str, Any]]:
        """List banks supported by Flip."""

    @abstractmethod
    def validate_webhook_token(self, token: Optional[str]) -> bool:
        """Check the callback token against the validation key."""


class OdooClient(ABC):
    """Minimal `execute_kw` surface used for order reconciliation."""

    @abstractmethod
    async def execute_kw(
        self,
        model: str,
        method: str,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Call a model method on the ERP."""
