"""Value types shared by the services and the HTTP layer.

Field names are snake_case in Python and camelCase on the wire, which is what
the mobile client sends and expects.
"""
import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.domain.errors import PaymentFailureReason
from app.domain.order_status import OrderStatus

PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")
EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
PINCODE_PATTERN = re.compile(r"^\d{6}$")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------
# CART
# ---------------------------------------------------------
class Product(CamelModel):
    id: str
    name: str
    price: Decimal = Field(ge=0, decimal_places=2)
    is_available: bool = True


class CartLine(CamelModel):
    line_id: str
    product: Product
    vendor_id: str
    vendor_name: str
    quantity: int = Field(default=1, ge=1)

    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity


class VendorGroup(CamelModel):
    vendor_id: str
    vendor_name: str
    lines: List[CartLine]
    subtotal: Decimal


class BillSummary(CamelModel):
    item_total: Decimal
    delivery_fee: Decimal
    platform_fee: Decimal
    taxes: Decimal
    grand_total: Decimal


class CartView(CamelModel):
    customer_id: str
    lines: List[CartLine]
    vendor_groups: List[VendorGroup]
    bill: BillSummary
    total_items: int


# ---------------------------------------------------------
# PAYMENT
# ---------------------------------------------------------
class PaymentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class PaymentIntent(FrozenCamelModel):
    gateway_order_id: str
    amount: Decimal
    currency: str


class PayerIdentity(CamelModel):
    name: str
    email: str
    contact: str


class PaymentReceipt(FrozenCamelModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    timestamp: datetime


class GatewaySuccess(CamelModel):
    """What the client widget reports when the gateway says the payment went through."""

    gateway_payment_id: str
    signature: str


class GatewayFailure(CamelModel):
    reason: PaymentFailureReason = PaymentFailureReason.DECLINED
    description: Optional[str] = None


# ---------------------------------------------------------
# CHECKOUT
# ---------------------------------------------------------
class DeliveryAddress(CamelModel):
    street: str = ""
    city: str = "Bengaluru"
    state: str = "Karnataka"
    pincode: str = ""
    landmark: Optional[str] = None


class CheckoutFormData(CamelModel):
    customer_name: str = ""
    phone_number: str = ""
    email: str = ""
    delivery_address: DeliveryAddress = Field(default_factory=DeliveryAddress)
    special_instructions: Optional[str] = None

    def validation_errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        name = self.customer_name.strip()
        if not name:
            errors["customerName"] = "Name is required"
        elif len(name) < 2:
            errors["customerName"] = "Name must be at least 2 characters"

        phone = re.sub(r"\s+", "", self.phone_number)
        if not phone:
            errors["phoneNumber"] = "Phone number is required"
        elif not PHONE_PATTERN.match(phone):
            errors["phoneNumber"] = "Please enter a valid 10-digit phone number"

        if not self.email.strip():
            errors["email"] = "Email is required"
        elif not EMAIL_PATTERN.search(self.email):
            errors["email"] = "Please enter a valid email address"

        if not self.delivery_address.street.strip():
            errors["street"] = "Street address is required"

        pincode = self.delivery_address.pincode.strip()
        if not pincode:
            errors["pincode"] = "Pincode is required"
        elif not PINCODE_PATTERN.match(pincode):
            errors["pincode"] = "Please enter a valid 6-digit pincode"

        return errors

    def payer(self) -> PayerIdentity:
        return PayerIdentity(
            name=self.customer_name.strip(),
            email=self.email.strip(),
            contact=re.sub(r"\s+", "", self.phone_number),
        )


class CheckoutRequest(CamelModel):
    customer_id: str
    form: CheckoutFormData


class CheckoutStatus(str, Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    COMPLETED = "completed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_UNVERIFIED = "payment_unverified"
    ORDER_FAILED = "order_failed"


class PaymentChallenge(CamelModel):
    """Everything the client needs to open the gateway's checkout widget."""

    gateway_order_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    key_id: Optional[str]
    merchant_name: str
    prefill: PayerIdentity


# ---------------------------------------------------------
# ORDERS
# ---------------------------------------------------------
class OrderLineItem(FrozenCamelModel):
    product_id: str
    product_name: str
    quantity: int
    price: Decimal
    vendor_id: str
    vendor_name: str


class StatusChange(FrozenCamelModel):
    status: OrderStatus
    at: datetime


class Order(FrozenCamelModel):
    order_id: str
    customer_id: str
    customer_details: CheckoutFormData
    line_items: Tuple[OrderLineItem, ...]
    vendor_ids: Tuple[str, ...]
    total_amount: Decimal
    payment_receipt: PaymentReceipt
    delivery_address: DeliveryAddress
    status: OrderStatus
    created_at: datetime
    estimated_delivery_time: datetime
    status_history: Tuple[StatusChange, ...] = ()

    def with_status(self, status: OrderStatus, at: datetime) -> "Order":
        history = self.status_history + (StatusChange(status=status, at=at),)
        return self.model_copy(update={"status": status, "status_history": history})


class CheckoutResult(CamelModel):
    gateway_order_id: str
    status: CheckoutStatus
    order: Optional[Order] = None
    failure_reason: Optional[PaymentFailureReason] = None
    message: Optional[str] = None


class CheckoutStarted(CamelModel):
    challenge: PaymentChallenge
    result: CheckoutResult


class StatusUpdate(CamelModel):
    status: OrderStatus


class VendorStats(CamelModel):
    vendor_id: str
    order_counts: Dict[OrderStatus, int]
    revenue: Decimal


class AddItemRequest(CamelModel):
    product: Product
    vendor_id: str
    vendor_name: str


class QuantityUpdate(CamelModel):
    quantity: int


class NextStatuses(CamelModel):
    order_id: str
    current: OrderStatus
    allowed: List[OrderStatus]
