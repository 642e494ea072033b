"""Error taxonomy for the order & payment lifecycle.

Every failure a caller can observe is one of these types. The checkout
orchestrator turns them into a CheckoutResult; the HTTP layer maps them to
status codes.
"""
from enum import Enum
from typing import Dict, Optional

# User-facing messages. These three must stay distinct.
MSG_PAYMENT_FAILED = "Payment was unsuccessful. Please try again."
MSG_PAYMENT_UNVERIFIED = (
    "Payment succeeded but could not be verified. Please contact support with your payment id."
)
MSG_INVALID_REQUEST = "Invalid request."
MSG_ORDER_NOT_RECORDED = "Payment successful but order creation failed. Please contact support."


class PaymentFailureReason(str, Enum):
    USER_CANCELLED = "user_cancelled"
    DECLINED = "declined"
    TIMEOUT = "timeout"
    GATEWAY_ERROR = "gateway_error"


class OrderServiceError(Exception):
    """Base class for all order service errors."""

    message = MSG_INVALID_REQUEST

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail or self.message


class CheckoutValidationError(OrderServiceError):
    """Checkout form or cart rejected before any gateway call."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))


class GatewayTransportError(OrderServiceError):
    """The payment gateway could not be reached or answered with an error."""

    message = "Payment gateway is unavailable. Please try again."


class PaymentFailedError(OrderServiceError):
    message = MSG_PAYMENT_FAILED

    def __init__(self, reason: PaymentFailureReason, detail: Optional[str] = None):
        self.reason = reason
        super().__init__(detail)


class PaymentUnverifiedError(OrderServiceError):
    """A claimed payment success whose signature did not verify."""

    message = MSG_PAYMENT_UNVERIFIED

    def __init__(self, gateway_payment_id: str, gateway_order_id: str):
        self.gateway_payment_id = gateway_payment_id
        self.gateway_order_id = gateway_order_id
        super().__init__()


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class InvalidTransitionError(OrderServiceError):
    def __init__(self, order_id: str, current: str, requested: str):
        self.order_id = order_id
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order {order_id} from {current} to {requested}")


class ChallengeNotFoundError(OrderServiceError):
    """No outstanding payment challenge for the given gateway order id."""

    def __init__(self, gateway_order_id: str):
        self.gateway_order_id = gateway_order_id
        super().__init__(f"No outstanding payment for {gateway_order_id}")


class CheckoutNotFoundError(OrderServiceError):
    def __init__(self, gateway_order_id: str):
        self.gateway_order_id = gateway_order_id
        super().__init__(f"No checkout attempt for {gateway_order_id}")
