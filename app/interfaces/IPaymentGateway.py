from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Optional

from app.domain.errors import PaymentFailedError, PaymentFailureReason
from app.domain.schemas import PayerIdentity, PaymentIntent, PaymentReceipt

OnSuccess = Callable[[PaymentReceipt], None]
OnFailure = Callable[[PaymentFailedError], None]

class IPaymentGateway(ABC):
    """Port to an external payment processor.

    A challenge is the human-paced part of a payment (the gateway's checkout
    widget). For a given challenge exactly one of on_success/on_failure fires,
    exactly once.
    """

    @property
    @abstractmethod
    def public_key_id(self) -> Optional[str]:
        pass

    @abstractmethod
    async def create_payment_intent(self, amount: Decimal, currency: str) -> PaymentIntent:
        """Mint a new gateway order. Raises GatewayTransportError when unreachable."""

    @abstractmethod
    def initiate_payment_challenge(
        self,
        amount: Decimal,
        gateway_order_id: str,
        payer: PayerIdentity,
        on_success: OnSuccess,
        on_failure: OnFailure,
    ) -> None:
        pass

    @abstractmethod
    async def verify_receipt(self, payment_id: str, gateway_order_id: str, signature: str) -> bool:
        pass

    @abstractmethod
    def complete_challenge(self, gateway_order_id: str, payment_id: str, signature: str) -> None:
        """Client reported success from the gateway widget."""

    @abstractmethod
    def fail_challenge(
        self, gateway_order_id: str, reason: PaymentFailureReason, description: Optional[str] = None
    ) -> None:
        """Client reported a decline or timeout from the gateway widget."""

    @abstractmethod
    def cancel_challenge(self, gateway_order_id: str) -> None:
        """User dismissed the payment before it finished."""
