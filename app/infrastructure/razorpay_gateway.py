import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError

from app.domain.errors import GatewayTransportError
from app.domain.schemas import PaymentIntent
from app.infrastructure.payment_challenges import ChallengeRegistry

logger = logging.getLogger(__name__)

def to_minor_units(amount: Decimal) -> int:
    """Razorpay expects paise."""
    return int((amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))

class RazorpayGateway(ChallengeRegistry):
    """Payment gateway backed by the Razorpay Orders API.

    The challenge itself runs in Razorpay's checkout widget on the client.
    The client posts the widget's handler/ondismiss results back to us, which
    resolves the pending challenge.
    """

    def __init__(self, key_id: str, key_secret: str, currency: str = "INR", merchant_name: str = "Hawky"):
        super().__init__(currency)
        self._key_id = key_id
        self.merchant_name = merchant_name
        self.client = razorpay.Client(auth=(key_id, key_secret))

    @property
    def public_key_id(self):
        return self._key_id

    async def create_payment_intent(self, amount: Decimal, currency: str) -> PaymentIntent:
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "notes": {"merchant": self.merchant_name},
        }
        try:
            # The SDK is blocking (requests); keep it off the event loop
            response = await asyncio.to_thread(self.client.order.create, data=payload)
        except (requests.exceptions.RequestException, ServerError, GatewayError, BadRequestError) as e:
            logger.error(f"❌ Razorpay order creation failed: {e}")
            raise GatewayTransportError("Failed to create payment order") from e

        logger.info(f"🧾 Razorpay order {response['id']} created for {amount} {currency}")
        return PaymentIntent(gateway_order_id=response["id"], amount=amount, currency=currency)

    async def verify_receipt(self, payment_id: str, gateway_order_id: str, signature: str) -> bool:
        params = {
            "razorpay_order_id": gateway_order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        }
        try:
            verified = self.client.utility.verify_payment_signature(params)
        except SignatureVerificationError:
            logger.warning(f"🚨 Signature mismatch for payment {payment_id} on {gateway_order_id}")
            return False
        return bool(verified)
