import asyncio
import logging
import random
import secrets
import time
from decimal import Decimal
from typing import Optional, Set, Tuple

from app.domain.errors import ChallengeNotFoundError, PaymentFailureReason
from app.domain.schemas import PaymentIntent
from app.infrastructure.payment_challenges import ChallengeRegistry, PendingChallenge

logger = logging.getLogger(__name__)

def _token(prefix: str, length: int = 9) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(length)[:length]}"

class SimulatedPaymentGateway(ChallengeRegistry):
    """Local stand-in for a real processor.

    Challenges settle on their own after `delay` seconds with probability
    `success_rate`, unless the client resolves or cancels them first. Only
    signatures this instance issued will verify, each one once.
    """

    def __init__(self, currency: str = "INR", success_rate: float = 0.9, delay: Optional[float] = 2.0):
        super().__init__(currency)
        self.success_rate = success_rate
        self.delay = delay
        self._issued: Set[Tuple[str, str, str]] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def public_key_id(self):
        return "rzp_test_simulated"

    async def create_payment_intent(self, amount: Decimal, currency: str) -> PaymentIntent:
        await asyncio.sleep(0)
        return PaymentIntent(gateway_order_id=_token("order"), amount=amount, currency=currency)

    def issue_signature(self, gateway_order_id: str) -> Tuple[str, str]:
        payment_id = _token("pay")
        signature = f"sig_{secrets.token_hex(10)}"
        self._issued.add((payment_id, gateway_order_id, signature))
        return payment_id, signature

    def _on_challenge_started(self, challenge: PendingChallenge) -> None:
        if self.delay is None:
            return  # settled only by explicit client callbacks
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._settle_later(challenge.gateway_order_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _settle_later(self, gateway_order_id: str) -> None:
        await asyncio.sleep(self.delay)
        if not self.is_outstanding(gateway_order_id):
            return
        try:
            if random.random() < self.success_rate:
                payment_id, signature = self.issue_signature(gateway_order_id)
                self.complete_challenge(gateway_order_id, payment_id, signature)
            else:
                self.fail_challenge(gateway_order_id, PaymentFailureReason.DECLINED, "Payment failed. Please try again.")
        except ChallengeNotFoundError:
            # resolved by the client in the meantime
            logger.debug(f"Challenge {gateway_order_id} already settled")

    async def verify_receipt(self, payment_id: str, gateway_order_id: str, signature: str) -> bool:
        await asyncio.sleep(0)
        key = (payment_id, gateway_order_id, signature)
        if key not in self._issued:
            return False
        # A receipt verifies once
        self._issued.discard(key)
        return True
