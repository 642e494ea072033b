import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

import pytz

from app.core.config import settings
from app.domain.errors import ChallengeNotFoundError, PaymentFailedError, PaymentFailureReason
from app.domain.schemas import PayerIdentity, PaymentReceipt, PaymentStatus
from app.interfaces.IPaymentGateway import IPaymentGateway, OnFailure, OnSuccess

logger = logging.getLogger(__name__)

class PendingChallenge:
    """One outstanding payment challenge. Settles at most once."""

    def __init__(self, amount: Decimal, currency: str, gateway_order_id: str,
                 payer: PayerIdentity, on_success: OnSuccess, on_failure: OnFailure):
        self.amount = amount
        self.currency = currency
        self.gateway_order_id = gateway_order_id
        self.payer = payer
        self._on_success = on_success
        self._on_failure = on_failure
        self._lock = threading.Lock()
        self.settled = False

    def _claim(self) -> bool:
        with self._lock:
            if self.settled:
                return False
            self.settled = True
            return True

    def succeed(self, payment_id: str, signature: str) -> bool:
        if not self._claim():
            return False
        receipt = PaymentReceipt(
            gateway_order_id=self.gateway_order_id,
            gateway_payment_id=payment_id,
            signature=signature,
            amount=self.amount,
            currency=self.currency,
            status=PaymentStatus.SUCCESS,
            timestamp=datetime.now(pytz.timezone(settings.TIMEZONE)),
        )
        self._on_success(receipt)
        return True

    def fail(self, reason: PaymentFailureReason, description: Optional[str] = None) -> bool:
        if not self._claim():
            return False
        self._on_failure(PaymentFailedError(reason, description))
        return True


class ChallengeRegistry(IPaymentGateway):
    """Shared bookkeeping for gateways whose challenge outcome arrives later.

    Subclasses implement intent creation and receipt verification; this class
    guarantees that each challenge resolves through exactly one callback.
    """

    def __init__(self, currency: str):
        self.currency = currency
        self._challenges: Dict[str, PendingChallenge] = {}
        self._lock = threading.Lock()

    def initiate_payment_challenge(self, amount, gateway_order_id, payer, on_success, on_failure) -> None:
        challenge = PendingChallenge(amount, self.currency, gateway_order_id, payer, on_success, on_failure)
        with self._lock:
            if gateway_order_id in self._challenges:
                raise ValueError(f"Challenge already started for {gateway_order_id}")
            self._challenges[gateway_order_id] = challenge
        logger.info(f"💳 Payment challenge opened for {gateway_order_id} ({amount} {self.currency})")
        self._on_challenge_started(challenge)

    def _on_challenge_started(self, challenge: PendingChallenge) -> None:
        """Hook for gateways that drive the challenge themselves."""

    def _pop(self, gateway_order_id: str) -> PendingChallenge:
        with self._lock:
            challenge = self._challenges.pop(gateway_order_id, None)
        if challenge is None:
            raise ChallengeNotFoundError(gateway_order_id)
        return challenge

    def is_outstanding(self, gateway_order_id: str) -> bool:
        with self._lock:
            return gateway_order_id in self._challenges

    def complete_challenge(self, gateway_order_id: str, payment_id: str, signature: str) -> None:
        challenge = self._pop(gateway_order_id)
        if not challenge.succeed(payment_id, signature):
            raise ChallengeNotFoundError(gateway_order_id)
        logger.info(f"✅ Gateway reported success for {gateway_order_id} (payment {payment_id})")

    def fail_challenge(self, gateway_order_id, reason, description=None) -> None:
        challenge = self._pop(gateway_order_id)
        if not challenge.fail(reason, description):
            raise ChallengeNotFoundError(gateway_order_id)
        logger.warning(f"⚠️ Payment {gateway_order_id} failed: {reason.value} {description or ''}".rstrip())

    def cancel_challenge(self, gateway_order_id: str) -> None:
        self.fail_challenge(gateway_order_id, PaymentFailureReason.USER_CANCELLED, "Payment cancelled by user")
