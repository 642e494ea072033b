import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from app.application.cart_service import CartAggregator
from app.application.order_service import OrderFactory
from app.domain.errors import (
    MSG_ORDER_NOT_RECORDED,
    MSG_PAYMENT_FAILED,
    ChallengeNotFoundError,
    CheckoutNotFoundError,
    CheckoutValidationError,
    GatewayTransportError,
    PaymentFailedError,
    PaymentFailureReason,
    PaymentUnverifiedError,
)
from app.domain.schemas import (
    CartLine,
    CheckoutFormData,
    CheckoutResult,
    CheckoutStarted,
    CheckoutStatus,
    Order,
    PaymentChallenge,
    PaymentIntent,
    PaymentReceipt,
)
from app.interfaces.IPaymentGateway import IPaymentGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")

CENT = Decimal("0.01")

USER_MESSAGES = {
    PaymentFailureReason.USER_CANCELLED: "Payment cancelled. Your cart has been kept.",
    PaymentFailureReason.DECLINED: MSG_PAYMENT_FAILED,
    PaymentFailureReason.TIMEOUT: "Payment timed out. Please try again.",
    PaymentFailureReason.GATEWAY_ERROR: MSG_PAYMENT_FAILED,
}


@dataclass
class CheckoutAttempt:
    customer_id: str
    form: CheckoutFormData
    lines: List[CartLine]
    intent: PaymentIntent
    result: CheckoutResult
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    finished_at: Optional[float] = None


class CheckoutOrchestrator:
    """Drives Cart -> Payment Gateway -> Order Factory for one checkout attempt.

    `start_checkout` returns as soon as the payment challenge is open. The
    rest of the attempt (waiting for the gateway, verifying, creating the
    order) runs as a background task so the service keeps answering other
    requests. Every outcome ends up as a CheckoutResult on the attempt, which
    stays readable for `result_ttl` seconds after it finishes.

    Cart, order store and notifier calls block on I/O, so they run in worker
    threads.
    """

    def __init__(self, carts: CartAggregator, gateway: IPaymentGateway, orders: OrderFactory,
                 notifier=None, currency: str = "INR", merchant_name: str = "Hawky",
                 max_retries: int = 1, result_ttl: float = 900):
        self.carts = carts
        self.gateway = gateway
        self.orders = orders
        self.notifier = notifier
        self.currency = currency
        self.merchant_name = merchant_name
        self.max_retries = max_retries
        self.result_ttl = result_ttl
        self._attempts: Dict[str, CheckoutAttempt] = {}
        self._active_by_customer: Dict[str, str] = {}
        self._tasks: Set[asyncio.Task] = set()

    # --- ENTRY POINTS ---

    async def start_checkout(self, customer_id: str, form: CheckoutFormData) -> CheckoutStarted:
        lines = await asyncio.to_thread(self.carts.lines, customer_id)

        # 1. VALIDATION (before any gateway call)
        errors = form.validation_errors()
        if not lines:
            errors["cart"] = "Please add items to cart before checkout"
        if errors:
            logger.info(f"Checkout rejected for {customer_id}: {sorted(errors)}")
            raise CheckoutValidationError(errors)

        # 2. A new attempt supersedes any outstanding challenge of this customer
        previous = self._active_by_customer.get(customer_id)
        if previous:
            try:
                self.gateway.cancel_challenge(previous)
                logger.info(f"Superseded checkout {previous} for {customer_id}")
            except ChallengeNotFoundError:
                pass

        self._evict_finished()

        # 3. BILL + INTENT (exactly one intent per attempt, charged to the paisa)
        bill = self.carts.compute_bill(customer_id, lines)
        amount = bill.grand_total.quantize(CENT, rounding=ROUND_HALF_UP)
        intent = await self._with_retries(
            lambda: self.gateway.create_payment_intent(amount, self.currency),
            "create payment intent",
        )

        attempt = CheckoutAttempt(
            customer_id=customer_id,
            form=form,
            lines=lines,
            intent=intent,
            result=CheckoutResult(gateway_order_id=intent.gateway_order_id,
                                  status=CheckoutStatus.AWAITING_PAYMENT),
        )
        self._attempts[intent.gateway_order_id] = attempt
        self._active_by_customer[customer_id] = intent.gateway_order_id

        # 4. CHALLENGE (exactly one callback resolves the future)
        outcome: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_success(receipt: PaymentReceipt) -> None:
            if not outcome.done():
                outcome.set_result(receipt)

        def on_failure(error: PaymentFailedError) -> None:
            if not outcome.done():
                outcome.set_exception(error)

        payer = form.payer()
        try:
            self.gateway.initiate_payment_challenge(intent.amount, intent.gateway_order_id, payer,
                                                    on_success, on_failure)
        except Exception as e:
            logger.error(f"❌ Could not open payment challenge {intent.gateway_order_id}: {e}")
            on_failure(PaymentFailedError(PaymentFailureReason.GATEWAY_ERROR, str(e)))
        attempt.task = asyncio.create_task(self._settle(attempt, outcome))
        self._tasks.add(attempt.task)
        attempt.task.add_done_callback(self._tasks.discard)

        logger.info(f"🛒 Checkout {intent.gateway_order_id} started for {customer_id}: {intent.amount}")
        return CheckoutStarted(
            challenge=PaymentChallenge(
                gateway_order_id=intent.gateway_order_id,
                amount=intent.amount,
                amount_minor=int(intent.amount * 100),
                currency=intent.currency,
                key_id=self.gateway.public_key_id,
                merchant_name=self.merchant_name,
                prefill=payer,
            ),
            result=attempt.result,
        )

    async def checkout(self, customer_id: str, form: CheckoutFormData) -> CheckoutResult:
        """Start a checkout and wait until its payment is settled."""
        started = await self.start_checkout(customer_id, form)
        return await self.wait_for_result(started.challenge.gateway_order_id)

    def get_result(self, gateway_order_id: str) -> CheckoutResult:
        return self._attempt(gateway_order_id).result

    async def wait_for_result(self, gateway_order_id: str) -> CheckoutResult:
        attempt = self._attempt(gateway_order_id)
        if attempt.task is not None:
            await asyncio.shield(attempt.task)
        return attempt.result

    # --- CLIENT CALLBACKS (forwarded from the gateway widget) ---

    async def report_success(self, gateway_order_id: str, payment_id: str, signature: str) -> CheckoutResult:
        self._attempt(gateway_order_id)
        self.gateway.complete_challenge(gateway_order_id, payment_id, signature)
        return await self.wait_for_result(gateway_order_id)

    async def report_failure(self, gateway_order_id: str, reason: PaymentFailureReason,
                             description: Optional[str] = None) -> CheckoutResult:
        self._attempt(gateway_order_id)
        self.gateway.fail_challenge(gateway_order_id, reason, description)
        return await self.wait_for_result(gateway_order_id)

    async def cancel(self, gateway_order_id: str) -> CheckoutResult:
        self._attempt(gateway_order_id)
        self.gateway.cancel_challenge(gateway_order_id)
        return await self.wait_for_result(gateway_order_id)

    # --- INTERNALS ---

    def _attempt(self, gateway_order_id: str) -> CheckoutAttempt:
        attempt = self._attempts.get(gateway_order_id)
        if attempt is None:
            raise CheckoutNotFoundError(gateway_order_id)
        return attempt

    async def _with_retries(self, operation: Callable[[], Awaitable[T]], what: str) -> T:
        attempts = self.max_retries + 1
        for n in range(1, attempts + 1):
            try:
                return await operation()
            except GatewayTransportError as e:
                if n == attempts:
                    logger.error(f"❌ Could not {what} after {n} attempt(s): {e}")
                    raise
                logger.warning(f"⚠️ Could not {what} (attempt {n}/{attempts}): {e}. Retrying.")

    def _evict_finished(self) -> None:
        cutoff = time.monotonic() - self.result_ttl
        expired = [gid for gid, attempt in self._attempts.items()
                   if attempt.finished_at is not None and attempt.finished_at <= cutoff]
        for gid in expired:
            del self._attempts[gid]
        if expired:
            logger.debug(f"Evicted {len(expired)} finished checkout(s)")

    def _finish(self, attempt: CheckoutAttempt, **result) -> None:
        attempt.result = CheckoutResult(gateway_order_id=attempt.intent.gateway_order_id, **result)
        attempt.finished_at = time.monotonic()
        if self._active_by_customer.get(attempt.customer_id) == attempt.intent.gateway_order_id:
            del self._active_by_customer[attempt.customer_id]

    async def _settle(self, attempt: CheckoutAttempt, outcome: asyncio.Future) -> None:
        gateway_order_id = attempt.intent.gateway_order_id

        # 1. Wait for the human-paced challenge. No timeout here: the gateway owns it.
        try:
            receipt: PaymentReceipt = await outcome
        except PaymentFailedError as e:
            logger.warning(f"💸 Payment {gateway_order_id} failed ({e.reason.value}); cart kept")
            self._finish(attempt, status=CheckoutStatus.PAYMENT_FAILED, failure_reason=e.reason,
                         message=USER_MESSAGES[e.reason])
            return

        # 2. Verify before trusting. A false result is terminal: never retried.
        try:
            verified = await self._with_retries(
                lambda: self.gateway.verify_receipt(receipt.gateway_payment_id, gateway_order_id,
                                                    receipt.signature),
                "verify payment",
            )
        except GatewayTransportError:
            verified = False
        if not verified:
            logger.error(
                f"🚨 RECONCILE: payment {receipt.gateway_payment_id} on {gateway_order_id} "
                f"for {attempt.customer_id} could not be verified. No order created."
            )
            self._finish(attempt, status=CheckoutStatus.PAYMENT_UNVERIFIED,
                         message=PaymentUnverifiedError(receipt.gateway_payment_id, gateway_order_id).detail)
            return

        # 3. Commit point
        try:
            order = await asyncio.to_thread(
                self.orders.create_order, attempt.customer_id, attempt.form, attempt.lines, receipt
            )
        except Exception as e:
            logger.error(
                f"🚨 RECONCILE: payment {receipt.gateway_payment_id} verified but order was not stored: {e}",
                exc_info=True,
            )
            self._finish(attempt, status=CheckoutStatus.ORDER_FAILED, message=MSG_ORDER_NOT_RECORDED)
            return

        # Past the commit point nothing may fail the attempt
        try:
            await asyncio.to_thread(self.carts.clear, attempt.customer_id)
        except Exception as e:
            logger.error(f"⚠️ Order {order.order_id} placed but cart of {attempt.customer_id} not cleared: {e}")
        self._finish(attempt, status=CheckoutStatus.COMPLETED, order=order,
                     message=f"Order {order.order_id} placed")
        await self._notify(order)

    async def _notify(self, order: Order) -> None:
        if self.notifier is None:
            return
        try:
            await asyncio.to_thread(self.notifier.notify_admin_new_order, order)
        except Exception as e:
            logger.error(f"❌ Admin alert for {order.order_id} failed: {e}", exc_info=True)
