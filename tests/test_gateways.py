import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests
from razorpay.errors import SignatureVerificationError

from app.domain.errors import ChallengeNotFoundError, GatewayTransportError, PaymentFailedError, PaymentFailureReason
from app.domain.schemas import PayerIdentity, PaymentStatus
from app.infrastructure.razorpay_gateway import RazorpayGateway, to_minor_units
from app.infrastructure.simulated_gateway import SimulatedPaymentGateway

PAYER = PayerIdentity(name="Asha Rao", email="asha@example.com", contact="9876543210")


class Outcomes:
    def __init__(self):
        self.receipts = []
        self.failures = []

    def on_success(self, receipt):
        self.receipts.append(receipt)

    def on_failure(self, error):
        self.failures.append(error)


def open_challenge(gateway, gateway_order_id="order_1", amount=Decimal("210")):
    outcomes = Outcomes()
    gateway.initiate_payment_challenge(amount, gateway_order_id, PAYER, outcomes.on_success, outcomes.on_failure)
    return outcomes


class TestChallengeRegistry:
    def test_success_invokes_exactly_one_callback(self):
        gateway = SimulatedPaymentGateway(delay=None)
        outcomes = open_challenge(gateway)

        gateway.complete_challenge("order_1", "pay_1", "sig_1")

        assert len(outcomes.receipts) == 1
        assert outcomes.failures == []
        receipt = outcomes.receipts[0]
        assert receipt.amount == Decimal("210")
        assert receipt.status == PaymentStatus.SUCCESS
        assert receipt.gateway_payment_id == "pay_1"

    def test_late_callbacks_are_rejected(self):
        gateway = SimulatedPaymentGateway(delay=None)
        outcomes = open_challenge(gateway)
        gateway.fail_challenge("order_1", PaymentFailureReason.DECLINED, "insufficient funds")

        with pytest.raises(ChallengeNotFoundError):
            gateway.complete_challenge("order_1", "pay_1", "sig_1")
        with pytest.raises(ChallengeNotFoundError):
            gateway.cancel_challenge("order_1")

        assert outcomes.receipts == []
        assert len(outcomes.failures) == 1
        assert isinstance(outcomes.failures[0], PaymentFailedError)
        assert outcomes.failures[0].reason == PaymentFailureReason.DECLINED

    def test_cancel_reports_user_cancelled(self):
        gateway = SimulatedPaymentGateway(delay=None)
        outcomes = open_challenge(gateway)

        gateway.cancel_challenge("order_1")

        assert outcomes.failures[0].reason == PaymentFailureReason.USER_CANCELLED
        assert not gateway.is_outstanding("order_1")

    def test_same_order_cannot_be_challenged_twice(self):
        gateway = SimulatedPaymentGateway(delay=None)
        open_challenge(gateway)

        with pytest.raises(ValueError):
            open_challenge(gateway)


class TestSimulatedGateway:
    async def test_intent_carries_amount(self):
        gateway = SimulatedPaymentGateway(delay=None)

        intent = await gateway.create_payment_intent(Decimal("210"), "INR")

        assert intent.gateway_order_id.startswith("order_")
        assert intent.amount == Decimal("210")

    async def test_intent_ids_are_unique(self):
        gateway = SimulatedPaymentGateway(delay=None)

        ids = {(await gateway.create_payment_intent(Decimal("1"), "INR")).gateway_order_id for _ in range(20)}

        assert len(ids) == 20

    async def test_receipt_verifies_only_once(self):
        gateway = SimulatedPaymentGateway(delay=None)
        payment_id, signature = gateway.issue_signature("order_1")

        assert await gateway.verify_receipt(payment_id, "order_1", signature) is True
        assert await gateway.verify_receipt(payment_id, "order_1", signature) is False
        assert gateway._issued == set()

    async def test_only_issued_signatures_verify(self):
        gateway = SimulatedPaymentGateway(delay=None)
        payment_id, signature = gateway.issue_signature("order_1")

        assert await gateway.verify_receipt(payment_id, "order_1", signature) is True
        assert await gateway.verify_receipt(payment_id, "order_2", signature) is False
        assert await gateway.verify_receipt(payment_id, "order_1", "sig_forged") is False

    @pytest.mark.parametrize("success_rate, succeeded", [(1.0, True), (0.0, False)])
    async def test_auto_settles_after_delay(self, success_rate, succeeded):
        gateway = SimulatedPaymentGateway(success_rate=success_rate, delay=0)
        outcomes = open_challenge(gateway)

        for _ in range(5):
            await asyncio.sleep(0)

        assert not gateway.is_outstanding("order_1")
        assert bool(outcomes.receipts) is succeeded
        assert bool(outcomes.failures) is not succeeded
        if succeeded:
            receipt = outcomes.receipts[0]
            assert await gateway.verify_receipt(receipt.gateway_payment_id, "order_1", receipt.signature)

    async def test_client_resolution_wins_over_auto_settle(self):
        gateway = SimulatedPaymentGateway(success_rate=1.0, delay=0)
        outcomes = open_challenge(gateway)
        gateway.cancel_challenge("order_1")

        for _ in range(5):
            await asyncio.sleep(0)

        assert outcomes.receipts == []
        assert [e.reason for e in outcomes.failures] == [PaymentFailureReason.USER_CANCELLED]


class TestRazorpayGateway:
    @pytest.fixture
    def gateway(self):
        gateway = RazorpayGateway("rzp_test_key", "secret")
        gateway.client = MagicMock()
        return gateway

    def test_minor_units(self):
        assert to_minor_units(Decimal("210")) == 21000
        assert to_minor_units(Decimal("99.50")) == 9950

    async def test_create_intent_sends_paise(self, gateway):
        gateway.client.order.create.return_value = {"id": "order_rzp_1", "amount": 21000}

        intent = await gateway.create_payment_intent(Decimal("210"), "INR")

        assert intent.gateway_order_id == "order_rzp_1"
        assert intent.amount == Decimal("210")
        payload = gateway.client.order.create.call_args.kwargs["data"]
        assert payload["amount"] == 21000
        assert payload["currency"] == "INR"

    async def test_network_error_becomes_transport_error(self, gateway):
        gateway.client.order.create.side_effect = requests.exceptions.ConnectionError("down")

        with pytest.raises(GatewayTransportError):
            await gateway.create_payment_intent(Decimal("210"), "INR")

    async def test_valid_signature(self, gateway):
        gateway.client.utility.verify_payment_signature.return_value = True

        assert await gateway.verify_receipt("pay_1", "order_1", "sig") is True
        params = gateway.client.utility.verify_payment_signature.call_args.args[0]
        assert params == {
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "sig",
        }

    async def test_signature_mismatch_is_false(self, gateway):
        gateway.client.utility.verify_payment_signature.side_effect = SignatureVerificationError("bad")

        assert await gateway.verify_receipt("pay_1", "order_1", "sig") is False

    def test_public_key(self, gateway):
        assert gateway.public_key_id == "rzp_test_key"
