"""
Shared fixtures: in-memory order store, RAM cart sessions and a payment
gateway whose challenges settle only when a test tells them to.
"""
import os

os.environ.setdefault("ORDER_STORE", "memory")
os.environ.setdefault("PAYMENT_GATEWAY", "simulated")

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import pytest
import pytz

from app.application.cart_service import CartAggregator
from app.application.orchestrator import CheckoutOrchestrator
from app.application.order_service import OrderFactory
from app.application.order_status_service import OrderStatusMachine
from app.domain.errors import GatewayTransportError
from app.domain.schemas import CheckoutFormData, DeliveryAddress, Product
from app.infrastructure.cart_store import CartStore
from app.infrastructure.repositories.order_repository import InMemoryOrderRepository
from app.infrastructure.simulated_gateway import SimulatedPaymentGateway

IST = pytz.timezone("Asia/Kolkata")
FIXED_NOW = IST.localize(datetime(2024, 5, 1, 12, 0, 0))

PANI_PURI = Product(id="p-pani", name="Pani Puri", price=Decimal("60"))
VADA_PAV = Product(id="p-vada", name="Vada Pav", price=Decimal("50"))
MASALA_CHAI = Product(id="p-chai", name="Masala Chai", price=Decimal("20"))


class ControlledGateway(SimulatedPaymentGateway):
    """Simulated gateway with switches for transport failures and bad signatures."""

    def __init__(self):
        super().__init__(currency="INR", delay=None)
        self.intent_failures = 0
        self.verify_failures = 0
        self.verify_result: Optional[bool] = None
        self.intents_created = []
        self.verify_calls = 0

    async def create_payment_intent(self, amount, currency):
        if self.intent_failures:
            self.intent_failures -= 1
            raise GatewayTransportError("connection reset")
        intent = await super().create_payment_intent(amount, currency)
        self.intents_created.append(intent)
        return intent

    async def verify_receipt(self, payment_id, gateway_order_id, signature):
        self.verify_calls += 1
        if self.verify_failures:
            self.verify_failures -= 1
            raise GatewayTransportError("timeout")
        if self.verify_result is not None:
            return self.verify_result
        return await super().verify_receipt(payment_id, gateway_order_id, signature)

    def pay(self, gateway_order_id):
        """Return the (payment_id, signature) the gateway widget would hand the client."""
        return self.issue_signature(gateway_order_id)


class RecordingNotifier:
    def __init__(self):
        self.orders = []

    def notify_admin_new_order(self, order):
        self.orders.append(order)
        return True


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def cart_store():
    return CartStore(redis_url=None)


@pytest.fixture
def carts(cart_store):
    return CartAggregator(cart_store, Decimal("25"), Decimal("5"), Decimal("0.05"))


@pytest.fixture
def repo():
    return InMemoryOrderRepository()


@pytest.fixture
def orders(repo, clock):
    return OrderFactory(repo, timedelta(minutes=30), clock)


@pytest.fixture
def status_machine(repo, clock):
    return OrderStatusMachine(repo, clock)


@pytest.fixture
def gateway():
    return ControlledGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def orchestrator(carts, gateway, orders, notifier):
    return CheckoutOrchestrator(carts, gateway, orders, notifier=notifier, max_retries=1)


@pytest.fixture
def form():
    return CheckoutFormData(
        customer_name="Asha Rao",
        phone_number="98765 43210",
        email="asha@example.com",
        delivery_address=DeliveryAddress(street="12 MG Road", pincode="560001", landmark="Near metro"),
        special_instructions="Less spicy",
    )


@pytest.fixture
def filled_cart(carts):
    """Two Pani Puri from vendor A and one Vada Pav from vendor B."""
    carts.add_item("cust-1", PANI_PURI, "vendor-a", "Sharma Chaat")
    carts.add_item("cust-1", PANI_PURI, "vendor-a", "Sharma Chaat")
    carts.add_item("cust-1", VADA_PAV, "vendor-b", "Mumbai Bites")
    return carts
