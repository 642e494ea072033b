import threading
from datetime import datetime
from decimal import Decimal

import pytest

from app.domain.errors import InvalidTransitionError, OrderNotFoundError
from app.domain.order_status import OrderStatus, allowed_next, can_transition, forward_step, is_terminal
from app.domain.schemas import PaymentReceipt, PaymentStatus
from conftest import FIXED_NOW


@pytest.fixture
def receipt():
    return PaymentReceipt(
        gateway_order_id="order_1",
        gateway_payment_id="pay_1",
        signature="sig_1",
        amount=Decimal("210"),
        currency="INR",
        status=PaymentStatus.SUCCESS,
        timestamp=FIXED_NOW,
    )


@pytest.fixture
def order(orders, filled_cart, form, receipt):
    return orders.create_order("cust-1", form, filled_cart.lines("cust-1"), receipt)


FORWARD_PATH = [
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


class TestTransitionTable:
    def test_forward_path(self):
        current = OrderStatus.PENDING
        for nxt in FORWARD_PATH:
            assert forward_step(current) == nxt
            current = nxt
        assert forward_step(OrderStatus.DELIVERED) is None

    def test_cancel_allowed_from_every_non_terminal_state(self):
        for status in OrderStatus:
            if is_terminal(status):
                continue
            assert can_transition(status, OrderStatus.CANCELLED)

    def test_terminal_states(self):
        assert is_terminal(OrderStatus.DELIVERED)
        assert is_terminal(OrderStatus.CANCELLED)
        assert allowed_next(OrderStatus.DELIVERED) == frozenset()

    @pytest.mark.parametrize("current,requested", [
        (OrderStatus.PENDING, OrderStatus.DELIVERED),
        (OrderStatus.PENDING, OrderStatus.PREPARING),
        (OrderStatus.CONFIRMED, OrderStatus.OUT_FOR_DELIVERY),
        (OrderStatus.PREPARING, OrderStatus.CONFIRMED),
        (OrderStatus.PENDING, OrderStatus.PENDING),
    ])
    def test_skips_and_backwards_moves_rejected(self, current, requested):
        assert not can_transition(current, requested)


class TestOrderStatusMachine:
    def test_pending_to_confirmed_is_visible_on_next_read(self, status_machine, orders, order):
        status_machine.advance(order.order_id, OrderStatus.CONFIRMED)

        assert orders.get_by_id(order.order_id).status == OrderStatus.CONFIRMED

    def test_pending_to_delivered_rejected(self, status_machine, orders, order):
        with pytest.raises(InvalidTransitionError):
            status_machine.advance(order.order_id, OrderStatus.DELIVERED)

        assert orders.get_by_id(order.order_id).status == OrderStatus.PENDING

    def test_confirmed_to_out_for_delivery_rejected(self, status_machine, order):
        status_machine.advance(order.order_id, OrderStatus.CONFIRMED)

        with pytest.raises(InvalidTransitionError) as exc:
            status_machine.advance(order.order_id, OrderStatus.OUT_FOR_DELIVERY)
        assert exc.value.current == "confirmed"

    def test_full_forward_path_records_history(self, status_machine, orders, order):
        for status in FORWARD_PATH:
            status_machine.advance(order.order_id, status)

        stored = orders.get_by_id(order.order_id)
        assert stored.status == OrderStatus.DELIVERED
        assert [c.status for c in stored.status_history] == [OrderStatus.PENDING] + FORWARD_PATH

    @pytest.mark.parametrize("terminal_path", [
        FORWARD_PATH,
        [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    ])
    def test_terminal_orders_reject_everything(self, status_machine, order, terminal_path):
        for status in terminal_path:
            status_machine.advance(order.order_id, status)

        for status in OrderStatus:
            assert status_machine.try_advance(order.order_id, status) is False

    def test_unknown_order_rejected(self, status_machine):
        with pytest.raises(OrderNotFoundError):
            status_machine.advance("ORD_missing", OrderStatus.CONFIRMED)
        assert status_machine.try_advance("ORD_missing", OrderStatus.CONFIRMED) is False

    def test_transition_leaves_immutable_fields_alone(self, status_machine, orders, order):
        status_machine.advance(order.order_id, OrderStatus.CONFIRMED)

        stored = orders.get_by_id(order.order_id)
        assert stored.line_items == order.line_items
        assert stored.total_amount == order.total_amount
        assert stored.payment_receipt == order.payment_receipt
        assert stored.vendor_ids == order.vendor_ids
        assert stored.created_at == order.created_at

    def test_racing_terminal_transitions_only_one_wins(self, status_machine, orders, order):
        status_machine.advance(order.order_id, OrderStatus.CONFIRMED)
        status_machine.advance(order.order_id, OrderStatus.PREPARING)

        barrier = threading.Barrier(2)
        results = {}

        def attempt(target):
            barrier.wait()
            results[target] = status_machine.try_advance(order.order_id, target)

        threads = [
            threading.Thread(target=attempt, args=(OrderStatus.OUT_FOR_DELIVERY,)),
            threading.Thread(target=attempt, args=(OrderStatus.CANCELLED,)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results.values()) == [False, True]
        winner = next(status for status, won in results.items() if won)
        assert orders.get_by_id(order.order_id).status == winner
        assert status_machine._locks == {}

    def test_order_locks_are_released_after_use(self, status_machine, order):
        status_machine.advance(order.order_id, OrderStatus.CONFIRMED)
        assert status_machine.try_advance(order.order_id, OrderStatus.DELIVERED) is False

        assert status_machine._locks == {}

    def test_stale_write_is_rejected_by_repository(self, repo, status_machine, order):
        # Another writer moves the order after we read it
        repo.update_status(order.with_status(OrderStatus.CANCELLED, datetime.now()), OrderStatus.PENDING)

        with pytest.raises(InvalidTransitionError):
            status_machine.advance(order.order_id, OrderStatus.CONFIRMED)


class TestCustomerCancellation:
    def test_customer_can_cancel_pending_order(self, status_machine, order):
        cancelled = status_machine.cancel_by_customer(order.order_id, "cust-1")

        assert cancelled.status == OrderStatus.CANCELLED

    def test_customer_cannot_cancel_after_vendor_accepts(self, status_machine, order):
        status_machine.advance(order.order_id, OrderStatus.CONFIRMED)

        with pytest.raises(InvalidTransitionError):
            status_machine.cancel_by_customer(order.order_id, "cust-1")

    def test_customer_cannot_cancel_someone_elses_order(self, status_machine, order):
        with pytest.raises(OrderNotFoundError):
            status_machine.cancel_by_customer(order.order_id, "cust-2")
