import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List

from app.domain.errors import InvalidTransitionError, OrderNotFoundError
from app.domain.order_status import CUSTOMER_CANCELLABLE, OrderStatus, allowed_next, can_transition
from app.domain.schemas import Order
from app.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)

class OrderStatusMachine:
    """Serialized status transitions.

    Each read-modify-write holds a lock scoped to the order id, and the
    repository write is conditional on the status read, so two concurrent
    advances on the same order can never both succeed.
    """

    def __init__(self, repository: IOrderRepository, clock: Callable[[], datetime]):
        self.repository = repository
        self.clock = clock
        # order_id -> [lock, holders]; an entry lives only while someone holds or waits on it
        self._locks: Dict[str, List] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _locked(self, order_id: str):
        with self._registry_lock:
            entry = self._locks.get(order_id)
            if entry is None:
                entry = self._locks[order_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._registry_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[order_id]

    def allowed_next(self, order_id: str) -> FrozenSet[OrderStatus]:
        order = self.repository.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return allowed_next(order.status)

    def advance(self, order_id: str, requested: OrderStatus) -> Order:
        requested = OrderStatus(requested)
        with self._locked(order_id):
            order = self.repository.find_by_id(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            current = order.status
            if not can_transition(current, requested):
                logger.warning(f"⛔ Rejected {order_id}: {current.value} -> {requested.value}")
                raise InvalidTransitionError(order_id, current.value, requested.value)

            updated = order.with_status(requested, self.clock())
            if not self.repository.update_status(updated, expected=current):
                # Another process moved the order between our read and write
                latest = self.repository.find_by_id(order_id)
                raise InvalidTransitionError(order_id, latest.status.value if latest else current.value,
                                             requested.value)

        logger.info(f"📦 Order {order_id}: {current.value} -> {requested.value}")
        return updated

    def try_advance(self, order_id: str, requested: OrderStatus) -> bool:
        try:
            self.advance(order_id, requested)
            return True
        except (InvalidTransitionError, OrderNotFoundError):
            return False

    def cancel_by_customer(self, order_id: str, customer_id: str) -> Order:
        """Customers may withdraw their own order only before the vendor accepts it."""
        order = self.repository.find_by_id(order_id)
        if order is None or order.customer_id != customer_id:
            raise OrderNotFoundError(order_id)
        if order.status not in CUSTOMER_CANCELLABLE:
            raise InvalidTransitionError(order_id, order.status.value, OrderStatus.CANCELLED.value)
        return self._cancel_if_still(order_id, CUSTOMER_CANCELLABLE)

    def _cancel_if_still(self, order_id: str, permitted: FrozenSet[OrderStatus]) -> Order:
        with self._locked(order_id):
            order = self.repository.find_by_id(order_id)
            if order.status not in permitted:
                raise InvalidTransitionError(order_id, order.status.value, OrderStatus.CANCELLED.value)
            updated = order.with_status(OrderStatus.CANCELLED, self.clock())
            if not self.repository.update_status(updated, expected=order.status):
                latest = self.repository.find_by_id(order_id)
                raise InvalidTransitionError(order_id, latest.status.value, OrderStatus.CANCELLED.value)
        logger.info(f"📦 Order {order_id} cancelled by customer")
        return updated
