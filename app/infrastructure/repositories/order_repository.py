import logging
import threading
from typing import Dict, List, Optional

from sqlalchemy import desc, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.domain.models import OrderRecord, PaymentReceiptRecord
from app.domain.order_status import OrderStatus
from app.domain.schemas import Order, PaymentReceipt
from app.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)

def _to_record(order: Order) -> OrderRecord:
    receipt = order.payment_receipt
    return OrderRecord(
        order_id=order.order_id,
        customer_id=order.customer_id,
        status=order.status.value,
        customer_details=order.customer_details.model_dump(mode="json"),
        items=[item.model_dump(mode="json") for item in order.line_items],
        vendor_ids=list(order.vendor_ids),
        delivery_address=order.delivery_address.model_dump(mode="json"),
        status_history=[change.model_dump(mode="json") for change in order.status_history],
        total_amount=order.total_amount,
        currency=receipt.currency,
        gateway_payment_id=receipt.gateway_payment_id,
        created_at=order.created_at,
        estimated_delivery_time=order.estimated_delivery_time,
        payment_receipt=PaymentReceiptRecord(
            gateway_payment_id=receipt.gateway_payment_id,
            gateway_order_id=receipt.gateway_order_id,
            signature=receipt.signature,
            amount=receipt.amount,
            currency=receipt.currency,
            status=receipt.status.value,
            timestamp=receipt.timestamp,
        ),
    )

def _to_order(record: OrderRecord) -> Order:
    receipt = record.payment_receipt
    return Order(
        order_id=record.order_id,
        customer_id=record.customer_id,
        customer_details=record.customer_details,
        line_items=record.items,
        vendor_ids=record.vendor_ids,
        total_amount=record.total_amount,
        payment_receipt=PaymentReceipt(
            gateway_order_id=receipt.gateway_order_id,
            gateway_payment_id=receipt.gateway_payment_id,
            signature=receipt.signature,
            amount=receipt.amount,
            currency=receipt.currency,
            status=receipt.status,
            timestamp=receipt.timestamp,
        ),
        delivery_address=record.delivery_address,
        status=record.status,
        created_at=record.created_at,
        estimated_delivery_time=record.estimated_delivery_time,
        status_history=record.status_history or [],
    )


class SqlOrderRepository(IOrderRepository):
    """Orders table in any SQLAlchemy-supported database."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save(self, order: Order) -> None:
        session = self.session_factory()
        try:
            session.add(_to_record(order))
            session.commit()
            logger.info(f"💾 Order {order.order_id} stored")
        except SQLAlchemyError as e:
            logger.error(f"❌ DB Error storing order {order.order_id}: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def find_by_id(self, order_id: str) -> Optional[Order]:
        session = self.session_factory()
        try:
            record = session.get(OrderRecord, order_id)
            return _to_order(record) if record else None
        finally:
            session.close()

    def _list(self, *criteria) -> List[Order]:
        session = self.session_factory()
        try:
            # Newest first
            records = (
                session.query(OrderRecord)
                .filter(*criteria)
                .order_by(desc(OrderRecord.created_at))
                .all()
            )
            return [_to_order(r) for r in records]
        finally:
            session.close()

    def list_by_customer(self, customer_id: str) -> List[Order]:
        return self._list(OrderRecord.customer_id == customer_id)

    def list_all(self, status: Optional[OrderStatus] = None) -> List[Order]:
        if status is None:
            return self._list()
        return self._list(OrderRecord.status == status.value)

    def list_by_vendor(self, vendor_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        # vendor_ids is a JSON array; filtering it portably means doing it here
        return [o for o in self.list_all(status) if vendor_id in o.vendor_ids]

    def update_status(self, order: Order, expected: OrderStatus) -> bool:
        session = self.session_factory()
        try:
            result = session.execute(
                update(OrderRecord)
                .where(OrderRecord.order_id == order.order_id, OrderRecord.status == expected.value)
                .values(
                    status=order.status.value,
                    status_history=[change.model_dump(mode="json") for change in order.status_history],
                )
            )
            session.commit()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"❌ DB Error updating order {order.order_id}: {e}")
            session.rollback()
            raise
        finally:
            session.close()


class InMemoryOrderRepository(IOrderRepository):
    """Process-local order store, for development and tests."""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def save(self, order: Order) -> None:
        with self._lock:
            if order.order_id in self._orders:
                raise ValueError(f"Order {order.order_id} already exists")
            self._orders[order.order_id] = order

    def find_by_id(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def _newest_first(self, orders) -> List[Order]:
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def _snapshot(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())

    def list_by_customer(self, customer_id: str) -> List[Order]:
        return self._newest_first(o for o in self._snapshot() if o.customer_id == customer_id)

    def list_all(self, status: Optional[OrderStatus] = None) -> List[Order]:
        return self._newest_first(
            o for o in self._snapshot() if status is None or o.status == status
        )

    def list_by_vendor(self, vendor_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        return [o for o in self.list_all(status) if vendor_id in o.vendor_ids]

    def update_status(self, order: Order, expected: OrderStatus) -> bool:
        with self._lock:
            current = self._orders.get(order.order_id)
            if current is None or current.status != expected:
                return False
            self._orders[order.order_id] = order
            return True
