"""Order Factory & Store.

`create_order` is the single commit point of a checkout: before it nothing
durable exists, after it the cart may be cleared.
"""
import logging
import time
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import pytz

from app.domain.errors import CheckoutValidationError, OrderNotFoundError
from app.domain.order_status import OrderStatus
from app.domain.schemas import (
    CartLine,
    CheckoutFormData,
    Order,
    OrderLineItem,
    PaymentReceipt,
    PaymentStatus,
    StatusChange,
    VendorStats,
)
from app.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)

def new_order_id() -> str:
    return f"ORD_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

def tz_clock(timezone: str) -> Callable[[], datetime]:
    tz = pytz.timezone(timezone)
    return lambda: datetime.now(tz)


class OrderFactory:
    def __init__(self, repository: IOrderRepository, delivery_window: timedelta,
                 clock: Callable[[], datetime]):
        self.repository = repository
        self.delivery_window = delivery_window
        self.clock = clock

    def create_order(self, customer_id: str, customer_details: CheckoutFormData,
                     cart_lines: List[CartLine], payment_receipt: PaymentReceipt) -> Order:
        """Materialize an order from a verified receipt.

        The caller must have verified the receipt with the gateway. The total
        is the amount actually charged, not a recomputation of the cart.
        """
        if payment_receipt.status != PaymentStatus.SUCCESS:
            raise CheckoutValidationError({"payment": f"Receipt status is {payment_receipt.status.value}"})
        if not cart_lines:
            raise CheckoutValidationError({"cart": "Cart is empty"})

        vendor_ids = list(dict.fromkeys(line.vendor_id for line in cart_lines))
        now = self.clock()
        order = Order(
            order_id=new_order_id(),
            customer_id=customer_id,
            customer_details=customer_details,
            line_items=[
                OrderLineItem(
                    product_id=line.product.id,
                    product_name=line.product.name,
                    quantity=line.quantity,
                    price=line.product.price,
                    vendor_id=line.vendor_id,
                    vendor_name=line.vendor_name,
                )
                for line in cart_lines
            ],
            vendor_ids=vendor_ids,
            total_amount=payment_receipt.amount,
            payment_receipt=payment_receipt,
            delivery_address=customer_details.delivery_address,
            status=OrderStatus.PENDING,
            created_at=now,
            estimated_delivery_time=now + self.delivery_window,
            status_history=[StatusChange(status=OrderStatus.PENDING, at=now)],
        )
        self.repository.save(order)
        logger.info(
            f"🎉 Order {order.order_id} created for {customer_id}: "
            f"{order.total_amount} {payment_receipt.currency}, vendors={vendor_ids}"
        )
        return order

    def get_by_id(self, order_id: str) -> Order:
        order = self.repository.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_by_customer(self, customer_id: str) -> List[Order]:
        return self.repository.list_by_customer(customer_id)

    def list_all(self, status: Optional[OrderStatus] = None) -> List[Order]:
        return self.repository.list_all(status)

    def list_by_vendor(self, vendor_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        return self.repository.list_by_vendor(vendor_id, status)

    def vendor_stats(self, vendor_id: str) -> VendorStats:
        counts: Dict[OrderStatus, int] = {status: 0 for status in OrderStatus}
        revenue = Decimal(0)
        for order in self.repository.list_by_vendor(vendor_id):
            counts[order.status] += 1
            if order.status == OrderStatus.CANCELLED:
                continue
            revenue += sum(
                (item.price * item.quantity for item in order.line_items if item.vendor_id == vendor_id),
                Decimal(0),
            )
        return VendorStats(vendor_id=vendor_id, order_counts=counts, revenue=revenue)
