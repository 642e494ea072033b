from abc import ABC, abstractmethod
from typing import List, Optional

from app.domain.order_status import OrderStatus
from app.domain.schemas import Order

class IOrderRepository(ABC):
    @abstractmethod
    def save(self, order: Order) -> None:
        """Append a newly created order. Orders are never deleted."""

    @abstractmethod
    def find_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def list_by_customer(self, customer_id: str) -> List[Order]:
        pass

    @abstractmethod
    def list_all(self, status: Optional[OrderStatus] = None) -> List[Order]:
        pass

    @abstractmethod
    def list_by_vendor(self, vendor_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        pass

    @abstractmethod
    def update_status(self, order: Order, expected: OrderStatus) -> bool:
        """Persist order.status/status_history only if the stored status is still `expected`."""
