from abc import ABC, abstractmethod
from typing import List

from app.domain.schemas import CartLine

class ICartStore(ABC):
    @abstractmethod
    def load(self, customer_id: str) -> List[CartLine]:
        pass

    @abstractmethod
    def save(self, customer_id: str, lines: List[CartLine]) -> None:
        pass

    @abstractmethod
    def clear(self, customer_id: str) -> None:
        pass
