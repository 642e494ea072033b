import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from app.domain.schemas import BillSummary, CartLine, CartView, Product, VendorGroup
from app.interfaces.ICartStore import ICartStore

logger = logging.getLogger(__name__)

def line_id_for(product_id: str, vendor_id: str) -> str:
    return f"{vendor_id}:{product_id}"

def group_by_vendor(lines: Iterable[CartLine]) -> List[VendorGroup]:
    """Bucket lines by vendor, keeping the order vendors first appear in."""
    groups: Dict[str, VendorGroup] = {}
    for line in lines:
        group = groups.get(line.vendor_id)
        if group is None:
            group = groups[line.vendor_id] = VendorGroup(
                vendor_id=line.vendor_id, vendor_name=line.vendor_name, lines=[], subtotal=Decimal(0)
            )
        group.lines.append(line)
        group.subtotal += line.subtotal
    return list(groups.values())

def compute_bill(lines: Iterable[CartLine], delivery_fee: Decimal, platform_fee: Decimal,
                 tax_rate: Decimal) -> BillSummary:
    item_total = sum((line.subtotal for line in lines), Decimal(0))
    delivery_fee = Decimal(delivery_fee)
    platform_fee = Decimal(platform_fee)
    taxable = item_total + delivery_fee + platform_fee
    # Whole currency units, halves rounded up
    taxes = (taxable * Decimal(tax_rate)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return BillSummary(
        item_total=item_total,
        delivery_fee=delivery_fee,
        platform_fee=platform_fee,
        taxes=taxes,
        grand_total=item_total + delivery_fee + platform_fee + taxes,
    )


class CartAggregator:
    """Cart operations for one customer session at a time.

    Vendor groups and the bill are derived from the stored lines on every
    read and never cached.
    """

    def __init__(self, store: ICartStore, delivery_fee: Decimal, platform_fee: Decimal, tax_rate: Decimal):
        self.store = store
        self.delivery_fee = delivery_fee
        self.platform_fee = platform_fee
        self.tax_rate = tax_rate

    def lines(self, customer_id: str) -> List[CartLine]:
        return self.store.load(customer_id)

    def add_item(self, customer_id: str, product: Product, vendor_id: str, vendor_name: str) -> CartLine:
        lines = self.store.load(customer_id)
        line_id = line_id_for(product.id, vendor_id)
        for line in lines:
            if line.line_id == line_id:
                line.quantity += 1
                break
        else:
            line = CartLine(line_id=line_id, product=product, vendor_id=vendor_id,
                            vendor_name=vendor_name, quantity=1)
            lines.append(line)
        self.store.save(customer_id, lines)
        logger.debug(f"Cart {customer_id}: {line_id} x{line.quantity}")
        return line

    def update_quantity(self, customer_id: str, line_id: str, quantity: int) -> Optional[CartLine]:
        if quantity <= 0:
            self.remove_item(customer_id, line_id)
            return None
        lines = self.store.load(customer_id)
        for line in lines:
            if line.line_id == line_id:
                line.quantity = quantity
                self.store.save(customer_id, lines)
                return line
        return None

    def remove_item(self, customer_id: str, line_id: str) -> None:
        lines = self.store.load(customer_id)
        remaining = [line for line in lines if line.line_id != line_id]
        if len(remaining) != len(lines):
            self.store.save(customer_id, remaining)

    def clear(self, customer_id: str) -> None:
        self.store.clear(customer_id)

    def group_by_vendor(self, customer_id: str) -> List[VendorGroup]:
        return group_by_vendor(self.store.load(customer_id))

    def compute_bill(self, customer_id: str, lines: Optional[List[CartLine]] = None) -> BillSummary:
        if lines is None:
            lines = self.store.load(customer_id)
        return compute_bill(lines, self.delivery_fee, self.platform_fee, self.tax_rate)

    def view(self, customer_id: str) -> CartView:
        lines = self.store.load(customer_id)
        return CartView(
            customer_id=customer_id,
            lines=lines,
            vendor_groups=group_by_vendor(lines),
            bill=compute_bill(lines, self.delivery_fee, self.platform_fee, self.tax_rate),
            total_items=sum(line.quantity for line in lines),
        )
