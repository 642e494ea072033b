from sqlalchemy import Column, String, DateTime, JSON, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from app.infrastructure.database import Base

class PaymentReceiptRecord(Base):
    __tablename__ = "payment_receipts"

    gateway_payment_id = Column(String, primary_key=True)
    gateway_order_id = Column(String, index=True, nullable=False)
    signature = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)


class OrderRecord(Base):
    __tablename__ = "orders"

    order_id = Column(String, primary_key=True)
    customer_id = Column(String, index=True, nullable=False)
    status = Column(String, index=True, nullable=False, default="pending")

    # Line items, customer details and address are written once and never
    # queried by field, so they live as JSON documents on the row.
    customer_details = Column(JSON, nullable=False)
    items = Column(JSON, nullable=False)
    vendor_ids = Column(JSON, nullable=False)
    delivery_address = Column(JSON, nullable=False)
    status_history = Column(JSON, nullable=False, default=list)

    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    gateway_payment_id = Column(
        String, ForeignKey("payment_receipts.gateway_payment_id"), unique=True, nullable=False
    )
    created_at = Column(DateTime(timezone=True), nullable=False)
    estimated_delivery_time = Column(DateTime(timezone=True), nullable=False)

    payment_receipt = relationship(PaymentReceiptRecord, lazy="joined")
