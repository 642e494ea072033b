from typing import List, Optional

from fastapi import APIRouter, Request

from app.domain.order_status import OrderStatus
from app.domain.schemas import NextStatuses, Order, StatusUpdate, VendorStats

router = APIRouter(tags=["orders"])

def _orders(request: Request):
    return request.app.state.orders

def _status_machine(request: Request):
    return request.app.state.status_machine

# --- Operator / vendor views ---

@router.get("/orders", response_model=List[Order])
def list_orders(request: Request, status: Optional[OrderStatus] = None):
    return _orders(request).list_all(status)

@router.get("/orders/{order_id}", response_model=Order)
def read_order(order_id: str, request: Request):
    return _orders(request).get_by_id(order_id)

@router.get("/orders/{order_id}/next-statuses", response_model=NextStatuses)
def next_statuses(order_id: str, request: Request):
    order = _orders(request).get_by_id(order_id)
    allowed = _status_machine(request).allowed_next(order_id)
    return NextStatuses(order_id=order_id, current=order.status,
                        allowed=sorted(allowed, key=list(OrderStatus).index))

@router.post("/orders/{order_id}/status", response_model=Order)
def advance_order(order_id: str, payload: StatusUpdate, request: Request):
    return _status_machine(request).advance(order_id, payload.status)

@router.get("/vendors/{vendor_id}/orders", response_model=List[Order])
def list_vendor_orders(vendor_id: str, request: Request, status: Optional[OrderStatus] = None):
    return _orders(request).list_by_vendor(vendor_id, status)

@router.get("/vendors/{vendor_id}/stats", response_model=VendorStats)
def vendor_stats(vendor_id: str, request: Request):
    return _orders(request).vendor_stats(vendor_id)

# --- Customer views ---

@router.get("/customers/{customer_id}/orders", response_model=List[Order])
def list_customer_orders(customer_id: str, request: Request):
    return _orders(request).list_by_customer(customer_id)

@router.post("/customers/{customer_id}/orders/{order_id}/cancel", response_model=Order)
def cancel_order(customer_id: str, order_id: str, request: Request):
    return _status_machine(request).cancel_by_customer(order_id, customer_id)
