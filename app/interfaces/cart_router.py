from fastapi import APIRouter, Request

from app.domain.schemas import AddItemRequest, CartView, QuantityUpdate

router = APIRouter(prefix="/customers/{customer_id}/cart", tags=["cart"])

def _carts(request: Request):
    return request.app.state.carts

@router.get("", response_model=CartView)
def read_cart(customer_id: str, request: Request):
    return _carts(request).view(customer_id)

@router.post("/items", response_model=CartView)
def add_item(customer_id: str, payload: AddItemRequest, request: Request):
    carts = _carts(request)
    carts.add_item(customer_id, payload.product, payload.vendor_id, payload.vendor_name)
    return carts.view(customer_id)

@router.patch("/items/{line_id}", response_model=CartView)
def update_quantity(customer_id: str, line_id: str, payload: QuantityUpdate, request: Request):
    """A quantity of zero or less removes the line."""
    carts = _carts(request)
    carts.update_quantity(customer_id, line_id, payload.quantity)
    return carts.view(customer_id)

@router.delete("/items/{line_id}", response_model=CartView)
def remove_item(customer_id: str, line_id: str, request: Request):
    carts = _carts(request)
    carts.remove_item(customer_id, line_id)
    return carts.view(customer_id)

@router.delete("", response_model=CartView)
def clear_cart(customer_id: str, request: Request):
    carts = _carts(request)
    carts.clear(customer_id)
    return carts.view(customer_id)
