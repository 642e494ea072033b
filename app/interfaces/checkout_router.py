import logging

from fastapi import APIRouter, Request, status

from app.domain.schemas import CheckoutRequest, CheckoutResult, CheckoutStarted, GatewayFailure, GatewaySuccess

router = APIRouter(tags=["checkout"])
logger = logging.getLogger(__name__)

def _orchestrator(request: Request):
    return request.app.state.orchestrator

@router.post("/checkout", response_model=CheckoutStarted, status_code=status.HTTP_201_CREATED)
async def start_checkout(payload: CheckoutRequest, request: Request):
    """
    Validates the form and cart, creates the payment intent and opens the
    payment challenge. The client then runs the gateway widget with the
    returned challenge and reports its outcome to /payments/{id}/...
    """
    return await _orchestrator(request).start_checkout(payload.customer_id, payload.form)

@router.get("/checkout/{gateway_order_id}", response_model=CheckoutResult)
def read_checkout(gateway_order_id: str, request: Request):
    return _orchestrator(request).get_result(gateway_order_id)

@router.post("/payments/{gateway_order_id}/success", response_model=CheckoutResult)
async def payment_succeeded(gateway_order_id: str, payload: GatewaySuccess, request: Request):
    logger.info(f"📨 Gateway success callback for {gateway_order_id}")
    return await _orchestrator(request).report_success(
        gateway_order_id, payload.gateway_payment_id, payload.signature
    )

@router.post("/payments/{gateway_order_id}/failure", response_model=CheckoutResult)
async def payment_failed(gateway_order_id: str, payload: GatewayFailure, request: Request):
    logger.info(f"📨 Gateway failure callback for {gateway_order_id}: {payload.reason.value}")
    return await _orchestrator(request).report_failure(gateway_order_id, payload.reason, payload.description)

@router.post("/payments/{gateway_order_id}/cancel", response_model=CheckoutResult)
async def payment_cancelled(gateway_order_id: str, request: Request):
    return await _orchestrator(request).cancel(gateway_order_id)
