import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.domain.errors import (
    MSG_INVALID_REQUEST,
    ChallengeNotFoundError,
    CheckoutNotFoundError,
    CheckoutValidationError,
    GatewayTransportError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderServiceError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = [
    (CheckoutValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    ((OrderNotFoundError, CheckoutNotFoundError), status.HTTP_404_NOT_FOUND),
    ((InvalidTransitionError, ChallengeNotFoundError), status.HTTP_409_CONFLICT),
    (GatewayTransportError, status.HTTP_502_BAD_GATEWAY),
]

async def handle_order_service_error(request: Request, exc: OrderServiceError):
    code = status.HTTP_400_BAD_REQUEST
    for types, mapped in STATUS_CODES:
        if isinstance(exc, types):
            code = mapped
            break

    body = {"detail": exc.detail, "error": type(exc).__name__}
    if isinstance(exc, CheckoutValidationError):
        body["detail"] = MSG_INVALID_REQUEST
        body["errors"] = exc.errors
    logger.info(f"{request.method} {request.url.path} -> {code} ({type(exc).__name__})")
    return JSONResponse(status_code=code, content=body)

def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderServiceError, handle_order_service_error)
