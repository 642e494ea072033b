import logging
import time
from datetime import timedelta

from fastapi import FastAPI
from sqlalchemy.exc import OperationalError

from app.core.config import Settings, settings
from app.application.cart_service import CartAggregator
from app.application.order_service import OrderFactory, tz_clock
from app.application.order_status_service import OrderStatusMachine
from app.application.orchestrator import CheckoutOrchestrator
from app.infrastructure.cart_store import CartStore
from app.infrastructure.notification_service import NotificationService
from app.infrastructure.razorpay_gateway import RazorpayGateway
from app.infrastructure.repositories.order_repository import InMemoryOrderRepository, SqlOrderRepository
from app.infrastructure.simulated_gateway import SimulatedPaymentGateway
from app.interfaces import cart_router, checkout_router, orders_router
from app.interfaces.error_handlers import register_error_handlers

logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# DATABASE CONNECTION (With Retry Logic)
# ---------------------------------------------------------
MAX_RETRIES = 10
WAIT_SECONDS = 3

def create_tables(engine) -> None:
    from app.infrastructure.database import Base
    import app.domain.models  # noqa: F401  registers the tables on Base

    for attempt in range(MAX_RETRIES):
        try:
            logger.info(f"🔄 Attempting DB connection ({attempt + 1}/{MAX_RETRIES})...")
            Base.metadata.create_all(bind=engine)
            logger.info("✅ DB Connected and Tables Created.")
            return
        except OperationalError as e:
            logger.warning(f"⚠️ DB not ready yet ({e}). Waiting {WAIT_SECONDS}s...")
            time.sleep(WAIT_SECONDS)
    raise RuntimeError(f"Could not connect to the order database after {MAX_RETRIES} attempts")

def build_order_repository(config: Settings):
    if config.ORDER_STORE == "memory":
        logger.warning("⚠️ Using the in-memory order store. Orders are lost on restart.")
        return InMemoryOrderRepository()
    from app.infrastructure.database import SessionLocal, engine
    create_tables(engine)
    return SqlOrderRepository(SessionLocal)

def build_gateway(config: Settings):
    if config.PAYMENT_GATEWAY == "razorpay":
        if not (config.RAZORPAY_KEY_ID and config.RAZORPAY_KEY_SECRET):
            raise RuntimeError("PAYMENT_GATEWAY=razorpay needs RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET")
        return RazorpayGateway(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET,
                               currency=config.CURRENCY, merchant_name=config.MERCHANT_NAME)
    logger.warning("⚠️ Using the simulated payment gateway. No real money moves.")
    return SimulatedPaymentGateway(currency=config.CURRENCY, success_rate=config.SIMULATED_SUCCESS_RATE,
                                   delay=config.SIMULATED_DELAY_SECONDS)

# ---------------------------------------------------------
# COMPOSITION ROOT
# ---------------------------------------------------------
def create_app(config: Settings = settings, order_repo=None, cart_store=None, gateway=None,
               notifier=None) -> FastAPI:
    app = FastAPI(title=config.PROJECT_NAME)

    if order_repo is None:
        order_repo = build_order_repository(config)
    if cart_store is None:
        cart_store = CartStore(config.REDIS_URL, ttl=config.CART_TTL_SECONDS)
    if gateway is None:
        gateway = build_gateway(config)
    if notifier is None:
        notifier = NotificationService(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN,
                                       config.TWILIO_FROM_NUMBER, config.ADMIN_PHONE_NUMBER)

    clock = tz_clock(config.TIMEZONE)
    carts = CartAggregator(cart_store, config.DELIVERY_FEE, config.PLATFORM_FEE, config.TAX_RATE)
    orders = OrderFactory(order_repo, timedelta(minutes=config.DELIVERY_WINDOW_MINUTES), clock)

    app.state.carts = carts
    app.state.orders = orders
    app.state.status_machine = OrderStatusMachine(order_repo, clock)
    app.state.orchestrator = CheckoutOrchestrator(
        carts, gateway, orders,
        notifier=notifier,
        currency=config.CURRENCY,
        merchant_name=config.MERCHANT_NAME,
        max_retries=config.max_gateway_retries,
        result_ttl=config.CHECKOUT_RESULT_TTL_SECONDS,
    )

    # Include Routers
    app.include_router(cart_router.router)
    app.include_router(checkout_router.router)
    app.include_router(orders_router.router)
    register_error_handlers(app)

    @app.get("/")
    def health_check():
        return {"status": "active", "system": config.PROJECT_NAME, "gateway": type(gateway).__name__}

    return app

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = create_app()
