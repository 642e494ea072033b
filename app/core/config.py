from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Hawky Orders"
    LOG_LEVEL: str = "INFO"

    # --- Storage ---
    DATABASE_URL: str = "sqlite:///./orders.db"
    ORDER_STORE: str = "sql"  # sql | memory
    REDIS_URL: str | None = None
    CART_TTL_SECONDS: int = 86400

    # --- Payment Gateway ---
    PAYMENT_GATEWAY: str = "simulated"  # razorpay | simulated
    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    CURRENCY: str = "INR"
    MERCHANT_NAME: str = "Hawky"
    GATEWAY_MAX_RETRIES: int = 1
    SIMULATED_SUCCESS_RATE: float = 0.9
    SIMULATED_DELAY_SECONDS: float = 2.0
    CHECKOUT_RESULT_TTL_SECONDS: int = 900

    # --- Billing ---
    DELIVERY_FEE: Decimal = Decimal("25")
    PLATFORM_FEE: Decimal = Decimal("5")
    TAX_RATE: Decimal = Decimal("0.05")
    DELIVERY_WINDOW_MINUTES: int = 30
    TIMEZONE: str = "Asia/Kolkata"

    # --- Notifications (optional) ---
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_FROM_NUMBER: str | None = None
    ADMIN_PHONE_NUMBER: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"  # unknown variables in .env are ignored instead of crashing
    )

    @property
    def max_gateway_retries(self) -> int:
        # More than two automatic retries risks duplicate charges
        return max(0, min(self.GATEWAY_MAX_RETRIES, 2))

settings = Settings()
