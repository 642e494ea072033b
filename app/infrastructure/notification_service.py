from twilio.rest import Client
from twilio.base.exceptions import TwilioException
import logging
import requests

from app.domain.schemas import Order

logger = logging.getLogger(__name__)

def _whatsapp(number: str) -> str:
    # Twilio requires the "whatsapp:" prefix
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"

class NotificationService:
    def __init__(self, account_sid=None, auth_token=None, from_number=None, admin_number=None):
        self.client = None
        self.enabled = False
        self.from_number = from_number
        self.admin_number = admin_number

        # Only initialize if credentials exist in .env
        if account_sid and auth_token and from_number:
            try:
                self.client = Client(account_sid, auth_token)
                self.enabled = True
                logger.info("✅ NotificationService: Twilio Client Initialized")
            except TwilioException as e:
                logger.error(f"❌ Failed to initialize Twilio Client: {e}")
        else:
            logger.warning("⚠️ NotificationService: Credentials missing in .env. Notifications disabled.")

    def notify_admin_new_order(self, order: Order) -> bool:
        """Sends a WhatsApp message to the operator for every new order."""
        if not self.enabled or not self.admin_number:
            logger.info(f"NotificationService disabled, skipping alert for {order.order_id}")
            return False

        lines = "\n".join(
            f"- {item.quantity}x {item.product_name} ({item.vendor_name})" for item in order.line_items
        )
        details = order.customer_details
        message_body = (
            f"🔔 *NEW ORDER {order.order_id}*\n\n"
            f"👤 Customer: {details.customer_name} ({details.phone_number})\n"
            f"🛒 Items:\n{lines}\n\n"
            f"💰 Paid: {order.total_amount} {order.payment_receipt.currency}"
        )

        try:
            self.client.messages.create(
                from_=_whatsapp(self.from_number),
                body=message_body,
                to=_whatsapp(self.admin_number)
            )
            logger.info(f"✅ Admin notification sent for {order.order_id}")
            return True
        except (TwilioException, requests.exceptions.RequestException) as e:
            # The order already exists; a lost alert must not undo it
            logger.error(f"❌ Failed to send admin notification for {order.order_id}: {e}")
            return False
