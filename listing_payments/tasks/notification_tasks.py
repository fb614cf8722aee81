# listing_payments/tasks/notification_tasks.py
import logging
from typing import Optional

from listing_payments.core.celery_app import celery_app
from listing_payments.utils.email_sender import (
    EmailDeliveryError,
    render_payment_success_email,
    send_brevo_email,
)

logger = logging.getLogger(__name__)


@celery_app.task(
    name="tasks.send_payment_success_email",
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=5,
    retry_kwargs={"max_retries": 3},
)
def send_payment_success_email(
    email: str,
    name: str,
    plan_type: str,
    amount: Optional[float],
    order_id: str,
    start_date: str,
    end_date: str,
):
    """Sends the payment confirmation to the institution admin."""
    logger.info(f"Processing payment success email for order: {order_id}")
    html_content = render_payment_success_email(
        name=name,
        plan_type=plan_type,
        amount=amount,
        order_id=order_id,
        start_date=start_date,
        end_date=end_date,
    )
    send_brevo_email(email, "Payment received - your listings are live", html_content, to_name=name)
