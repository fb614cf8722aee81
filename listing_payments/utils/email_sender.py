import logging
from typing import Optional
import sib_api_v3_sdk
from sib_api_v3_sdk.rest import ApiException

from listing_payments.core.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the email provider rejects or fails a send."""


def send_brevo_email(to_email: str, subject: str, html_content: str, to_name: str = None):
    """
    Sends a transactional email using Brevo API.
    """
    configuration = sib_api_v3_sdk.Configuration()
    configuration.api_key['api-key'] = settings.BREVO_API_KEY

    api_client = sib_api_v3_sdk.ApiClient(configuration)
    transactional_api = sib_api_v3_sdk.TransactionalEmailsApi(api_client)

    send_smtp_email = sib_api_v3_sdk.SendSmtpEmail(
        to=[{"email": to_email, "name": to_name or to_email}],
        subject=subject,
        html_content=html_content,
        sender={"email": settings.DEFAULT_SENDER_EMAIL, "name": settings.APP_NAME},
    )

    try:
        response = transactional_api.send_transac_email(send_smtp_email)
        logger.info(f"Email sent successfully to {to_email}. Response: {response}")
        return response
    except ApiException as e:
        logger.error(f"Exception when calling Brevo API to send email to {to_email}: {e}")
        raise EmailDeliveryError(f"Brevo rejected email to {to_email}: {e.reason}") from e
def render_payment_success_email(
    name: str,
    plan_type: str,
    amount: Optional[float],
    order_id: str,
    start_date: str,
    end_date: str,
) -> str:
    if amount is None:
        payment_line = f"We received your payment for the <strong>{plan_type}</strong> plan."
    else:
        payment_line = (
            f"We received your payment of <strong>{amount:,.2f}</strong> "
            f"for the <strong>{plan_type}</strong> plan."
        )
    return f"""
    <html>
        <body>
            <p>Hi {name or 'there'},</p>
            <p>{payment_line}</p>
            <p>Order: {order_id}<br/>
               Listing period: {start_date} to {end_date}</p>
            <p>Your selected courses are now live.</p>
            <p>Regards,<br/>{settings.APP_NAME}</p>
        </body>
    </html>
    """
