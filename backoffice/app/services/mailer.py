"""
Outbound email through the Resend HTTP API.

Sending is best-effort everywhere it is used: failures are logged and
reported as False, never raised, and never retried.
"""

import logging
from html import escape
from typing import Optional, List, Union

import httpx

from backoffice.app.core.config import settings
from backoffice.app.models.enums import OrderStatus

logger = logging.getLogger("backoffice.email")


# Status -> (template key, subject) sent to the customer
ORDER_STATUS_EMAILS = {
    OrderStatus.CONFIRMED: ("order_received", "We received your order #{number}"),
    OrderStatus.DELIVERING: ("order_shipped", "Your order #{number} is on its way"),
    OrderStatus.DELIVERED: ("order_delivered", "Your order #{number} was delivered"),
    OrderStatus.CANCELLED: ("order_cancelled", "Your order #{number} was cancelled"),
}


def _layout(title: str, body: str) -> str:
    return (
        "<div style=\"font-family:sans-serif;max-width:560px;margin:auto\">"
        f"<h2>{escape(title)}</h2>{body}"
        f"<p style=\"color:#888\"><a href=\"{settings.site_url}\">{settings.site_url}</a></p>"
        "</div>"
    )


class EmailService:

    @staticmethod
    async def send_email(to: Union[str, List[str]], subject: str, html: str) -> bool:
        """Send one message. Returns True when Resend accepted it."""
        if not settings.resend_api_key:
            logger.warning("RESEND_API_KEY not set, skipping email '%s'", subject)
            return False

        recipients = [to] if isinstance(to, str) else list(to)
        payload = {
            "from": settings.email_from,
            "to": recipients,
            "subject": subject,
            "html": html,
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    settings.resend_api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {settings.resend_api_key}"},
                )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Email '%s' to %s failed: %s", subject, recipients, e)
            return False

        logger.info("Email '%s' sent to %s", subject, recipients)
        return True

    @staticmethod
    async def send_order_status_email(
        order,
        new_status: OrderStatus,
        customer_email: Optional[str],
        provider_email: Optional[str] = None,
        provider_name: Optional[str] = None
    ) -> bool:
        """
        Notify about an order status change.

        Only confirmed, delivering, delivered and cancelled send mail;
        cancellations also go to the provider.
        """
        entry = ORDER_STATUS_EMAILS.get(new_status)
        if not entry:
            return False

        _, subject_template = entry
        subject = subject_template.format(number=order.order_number)
        body = (
            f"<p>Order <b>#{escape(order.order_number)}</b> from {escape(provider_name or 'your store')} "
            f"is now <b>{new_status.value}</b>.</p>"
            f"<p>Total: {order.total:.2f}</p>"
        )
        if new_status == OrderStatus.CANCELLED and order.cancelled_reason:
            body += f"<p>Reason: {escape(order.cancelled_reason)}</p>"

        sent = False
        if customer_email:
            sent = await EmailService.send_email(customer_email, subject, _layout(subject, body))

        if new_status == OrderStatus.CANCELLED and provider_email:
            provider_subject = f"Order #{order.order_number} was cancelled"
            await EmailService.send_email(provider_email, provider_subject, _layout(provider_subject, body))

        return sent

    @staticmethod
    async def send_settlement_created_email(settlement, provider_email: Optional[str], provider_name: str) -> bool:
        if not provider_email:
            return False
        subject = f"New settlement for {provider_name}"
        body = (
            f"<p>Period: {settlement.period_start:%Y-%m-%d} to {settlement.period_end:%Y-%m-%d}</p>"
            f"<p>Orders: {settlement.total_orders}</p>"
            f"<p>Net balance: {settlement.net_balance:.2f} ({settlement.settlement_direction.value})</p>"
            f"<p><a href=\"{settings.site_url}/provider/finance\">View settlement</a></p>"
        )
        return await EmailService.send_email(provider_email, subject, _layout(subject, body))

    @staticmethod
    async def send_settlement_overdue_email(
        settlement, provider_email: Optional[str], provider_name: str, days_overdue: int
    ) -> bool:
        if not provider_email:
            return False
        subject = f"Settlement #{settlement.id} is overdue"
        body = (
            f"<p>Hello {escape(provider_name)},</p>"
            f"<p>Your settlement for {settlement.period_start:%Y-%m-%d} to {settlement.period_end:%Y-%m-%d} "
            f"is {days_overdue} day(s) overdue.</p>"
            f"<p>Amount: {abs(settlement.net_balance):.2f}</p>"
        )
        return await EmailService.send_email(provider_email, subject, _layout(subject, body))
