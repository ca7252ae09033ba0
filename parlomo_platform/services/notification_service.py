"""
Notification service for sending transactional emails.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..models import (
    Order,
    OrderStatus,
    PublicEvent,
    RefundRequest,
    SettlementRequest,
    Ticket,
    TicketType,
    User,
)
from ..utils.currency import format_currency

logger = logging.getLogger(__name__)

DATE_FORMAT = "%A %d %B %Y at %H:%M"


class NotificationService:
    """Service for handling email notifications."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()

    async def send_order_confirmation(self, order_id: UUID) -> bool:
        """
        Send the order confirmation with ticket codes to the buyer.

        Args:
            order_id: ID of the paid order

        Returns:
            bool: True if email was sent successfully
        """
        try:
            order = await self.session.get(Order, order_id)
            if not order:
                logger.error(f"Order {order_id} not found")
                return False
            event = await self.session.get(PublicEvent, order.event_id)

            result = await self.session.execute(
                select(Ticket.code, TicketType.name)
                .outerjoin(TicketType, TicketType.id == Ticket.ticket_type_id)
                .where(Ticket.order_id == order.id)
                .order_by(Ticket.code)
            )
            tickets = [{"code": code, "type": type_name or "Ticket"} for code, type_name in result.all()]

            data = {
                "customer_name": order.customer_name,
                "event_title": event.title,
                "event_date": event.start_date.strftime(DATE_FORMAT),
                "venue": event.venue_name or "To be announced",
                "order_number": order.order_number,
                "total": format_currency(order.total, order.currency),
                "tickets": tickets,
            }
            success = await self._send_email(
                to_email=order.customer_email,
                subject=f"Your tickets for {event.title} - {order.order_number}",
                html_content=self._render_order_confirmation_template(data),
                text_content=self._render_order_confirmation_text(data),
            )
            if success:
                logger.info(f"Order confirmation sent for order {order.order_number}")
            return success

        except Exception as e:
            logger.error(f"Error sending order confirmation for {order_id}: {e}")
            return False

    async def send_event_cancellation_notification(self, event_id: UUID) -> int:
        """
        Tell every buyer with a paid order that the event is cancelled.

        Returns:
            int: Number of notifications sent successfully
        """
        try:
            event = await self.session.get(PublicEvent, event_id)
            if not event:
                logger.error(f"Event {event_id} not found")
                return 0

            result = await self.session.execute(
                select(Order).where(Order.event_id == event.id, Order.status == OrderStatus.PAID)
            )
            sent_count = 0
            for order in result.scalars().all():
                data = {
                    "customer_name": order.customer_name,
                    "event_title": event.title,
                    "event_date": event.start_date.strftime(DATE_FORMAT),
                    "order_number": order.order_number,
                    "reason": event.cancellation_reason or "",
                }
                if await self._send_email(
                    to_email=order.customer_email,
                    subject=f"Event cancelled - {event.title}",
                    html_content=self._render_event_cancellation_template(data),
                    text_content=self._render_event_cancellation_text(data),
                ):
                    sent_count += 1

            logger.info(f"Sent {sent_count} event cancellation notifications for event {event_id}")
            return sent_count

        except Exception as e:
            logger.error(f"Error sending event cancellation notifications for {event_id}: {e}")
            return 0

    async def send_refund_decision(self, request_id: UUID) -> bool:
        """Tell the organizer their refund request was approved, rejected or processed."""
        try:
            request = await self.session.get(RefundRequest, request_id)
            if not request:
                logger.error(f"Refund request {request_id} not found")
                return False
            organizer = await self.session.get(User, request.organizer_id)

            lines = [
                f"Event: {request.event_title}",
                f"Orders: {request.affected_orders_count}",
                f"Amount: {format_currency(request.total_refund_amount, request.currency)}",
            ]
            if request.rejection_reason:
                lines.append(f"Reason: {request.rejection_reason}")
            if request.refunds_processed or request.refunds_failed:
                lines.append(f"Refunded: {request.refunds_processed}, failed: {request.refunds_failed}")
            if request.admin_notes:
                lines.append(f"Notes: {request.admin_notes}")

            return await self._send_decision(
                organizer,
                f"Refund request {request.status.value.lower()}",
                lines,
            )

        except Exception as e:
            logger.error(f"Error sending refund decision for {request_id}: {e}")
            return False

    async def send_settlement_decision(self, request_id: UUID) -> bool:
        """Tell the organizer about their settlement request status."""
        try:
            request = await self.session.get(SettlementRequest, request_id)
            if not request:
                logger.error(f"Settlement request {request_id} not found")
                return False
            organizer = await self.session.get(User, request.organizer_id)

            lines = [
                f"Event: {request.event_title}",
                f"Amount: {format_currency(request.amount, request.currency)}",
                f"Payment method: {request.payment_method.value.replace('_', ' ')}",
            ]
            if request.rejection_reason:
                lines.append(f"Reason: {request.rejection_reason}")
            if request.transaction_reference:
                lines.append(f"Transaction reference: {request.transaction_reference}")
            if request.admin_notes:
                lines.append(f"Notes: {request.admin_notes}")

            return await self._send_decision(
                organizer,
                f"Settlement request {request.status.value.lower()}",
                lines,
            )

        except Exception as e:
            logger.error(f"Error sending settlement decision for {request_id}: {e}")
            return False

    async def _send_decision(self, organizer: Optional[User], title: str, lines: List[str]) -> bool:
        if not organizer:
            logger.error("Organizer not found for decision email")
            return False
        data = {"name": organizer.full_name, "title": title, "lines": lines}
        return await self._send_email(
            to_email=organizer.email,
            subject=f"{title} - Parlomo",
            html_content=self._render_decision_template(data),
            text_content=self._render_decision_text(data),
        )

    async def _send_email(self, to_email: str, subject: str, html_content: str, text_content: str) -> bool:
        """
        Send email using SMTP.

        Returns:
            bool: True if email was sent successfully
        """
        try:
            if not self.settings.smtp_server or not self.settings.smtp_username:
                logger.warning("Email configuration not available, skipping email send")
                return False

            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = self.settings.from_email
            msg["To"] = to_email
            msg.attach(MIMEText(text_content, "plain"))
            msg.attach(MIMEText(html_content, "html"))

            with smtplib.SMTP(self.settings.smtp_server, self.settings.smtp_port) as server:
                if self.settings.smtp_use_tls:
                    server.starttls()
                server.login(self.settings.smtp_username, self.settings.smtp_password)
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

    # Email templates

    @staticmethod
    def _layout(title: str, body: str) -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>{title}</title>
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background-color: #6d28d9; color: white; padding: 20px; text-align: center; }}
                .content {{ padding: 20px; background-color: #f9f9f9; }}
                .details {{ background-color: white; padding: 15px; margin: 15px 0; border-radius: 5px; }}
                .footer {{ text-align: center; padding: 20px; color: #666; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header"><h1>{title}</h1></div>
                <div class="content">{body}</div>
                <div class="footer">
                    <p>Thank you for using Parlomo!</p>
                    <p>If you have any questions, please contact our support team.</p>
                </div>
            </div>
        </body>
        </html>
        """

    def _render_order_confirmation_template(self, data: Dict) -> str:
        ticket_rows = "".join(
            f"<li><strong>{ticket['code']}</strong> ({ticket['type']})</li>" for ticket in data["tickets"]
        )
        body = f"""
                    <p>Dear {data['customer_name']},</p>
                    <p>Your order is confirmed. Show the QR code of each ticket at the door.</p>
                    <div class="details">
                        <p><strong>Event:</strong> {data['event_title']}</p>
                        <p><strong>Date & Time:</strong> {data['event_date']}</p>
                        <p><strong>Venue:</strong> {data['venue']}</p>
                        <p><strong>Order:</strong> {data['order_number']}</p>
                        <p><strong>Total:</strong> {data['total']}</p>
                        <ul>{ticket_rows}</ul>
                    </div>
        """
        return self._layout("Order Confirmed", body)

    def _render_order_confirmation_text(self, data: Dict) -> str:
        ticket_lines = "\n".join(f"  {ticket['code']} ({ticket['type']})" for ticket in data["tickets"])
        return f"""
        ORDER CONFIRMED

        Dear {data['customer_name']},

        Event: {data['event_title']}
        Date & Time: {data['event_date']}
        Venue: {data['venue']}
        Order: {data['order_number']}
        Total: {data['total']}

        Tickets:
{ticket_lines}

        Thank you for using Parlomo!
        """

    def _render_event_cancellation_template(self, data: Dict) -> str:
        reason = f"<p><strong>Reason:</strong> {data['reason']}</p>" if data["reason"] else ""
        body = f"""
                    <p>Dear {data['customer_name']},</p>
                    <p>We are sorry to tell you that this event has been cancelled.</p>
                    <div class="details">
                        <p><strong>Event:</strong> {data['event_title']}</p>
                        <p><strong>Date & Time:</strong> {data['event_date']}</p>
                        <p><strong>Order:</strong> {data['order_number']}</p>
                        {reason}
                    </div>
                    <p>The organizer will arrange your refund.</p>
        """
        return self._layout("Event Cancelled", body)

    def _render_event_cancellation_text(self, data: Dict) -> str:
        reason = f"Reason: {data['reason']}\n" if data["reason"] else ""
        return f"""
        EVENT CANCELLED

        Dear {data['customer_name']},

        We are sorry to tell you that this event has been cancelled.

        Event: {data['event_title']}
        Date & Time: {data['event_date']}
        Order: {data['order_number']}
        {reason}
        The organizer will arrange your refund.
        """

    def _render_decision_template(self, data: Dict) -> str:
        details = "".join(f"<p>{line}</p>" for line in data["lines"])
        body = f"""
                    <p>Dear {data['name']},</p>
                    <div class="details">{details}</div>
        """
        return self._layout(data["title"].capitalize(), body)

    def _render_decision_text(self, data: Dict) -> str:
        details = "\n".join(f"        {line}" for line in data["lines"])
        return f"""
        {data['title'].upper()}

        Dear {data['name']},

{details}

        Thank you for using Parlomo!
        """
