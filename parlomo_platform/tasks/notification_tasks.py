"""
Celery tasks for email notifications.
"""

import logging
from uuid import UUID

from .celery_app import celery_app, run_async
from ..database import get_db_session
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="send_order_confirmation_task")
def send_order_confirmation_task(self, order_id: str):
    """
    Task to send the order confirmation with ticket codes.

    Args:
        order_id: ID of the paid order
    """
    async def _send_confirmation():
        async with get_db_session() as session:
            success = await NotificationService(session).send_order_confirmation(UUID(order_id))

        if not success:
            logger.error(f"Failed to send order confirmation for {order_id}")
        return {"order_id": order_id, "status": "sent" if success else "failed"}

    return run_async(_send_confirmation)


@celery_app.task(bind=True, name="send_event_cancellation_task")
def send_event_cancellation_task(self, event_id: str):
    """Notify buyers with paid orders that an event was cancelled."""
    async def _send_cancellations():
        async with get_db_session() as session:
            sent_count = await NotificationService(session).send_event_cancellation_notification(UUID(event_id))
        return {"event_id": event_id, "sent_count": sent_count}

    return run_async(_send_cancellations)


@celery_app.task(bind=True, name="send_refund_decision_task")
def send_refund_decision_task(self, request_id: str):
    async def _send_decision():
        async with get_db_session() as session:
            success = await NotificationService(session).send_refund_decision(UUID(request_id))
        return {"request_id": request_id, "status": "sent" if success else "failed"}

    return run_async(_send_decision)


@celery_app.task(bind=True, name="send_settlement_decision_task")
def send_settlement_decision_task(self, request_id: str):
    async def _send_decision():
        async with get_db_session() as session:
            success = await NotificationService(session).send_settlement_decision(UUID(request_id))
        return {"request_id": request_id, "status": "sent" if success else "failed"}

    return run_async(_send_decision)
