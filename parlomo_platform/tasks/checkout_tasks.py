"""
Celery tasks for checkout housekeeping.
"""

import logging

from .celery_app import celery_app, run_async
from ..database import get_db_session
from ..services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="expire_checkout_sessions_task")
def expire_checkout_sessions_task(self):
    """
    Periodic task releasing the tickets held by abandoned checkouts.

    Runs every minute; sessions past ``expires_at`` give their reservations
    back and become ``expired``.
    """
    async def _expire_sessions():
        try:
            async with get_db_session() as session:
                expired_count = await CheckoutService(session).expire_checkout_sessions()

            if expired_count:
                logger.info(f"Expired {expired_count} checkout sessions")
            return {"expired_count": expired_count}

        except Exception as e:
            logger.error(f"Error in checkout expiration task: {e}")
            raise

    return run_async(_expire_sessions)
