"""
Celery application configuration for background tasks.
"""

import asyncio
from typing import Any, Awaitable, Callable

from celery import Celery

from ..config import get_settings
from ..database import close_database, init_database

settings = get_settings()

celery_app = Celery(
    "parlomo_platform",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "parlomo_platform.tasks.checkout_tasks",
        "parlomo_platform.tasks.notification_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Periodic tasks configuration
celery_app.conf.beat_schedule = {
    "expire-checkout-sessions": {
        "task": "expire_checkout_sessions_task",
        "schedule": 60.0,  # Run every minute
    },
}


def run_async(job: Callable[[], Awaitable[Any]]) -> Any:
    """
    Run an async task body on a fresh event loop.

    The database engine is bound to the loop it was created on, so each run
    opens and disposes its own.
    """
    async def _run():
        await init_database(create_tables=False)
        try:
            return await job()
        finally:
            await close_database()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_run())
    finally:
        loop.close()
