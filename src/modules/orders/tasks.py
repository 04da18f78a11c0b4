"""Background jobs for the orders module."""

from datetime import timedelta

import structlog
from celery import shared_task

from modules.orders.factories import build_order_service

logger = structlog.get_logger(__name__)


@shared_task(name="orders.expire_stale_payments")
def expire_stale_payments(older_than_minutes=None):
    """Cancel online orders left unpaid and give their stock back."""
    older_than = (
        timedelta(minutes=older_than_minutes) if older_than_minutes is not None else None
    )
    expired = build_order_service().expire_stale_payments(older_than)
    logger.info("expire_stale_payments.executed", expired=expired)
    return {"expired": expired}
