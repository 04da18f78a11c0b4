"""Order number and tracking number generation.

Both generators are plain functions: the entropy source and the uniqueness
check are passed in by the caller, so nothing here holds process-wide state.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from random import Random
from typing import Callable, Optional

import structlog
from django.utils import timezone

from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TRACKING_NUMBER_ALPHABET,
    TRACKING_NUMBER_LENGTH,
    TRACKING_NUMBER_MAX_RETRIES,
)
from modules.orders.exceptions import IdentifierExhausted

logger = structlog.get_logger(__name__)

ExistsFn = Callable[[str], bool]

_system_random = secrets.SystemRandom()


def generate_order_number(
    now: Optional[datetime] = None,
    rng: Optional[Random] = None,
) -> str:
    """Return ``ORD-<epoch millis>-<4 random digits>``."""
    rng = rng or _system_random
    now = now or timezone.now()
    millis = int(now.timestamp() * 1000)
    return f"ORD-{millis}-{rng.randrange(10_000):04d}"


def generate_tracking_number(
    exists: ExistsFn,
    rng: Optional[Random] = None,
    max_attempts: int = TRACKING_NUMBER_MAX_RETRIES,
) -> str:
    """Return a 12-character ``[A-Z0-9]`` code for which ``exists`` is false.

    Raises:
        IdentifierExhausted: every candidate within ``max_attempts`` was taken.
    """
    rng = rng or _system_random
    for attempt in range(1, max_attempts + 1):
        candidate = "".join(
            rng.choice(TRACKING_NUMBER_ALPHABET)
            for _ in range(TRACKING_NUMBER_LENGTH)
        )
        if not exists(candidate):
            return candidate
        logger.warning("order.tracking_number_collision", attempt=attempt)
    raise IdentifierExhausted(
        f"Failed to generate a unique tracking number after {max_attempts} attempts."
    )


def generate_unique_order_number(
    exists: ExistsFn,
    rng: Optional[Random] = None,
    max_attempts: int = ORDER_NUMBER_MAX_RETRIES,
) -> str:
    """``generate_order_number`` checked against the store, bounded retries."""
    for attempt in range(1, max_attempts + 1):
        candidate = generate_order_number(rng=rng)
        if not exists(candidate):
            return candidate
        logger.warning("order.order_number_collision", attempt=attempt)
    raise IdentifierExhausted(
        f"Failed to generate a unique order number after {max_attempts} attempts."
    )
