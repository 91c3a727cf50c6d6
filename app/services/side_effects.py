"""
Advisory side effects

A side effect runs in its own unit of work: commit on success, rollback and
log on failure. It never raises, so one failing step (an invoice, a stock
row, a cart) cannot undo the financial transition that triggered it or stop
the remaining steps.
"""
import logging
from typing import Any, Awaitable, Callable

from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


async def run_advisory(
    store: OrderStore,
    step: str,
    reference: str,
    action: Callable[[], Awaitable[Any]],
) -> bool:
    try:
        await action()
        await store.commit()
        return True
    except Exception:
        await store.rollback()
        logger.exception(f"Side effect '{step}' failed for {reference}")
        return False
