"""
Order status state machine and version-guarded writes.

Every write the engine makes to an order goes through ``guarded_update``:
read the current record, check it is still in a state where the write
makes sense, then write with ``expected_version``. A concurrent writer
causes ``ConcurrencyConflict``; the read/check/write cycle is retried a
bounded number of times so the check always runs against fresh state.
"""
from typing import Any, Callable, Dict, Iterable, Optional, Union, TYPE_CHECKING

from src.business.errors import ConcurrencyConflict, InvalidTransition, OrderNotFound
from src.models.base import OrderStatus
from src.models.order import Order
from src.utils.logger import logger

if TYPE_CHECKING:
    from src.services.storage import OrderStorage

LIFECYCLE = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
NON_TERMINAL_STATUSES = frozenset(s for s in OrderStatus if s not in TERMINAL_STATUSES)

MAX_WRITE_ATTEMPTS = 3


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Forward moves along the lifecycle (skips allowed) or cancellation"""
    if is_terminal(current):
        return False
    if new == OrderStatus.CANCELLED:
        return True
    return LIFECYCLE.index(new) > LIFECYCLE.index(current)


def ensure_transition(order: Order, new: OrderStatus):
    if not can_transition(order.status, new):
        raise InvalidTransition(
            f"Cannot move order {order.id} from {order.status.value} to {new.value}"
        )


async def guarded_update(
    storage: "OrderStorage",
    order_id: str,
    fields: Union[Dict[str, Any], Callable[[Order], Dict[str, Any]]],
    allowed_statuses: Iterable[OrderStatus] = NON_TERMINAL_STATUSES,
    predicate: Optional[Callable[[Order], bool]] = None,
) -> Optional[Order]:
    """Write ``fields`` if the order is still in ``allowed_statuses``.

    ``fields`` may also be a callable receiving the fresh order and
    returning the field dict, for writes derived from current values.
    Returns the updated order, or ``None`` when the guard rejected the
    write (the order moved on in the meantime).
    """
    allowed = frozenset(allowed_statuses)

    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        order = await storage.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.status not in allowed or (predicate and not predicate(order)):
            logger.debug("Guarded write skipped", order_id=order_id, status=order.status.value)
            return None

        changes = fields(order) if callable(fields) else fields
        if not changes:
            return order
        new_status = changes.get("status")
        if new_status is not None:
            ensure_transition(order, OrderStatus(new_status))

        try:
            return await storage.update_order(order_id, changes, expected_version=order.version)
        except ConcurrencyConflict as e:
            if attempt == MAX_WRITE_ATTEMPTS:
                raise
            logger.warning("Order write conflict, retrying",
                           order_id=order_id, attempt=attempt, error=str(e))
    return None


async def transition(storage: "OrderStorage", order_id: str, new_status: OrderStatus,
                     **fields) -> Order:
    """Move an order to ``new_status`` or raise InvalidTransition"""

    def build(order: Order) -> Dict[str, Any]:
        ensure_transition(order, new_status)
        return {"status": new_status, **fields}

    updated = await guarded_update(storage, order_id, build, allowed_statuses=OrderStatus)
    logger.business_event("order_status_changed", order_id=order_id, status=new_status.value)
    return updated


async def cancel_order(storage: "OrderStorage", order_id: str, reason: str) -> Optional[Order]:
    """Cancel unless already terminal; returns None when nothing was written"""
    updated = await guarded_update(
        storage,
        order_id,
        {"status": OrderStatus.CANCELLED, "cancellation_reason": reason},
    )
    if updated is not None:
        logger.business_event("order_cancelled", order_id=order_id, reason=reason)
    return updated
