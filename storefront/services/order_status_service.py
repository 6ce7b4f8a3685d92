"""Order status transitions (staff-driven fulfillment workflow)."""
import logging
from typing import Dict, FrozenSet

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from storefront.exceptions import PersistenceError, ValidationError
from storefront.models import Order, OrderStatus
from storefront.services.order_service import get_order, invalidate_orders_cache

logger = logging.getLogger(__name__)

ORDER_STATUSES = OrderStatus.values()

TERMINAL_STATUSES: FrozenSet[str] = frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value})

# Forward sequence, cancel from any non-terminal state.
# Only enforced when ORDER_STRICT_TRANSITIONS is on.
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    OrderStatus.PENDING.value: frozenset({OrderStatus.CONFIRMED.value, OrderStatus.CANCELLED.value}),
    OrderStatus.CONFIRMED.value: frozenset({OrderStatus.PREPARING.value, OrderStatus.CANCELLED.value}),
    OrderStatus.PREPARING.value: frozenset({OrderStatus.READY.value, OrderStatus.CANCELLED.value}),
    OrderStatus.READY.value: frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value}),
    OrderStatus.COMPLETED.value: frozenset(),
    OrderStatus.CANCELLED.value: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """Whether the strict workflow allows current -> target."""
    if current in TERMINAL_STATUSES:
        return False
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def update_order_status(session, order_id: int, status: str) -> Order:
    """
    Move an order to a new status.

    Raises:
        ValidationError: unknown status, or a disallowed move in strict mode
        NotFoundError: no order with that id
    """
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")

    order = get_order(session, order_id)
    previous = order.status

    strict = current_app.config.get('ORDER_STRICT_TRANSITIONS', False)
    if strict and previous != status and not can_transition(previous, status):
        raise ValidationError(f"Cannot change order status from {previous} to {status}")

    try:
        order.status = status
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[ORDERS] Status update failed for order {order_id}: {e}")
        raise PersistenceError('Could not update the order status') from e

    logger.info(f"[ORDERS] Order {order.order_number}: {previous} -> {status}")
    invalidate_orders_cache()
    return order


def status_view(order: Order) -> Dict[str, object]:
    """Minimal view returned after a status change."""
    return {
        'id': order.id,
        'orderNumber': order.order_number,
        'status': order.status,
        'updatedAt': order.updated_at.isoformat() if order.updated_at else None,
    }
