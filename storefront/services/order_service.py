"""
Order repository - transactional persistence of orders and their lines.
An order and its lines are written as one unit: both commit or neither does.
"""
import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from storefront.exceptions import NotFoundError, PersistenceError, StorefrontError, ValidationError
from storefront.models import Order, OrderLine, OrderStatus
from storefront.services.cart import CartLine

logger = logging.getLogger(__name__)

ORDERS_CACHE_MODULE = 'orders'
MAX_PAGE_SIZE = 100


def get_order_by_session_id(session, session_id: str) -> Optional[Order]:
    """Order created for a gateway session, if any."""
    if not session_id:
        return None
    return session.query(Order).filter(Order.stripe_session_id == session_id).first()


def get_order(session, order_id: int) -> Order:
    """Fetch an order with its lines or raise NotFoundError."""
    order = (
        session.query(Order)
        .options(selectinload(Order.lines))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise NotFoundError('Order not found')
    return order


def insert_order_with_lines(
    session,
    order_fields: Dict[str, Any],
    lines: Iterable[CartLine],
    after_insert: Optional[Callable[[Any, Order], None]] = None
) -> Order:
    """
    Insert an order and one line per cart entry in a single transaction.

    Args:
        session: SQLAlchemy session
        order_fields: Column values for the Order row
        lines: Cart lines; name, quantity and unit price are captured as-is
        after_insert: Extra work that must share the transaction
            (called after the order is flushed, before commit)

    Returns:
        The committed Order

    Raises:
        IntegrityError: unique/foreign-key conflicts, after rollback, so callers
            can tell a duplicate session apart from other failures
        PersistenceError: any other database failure, after rollback
    """
    try:
        order = Order(**order_fields)
        for line in lines:
            order.lines.append(OrderLine(
                product_id=line.product_id,
                product_name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.line_total
            ))
        session.add(order)
        session.flush()

        if after_insert:
            after_insert(session, order)

        session.commit()

    except IntegrityError:
        session.rollback()
        raise
    except StorefrontError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[ORDERS] Transaction failed: {e}")
        raise PersistenceError('Could not save the order') from e
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ORDERS] Order {order.order_number} saved (id={order.id}, status={order.status})")
    invalidate_orders_cache()
    return order


def invalidate_orders_cache() -> None:
    """Drop cached order listings; a cache failure never fails the write."""
    try:
        from storefront.services.cache_service import get_cache
        get_cache().invalidate_module(ORDERS_CACHE_MODULE)
    except Exception as e:
        logger.warning(f"[CACHE] Could not invalidate order listings: {e}")


def _parse_positive_int(value: Any, name: str, default: int) -> int:
    if value is None or value == '':
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be a positive integer')
    if parsed < 1:
        raise ValidationError(f'{name} must be a positive integer')
    return parsed


def list_orders(
    session,
    status: Optional[str] = None,
    page: Any = 1,
    limit: Any = 20
) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    """
    Staff listing: newest first, optional status filter, with line items.

    Returns:
        (orders as dicts, pagination dict)
    """
    if status and status not in OrderStatus.values():
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(OrderStatus.values())}")

    page = _parse_positive_int(page, 'page', 1)
    limit = min(_parse_positive_int(limit, 'limit', 20), MAX_PAGE_SIZE)

    def load():
        query = session.query(Order)
        if status:
            query = query.filter(Order.status == status)

        total_count = query.count()
        orders = (
            query.options(selectinload(Order.lines))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
        return {
            'orders': [order.to_dict() for order in orders],
            'pagination': {
                'page': page,
                'limit': limit,
                'totalCount': total_count,
                'totalPages': math.ceil(total_count / limit),
            },
        }

    from storefront.services.cache_service import get_cache
    result = get_cache().memoize(
        ORDERS_CACHE_MODULE,
        f"list:{status or 'all'}:{page}:{limit}",
        load,
        ttl=current_app.config.get('CACHE_ORDERS_TTL', 30)
    )
    return result['orders'], result['pagination']


def list_customer_orders(session, customer_id: int) -> List[Order]:
    """All orders owned by a customer, newest first."""
    return (
        session.query(Order)
        .options(selectinload(Order.lines))
        .filter(Order.customer_id == customer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def get_customer_order(session, customer_id: int, order_number: str) -> Order:
    """One of the customer's orders by its order number."""
    order = (
        session.query(Order)
        .options(selectinload(Order.lines))
        .filter(Order.order_number == order_number, Order.customer_id == customer_id)
        .first()
    )
    if not order:
        raise NotFoundError('Order not found')
    return order
