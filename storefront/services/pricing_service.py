"""
Pricing rule evaluator.

Pure functions: given a special and a cart, compute the discount amount.
Nothing here touches the database.

Known limitation: buy_x_get_y works on the cart-wide average item price, not on
the specific qualifying/free items, and bundle_discount applies to the whole cart
rather than to the bundle subset. Both are simplifications of the promotion model;
changing them changes the discount customers see.
"""
import logging
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from storefront.models.special import SpecialType
from storefront.utils.money import to_decimal, CENT

logger = logging.getLogger(__name__)

DEFAULT_BUY_QUANTITY = 2
DEFAULT_GET_QUANTITY = 1

ZERO = Decimal('0')


def compute_discount(special: Any, subtotal: Any, cart_lines: Optional[Iterable[Any]] = None) -> Decimal:
    """
    Compute the discount a special grants on a cart.

    Args:
        special: Special (or any object with `type` and `value` attributes)
        subtotal: Cart subtotal before discount
        cart_lines: Lines with a `quantity` attribute (needed for buy_x_get_y)

    Returns:
        Decimal discount, >= 0, rounded half-up to cents as the last step
    """
    subtotal = max(to_decimal(subtotal), ZERO)
    special_type = special.type.value if isinstance(special.type, SpecialType) else special.type

    if special_type in (SpecialType.DISCOUNT_PERCENTAGE.value, SpecialType.BUNDLE_DISCOUNT.value):
        amount = _percentage_discount(subtotal, special.value)
    elif special_type == SpecialType.FIXED_PRICE.value:
        amount = min(_numeric_value(special.value), subtotal)
    elif special_type == SpecialType.BUY_X_GET_Y.value:
        amount = _buy_x_get_y_discount(subtotal, special.value, cart_lines)
    else:
        logger.debug(f"[PROMO] Unknown special type {special_type!r}, no discount")
        amount = ZERO

    return max(amount, ZERO).quantize(CENT, rounding=ROUND_HALF_UP)


def _numeric_value(value: Any) -> Decimal:
    """Read a scalar rule value; JSON columns may hold {"value": n} too."""
    if isinstance(value, dict):
        value = value.get('value', value.get('amount'))
    try:
        return max(to_decimal(value), ZERO)
    except ValueError:
        return ZERO


def _percentage_discount(subtotal: Decimal, value: Any) -> Decimal:
    return subtotal * _numeric_value(value) / Decimal('100')


def _buy_x_get_y_quantities(value: Any):
    value = value if isinstance(value, dict) else {}
    buy_qty = value.get('buyQuantity') or value.get('buy_quantity') or DEFAULT_BUY_QUANTITY
    get_qty = value.get('getQuantity') or value.get('get_quantity') or DEFAULT_GET_QUANTITY
    try:
        return int(buy_qty), int(get_qty)
    except (TypeError, ValueError):
        return DEFAULT_BUY_QUANTITY, DEFAULT_GET_QUANTITY


def _buy_x_get_y_discount(subtotal: Decimal, value: Any, cart_lines: Optional[Iterable[Any]]) -> Decimal:
    lines = list(cart_lines or [])
    if not lines:
        return ZERO

    buy_qty, get_qty = _buy_x_get_y_quantities(value)
    total_items = sum(int(line.quantity) for line in lines)
    if total_items <= 0 or total_items < buy_qty or buy_qty + get_qty <= 0:
        return ZERO

    avg_price = subtotal / Decimal(total_items)
    groups = (Decimal(total_items) / Decimal(buy_qty + get_qty)).to_integral_value(rounding=ROUND_FLOOR)
    free_items = groups * get_qty
    return avg_price * free_items
