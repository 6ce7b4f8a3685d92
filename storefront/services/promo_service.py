"""Promo code validation and usage reservation."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, update

from storefront.exceptions import ValidationError
from storefront.models import Special
from storefront.services.pricing_service import compute_discount
from storefront.utils.money import to_decimal, format_money

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = 'Invalid or expired promo code'


@dataclass
class PromoValidationResult:
    """Outcome of a promo code check."""
    valid: bool
    special: Optional[Dict[str, Any]] = None
    discount: Optional[Decimal] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.valid:
            return {'valid': False, 'error': self.error}
        return {
            'valid': True,
            'special': self.special,
            'discount': float(self.discount),
        }


def _redeemable_filter(query, now: datetime):
    """Active, inside the validity window and with uses left."""
    return query.filter(
        Special.active == True,  # noqa: E712
        Special.start_date <= now,
        Special.end_date >= now,
        or_(Special.max_uses.is_(None), Special.used_count < Special.max_uses)
    )


def find_redeemable_special(session, code: str, now: Optional[datetime] = None) -> Optional[Special]:
    """Look up a special by code (case-insensitive) that can be redeemed now."""
    if not code or not str(code).strip():
        return None
    now = now or datetime.now(timezone.utc)
    query = session.query(Special).filter(Special.code == str(code).strip().upper())
    return _redeemable_filter(query, now).first()


def _cart_quantities(items: Any) -> List[SimpleNamespace]:
    """Quantities only; promo checks must not fail on partial cart payloads."""
    lines = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        try:
            quantity = int(item.get('quantity') or 0)
        except (TypeError, ValueError):
            continue
        if quantity > 0:
            lines.append(SimpleNamespace(quantity=quantity))
    return lines


def validate_code(
    session,
    code: Optional[str],
    subtotal: Any,
    items: Optional[List[Dict[str, Any]]] = None,
    now: Optional[datetime] = None
) -> PromoValidationResult:
    """
    Validate a promo code against a prospective purchase.

    Business failures (unknown code, expired, exhausted, minimum not reached)
    come back as valid=False; only malformed input raises.

    Raises:
        ValidationError: subtotal is missing or not numeric
    """
    if not code or not str(code).strip():
        return PromoValidationResult(valid=False, error='Promo code is required')

    try:
        subtotal = to_decimal(subtotal if subtotal is not None else 0)
    except ValueError:
        raise ValidationError('Subtotal must be a number')

    special = find_redeemable_special(session, code, now)
    if special is None:
        logger.info(f"[PROMO] Rejected code {str(code).upper()!r}: not redeemable")
        return PromoValidationResult(valid=False, error=INVALID_CODE_MESSAGE)

    if special.min_purchase is not None and subtotal < special.min_purchase:
        return PromoValidationResult(
            valid=False,
            error=f'Minimum purchase of ${format_money(special.min_purchase)} required'
        )

    discount = compute_discount(special, subtotal, _cart_quantities(items))
    logger.info(f"[PROMO] Code {special.code} accepted, discount {discount}")

    return PromoValidationResult(valid=True, special=special.to_summary(), discount=discount)


def reserve_use(session, code: str, now: Optional[datetime] = None) -> bool:
    """
    Atomically take one use of a promo code.

    A single conditional UPDATE; the row count says whether a use was left.
    Runs inside the caller's transaction (no commit here).
    """
    if not code:
        return False
    now = now or datetime.now(timezone.utc)

    stmt = (
        update(Special)
        .where(
            Special.code == code.strip().upper(),
            Special.active == True,  # noqa: E712
            Special.start_date <= now,
            Special.end_date >= now,
            or_(Special.max_uses.is_(None), Special.used_count < Special.max_uses)
        )
        .values(used_count=Special.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    reserved = result.rowcount == 1
    if not reserved:
        logger.warning(f"[PROMO] No uses left for code {code.upper()!r}")
    return reserved
