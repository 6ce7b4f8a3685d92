"""
Checkout orchestration - Stripe hosted checkout to durable orders.

Flow:
1. create_session: cart -> Stripe Checkout session (nothing stored locally)
2. confirm_order / webhook: paid session -> Order + lines, idempotent on the
   Stripe session id (check-then-insert, unique constraint as the backstop)
3. create_order: direct order without the hosted payment redirect
"""
import json
import logging
import secrets
import string
import time
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError

from storefront.exceptions import ConflictError, UpstreamGatewayError, ValidationError
from storefront.models import Customer, FulfillmentType, Order, OrderStatus, Product
from storefront.services import order_service
from storefront.services.cart import (
    CartLine, CustomerInfo, cart_subtotal, normalize_customer_info, parse_cart
)
from storefront.services.promo_service import reserve_use, validate_code
from storefront.services.stripe_client import StripeGateway, get_payment_gateway
from storefront.utils.money import from_cents, quantize_money, to_cents, to_decimal

logger = logging.getLogger(__name__)

# Stripe rejects metadata values longer than this
METADATA_VALUE_LIMIT = 500
DEFAULT_FRONTEND_URL = 'http://localhost:5173'
TAX_RATE = Decimal('0.085')
BASE36_ALPHABET = string.digits + string.ascii_uppercase


def normalize_frontend_url(url: Optional[str]) -> str:
    """Force an http(s) scheme and drop the trailing slash."""
    url = (url or DEFAULT_FRONTEND_URL).strip()
    if not url.startswith('http://') and not url.startswith('https://'):
        url = f'https://{url}'
    return url.rstrip('/')


def _base36(number: int) -> str:
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))


def generate_order_number(prefix: Optional[str] = None) -> str:
    """
    Human-facing order number: PREFIX-<base36 ms timestamp>-<4 random chars>.

    Not checked against the table; a collision surfaces as a unique-constraint
    conflict on insert.
    """
    prefix = prefix or current_app.config.get('ORDER_NUMBER_PREFIX', 'LT')
    timestamp = _base36(int(time.time() * 1000))
    suffix = ''.join(secrets.choice(BASE36_ALPHABET) for _ in range(4))
    return f"{prefix}-{timestamp}-{suffix}"


def tax_rate() -> Decimal:
    return to_decimal(current_app.config.get('TAX_RATE', TAX_RATE))


def split_tax_inclusive_total(total: Decimal, rate: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Back out subtotal and tax from a total that already includes tax.

    Tax is the remainder, so subtotal + tax == total to the cent.
    """
    total = quantize_money(total)
    subtotal = quantize_money(total / (Decimal('1') + rate))
    return subtotal, total - subtotal


def add_tax(subtotal: Decimal, rate: Decimal) -> Tuple[Decimal, Decimal]:
    """Tax on top of a subtotal: returns (tax, total)."""
    subtotal = quantize_money(subtotal)
    tax = quantize_money(subtotal * rate)
    return tax, subtotal + tax


def parse_pickup_time(pickup_date: Optional[str], pickup_time: Optional[str]) -> Optional[datetime]:
    """Combine date and time metadata; None when either is missing or malformed."""
    if not pickup_date or not pickup_time:
        return None
    try:
        return datetime.fromisoformat(f"{pickup_date}T{pickup_time}")
    except ValueError:
        logger.warning(f"[CHECKOUT] Ignoring malformed pickup time {pickup_date!r} {pickup_time!r}")
        return None


def verify_webhook_event(payload: bytes, signature: Optional[str], secret: Optional[str], tolerance: int = 300) -> Dict[str, Any]:
    """
    Check the Stripe-Signature header and decode the event body.

    Returns:
        The event as a plain dict
    """
    if not secret:
        logger.error("[WEBHOOK] STRIPE_WEBHOOK_SECRET is not configured")
        raise UpstreamGatewayError('Webhook secret not configured')
    if not signature:
        logger.warning("[WEBHOOK] Missing Stripe-Signature header")
        raise UpstreamGatewayError('Missing Stripe-Signature header')

    if isinstance(payload, bytes):
        try:
            payload = payload.decode('utf-8')
        except UnicodeDecodeError as e:
            logger.warning(f"[WEBHOOK] Body is not valid UTF-8: {e}")
            raise UpstreamGatewayError('Webhook Error: payload is not valid UTF-8')

    try:
        stripe.WebhookSignature.verify_header(payload, signature, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"[WEBHOOK] Signature verification failed: {e}")
        raise UpstreamGatewayError(f'Webhook Error: {e}')

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError('Webhook Error: invalid JSON payload')
    if not isinstance(event, dict):
        raise ValidationError('Webhook Error: invalid event payload')
    return event


def _load_json_field(metadata: Dict[str, Any], key: str) -> Any:
    raw = metadata.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        raise ValidationError(f'Malformed {key} in payment session metadata')


class CheckoutService:
    """Drives a cart through Stripe Checkout into an order."""

    def __init__(self, db_session, gateway: Optional[StripeGateway] = None):
        """
        Args:
            db_session: SQLAlchemy session
            gateway: Payment gateway; defaults to the app's Stripe gateway
        """
        self.db = db_session
        self._gateway = gateway

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    # ------------------------------------------------------------------
    # Session creation
    # ------------------------------------------------------------------

    def create_session(
        self,
        items: Any,
        raw_customer_info: Optional[Dict[str, Any]],
        promo_code: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Create a Stripe Checkout session for a cart.

        Args:
            items: Cart item payloads ({id, name, price, quantity, image})
            raw_customer_info: Customer/fulfillment details in either spelling
            promo_code: Optional promo code, validated and applied as a one-off coupon

        Returns:
            {'url': redirect URL, 'sessionId': Stripe session id}

        Raises:
            ValidationError: empty cart, bad items, invalid promo code, oversized metadata
            UpstreamGatewayError: Stripe refused or was unreachable
        """
        lines = parse_cart(items)
        info = normalize_customer_info(raw_customer_info)
        if info.order_type and info.order_type not in FulfillmentType.values():
            raise ValidationError(f"Invalid order type. Must be one of: {', '.join(FulfillmentType.values())}")
        currency = current_app.config.get('CURRENCY', 'usd')

        line_items = [self._gateway_line_item(line, currency) for line in lines]

        if info.is_delivery:
            delivery_fee = int(current_app.config.get('DELIVERY_FEE_CENTS', 500))
            if delivery_fee > 0:
                line_items.append({
                    'price_data': {
                        'currency': currency,
                        'product_data': {'name': 'Delivery Fee'},
                        'unit_amount': delivery_fee,
                    },
                    'quantity': 1,
                })

        metadata = self._build_metadata(lines, info)

        frontend_url = normalize_frontend_url(current_app.config.get('FRONTEND_URL'))
        params = {
            'payment_method_types': ['card'],
            'line_items': line_items,
            'mode': 'payment',
            'success_url': f"{frontend_url}/order-confirmation?success=true&session_id={{CHECKOUT_SESSION_ID}}",
            'cancel_url': f"{frontend_url}/order-confirmation?canceled=true",
            'metadata': metadata,
            # Prices are tax-inclusive; tax is backed out of the total on confirmation
            'automatic_tax': {'enabled': False},
        }
        if info.email:
            params['customer_email'] = info.email

        if promo_code:
            discount_cents = self._apply_promo(promo_code, lines, metadata)
            if discount_cents:
                coupon_id = self.gateway.create_coupon(discount_cents, currency, metadata['promoCode'])
                params['discounts'] = [{'coupon': coupon_id}]

        session = self.gateway.create_checkout_session(params)
        logger.info(f"[CHECKOUT] Session {session['id']} created for {len(lines)} line(s)")

        return {'url': session['url'], 'sessionId': session['id']}

    @staticmethod
    def _gateway_line_item(line: CartLine, currency: str) -> Dict[str, Any]:
        product_data: Dict[str, Any] = {'name': line.name}
        if line.image:
            product_data['images'] = [line.image]
        if line.product_id is not None:
            product_data['metadata'] = {'productId': str(line.product_id)}

        return {
            'price_data': {
                'currency': currency,
                'product_data': product_data,
                'unit_amount': to_cents(line.unit_price),
            },
            'quantity': line.quantity,
        }

    @staticmethod
    def _build_metadata(lines: List[CartLine], info: CustomerInfo) -> Dict[str, str]:
        """
        Everything needed to rebuild the order once Stripe hands the session back.

        Values are strings and each must fit METADATA_VALUE_LIMIT.
        """
        order_type = info.order_type or FulfillmentType.PICKUP.value
        metadata = {
            'orderType': order_type,
            'customerEmail': info.email or '',
            'customerName': info.display_name,
            'customerPhone': info.phone or '',
            'customerId': str(info.customer_id) if info.customer_id else '',
            'items': json.dumps([line.to_metadata() for line in lines], separators=(',', ':')),
        }

        if order_type == FulfillmentType.PICKUP.value:
            metadata['pickupDate'] = info.pickup_date or ''
            metadata['pickupTime'] = info.pickup_time or ''
        elif info.is_delivery:
            metadata['deliveryAddress'] = json.dumps(info.delivery_address(), separators=(',', ':'))

        # TODO: store oversized carts in a pending-cart table and pass its id instead
        if len(metadata['items']) > METADATA_VALUE_LIMIT:
            raise ValidationError('Cart too large for checkout')
        for key, value in metadata.items():
            if len(value) > METADATA_VALUE_LIMIT:
                raise ValidationError(f'{key} is too long for checkout')

        return metadata

    def _apply_promo(self, promo_code: str, lines: List[CartLine], metadata: Dict[str, str]) -> int:
        """Validate the code against the cart; returns the discount in cents."""
        subtotal = cart_subtotal(lines)
        items = [{'quantity': line.quantity} for line in lines]
        result = validate_code(self.db, promo_code, subtotal, items)
        if not result.valid:
            raise ValidationError(result.error)

        metadata['promoCode'] = result.special['code']
        metadata['discount'] = f"{result.discount:.2f}"
        return to_cents(result.discount)

    # ------------------------------------------------------------------
    # Session lookup and reconciliation
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Dict[str, Any]:
        """Session details for the order-confirmation page."""
        if not session_id:
            raise ValidationError('Session ID is required')
        checkout = self.gateway.retrieve_checkout_session(session_id)
        return {
            'id': checkout['id'],
            'status': checkout['status'],
            'customerEmail': checkout['customer_email'],
            'amountTotal': checkout['amount_total'],
            'metadata': checkout['metadata'],
            'lineItems': checkout['line_items'],
        }

    def confirm_order(self, session_id: Optional[str], customer_id: Optional[int] = None) -> Tuple[Order, bool]:
        """
        Turn a paid Checkout session into an order (idempotent).

        Args:
            session_id: Stripe Checkout session id
            customer_id: Authenticated customer, preferred over session metadata

        Returns:
            (order, created) - created is False when the session was already reconciled

        Raises:
            ValidationError: missing session id or malformed metadata
            NotFoundError: Stripe has no such session
            UpstreamGatewayError: payment not completed, or Stripe unreachable
        """
        if not session_id:
            raise ValidationError('Session ID is required')

        existing = order_service.get_order_by_session_id(self.db, session_id)
        if existing:
            logger.info(f"[CHECKOUT] Session {session_id} already confirmed as {existing.order_number}")
            return existing, False

        checkout = self.gateway.retrieve_checkout_session(session_id)
        return self.reconcile_session(checkout, customer_id)

    def reconcile_session(self, checkout: Dict[str, Any], customer_id: Optional[int] = None) -> Tuple[Order, bool]:
        """Persist the order for a retrieved session (shared by confirm and webhook)."""
        session_id = checkout['id']
        if checkout.get('status') != 'paid':
            raise UpstreamGatewayError('Payment not completed')

        metadata = checkout.get('metadata') or {}
        raw_items = _load_json_field(metadata, 'items') or []
        if not isinstance(raw_items, list):
            raise ValidationError('Malformed items in payment session metadata')
        lines = self._link_products([CartLine.from_payload(item) for item in raw_items])
        delivery_address = _load_json_field(metadata, 'deliveryAddress')

        total = from_cents(checkout.get('amount_total') or 0)
        subtotal, tax = split_tax_inclusive_total(total, tax_rate())

        order_fields = {
            'customer_id': self._resolve_customer_id(customer_id, metadata.get('customerId')),
            'order_number': generate_order_number(),
            'status': OrderStatus.CONFIRMED.value,
            'subtotal': subtotal,
            'tax': tax,
            'total': total,
            'fulfillment_type': metadata.get('orderType') or FulfillmentType.PICKUP.value,
            'pickup_time': parse_pickup_time(metadata.get('pickupDate'), metadata.get('pickupTime')),
            'delivery_address': delivery_address,
            'customer_name': metadata.get('customerName') or checkout.get('customer_email'),
            'customer_email': metadata.get('customerEmail') or checkout.get('customer_email'),
            'customer_phone': metadata.get('customerPhone') or None,
            'stripe_session_id': session_id,
            'stripe_payment_intent': checkout.get('payment_intent'),
        }
        if order_fields['fulfillment_type'] not in FulfillmentType.values():
            raise ValidationError('Malformed orderType in payment session metadata')

        promo_code = metadata.get('promoCode')
        after_insert = None
        if promo_code:
            def after_insert(session, order):
                # The payment is already taken; an exhausted code does not void it
                if not reserve_use(session, promo_code):
                    logger.warning(f"[PROMO] Order {order.order_number} used exhausted code {promo_code}")

        try:
            order = order_service.insert_order_with_lines(self.db, order_fields, lines, after_insert)
        except IntegrityError:
            existing = order_service.get_order_by_session_id(self.db, session_id)
            if existing:
                logger.info(f"[CHECKOUT] Session {session_id} confirmed concurrently, returning {existing.order_number}")
                return existing, False
            raise ConflictError('Could not assign an order number, please retry')

        logger.info(f"[CHECKOUT] Order {order.order_number} created from session {session_id}")
        return order, True

    def _link_products(self, lines: List[CartLine]) -> List[CartLine]:
        """Keep product ids only for products in the catalog; names are snapshotted either way."""
        ids = {line.product_id for line in lines if line.product_id is not None}
        if not ids:
            return lines

        known = {product_id for (product_id,) in self.db.query(Product.id).filter(Product.id.in_(ids))}
        unknown = ids - known
        if not unknown:
            return lines

        logger.warning(f"[CHECKOUT] Unknown product ids {sorted(unknown)}, lines kept without product link")
        return [replace(line, product_id=None) if line.product_id in unknown else line for line in lines]

    def _resolve_customer_id(self, explicit_id: Any, metadata_id: Any) -> Optional[int]:
        """Caller's customer first, then metadata; unknown ids fall back to guest."""
        candidate = explicit_id or metadata_id
        if not candidate:
            return None
        try:
            candidate = int(candidate)
        except (TypeError, ValueError):
            logger.warning(f"[CHECKOUT] Ignoring non-numeric customer id {candidate!r}")
            return None
        if self.db.get(Customer, candidate) is None:
            logger.warning(f"[CHECKOUT] Customer {candidate} not found, order saved as guest")
            return None
        return candidate

    # ------------------------------------------------------------------
    # Direct order creation (no hosted payment)
    # ------------------------------------------------------------------

    def create_order(
        self,
        items: Any,
        raw_customer_info: Optional[Dict[str, Any]],
        fulfillment: Optional[Dict[str, Any]] = None
    ) -> Order:
        """
        Create a pending order straight from a cart.

        Args:
            items: Cart item payloads
            raw_customer_info: Must carry email and name
            fulfillment: fulfillment_type, pickup_time, delivery_address, notes,
                stripe_session_id, customer_id

        Raises:
            ValidationError: empty cart, missing customer details, bad fulfillment data
            ConflictError: order number or session id already taken (retryable)
        """
        lines = parse_cart(items) if items else None
        if not lines:
            raise ValidationError('Order must contain at least one item')

        info = normalize_customer_info(raw_customer_info)
        if not info.email or not info.display_name:
            raise ValidationError('Customer email and name are required')

        fulfillment = fulfillment or {}
        fulfillment_type = fulfillment.get('fulfillment_type') or FulfillmentType.PICKUP.value
        if fulfillment_type not in FulfillmentType.values():
            raise ValidationError(f"Invalid fulfillment type. Must be one of: {', '.join(FulfillmentType.values())}")

        delivery_address = fulfillment.get('delivery_address')
        if delivery_address is not None and not isinstance(delivery_address, dict):
            raise ValidationError('Delivery address must be an object')

        customer_id = fulfillment.get('customer_id') or info.customer_id
        if customer_id:
            try:
                customer_id = int(customer_id)
            except (TypeError, ValueError):
                raise ValidationError('Customer id must be an integer')
            if self.db.get(Customer, customer_id) is None:
                raise ValidationError('Referenced customer does not exist')

        lines = self._link_products(lines)
        subtotal = cart_subtotal(lines)
        tax, total = add_tax(subtotal, tax_rate())

        order_fields = {
            'customer_id': customer_id or None,
            'order_number': generate_order_number(),
            'status': OrderStatus.PENDING.value,
            'subtotal': subtotal,
            'tax': tax,
            'total': total,
            'fulfillment_type': fulfillment_type,
            'pickup_time': self._parse_datetime(fulfillment.get('pickup_time')),
            'delivery_address': delivery_address,
            'customer_name': info.display_name,
            'customer_email': info.email,
            'customer_phone': info.phone,
            'notes': fulfillment.get('notes') or None,
            'stripe_session_id': fulfillment.get('stripe_session_id') or None,
        }

        try:
            order = order_service.insert_order_with_lines(self.db, order_fields, lines)
        except IntegrityError:
            if order_fields['stripe_session_id'] and order_service.get_order_by_session_id(
                self.db, order_fields['stripe_session_id']
            ):
                raise ConflictError('An order already exists for this payment session')
            raise ConflictError('Could not assign an order number, please retry')

        logger.info(f"[CHECKOUT] Direct order {order.order_number} created, total {order.total}")
        return order

    @staticmethod
    def _parse_datetime(value: Any) -> Optional[datetime]:
        if not value:
            return None
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError('Invalid pickup time, use ISO 8601')

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a raw Stripe webhook delivery and process it.

        Raises:
            UpstreamGatewayError: missing secret, missing header or bad signature (400)
            ValidationError: the body is not JSON
        """
        event = verify_webhook_event(
            payload,
            signature,
            current_app.config.get('STRIPE_WEBHOOK_SECRET'),
            current_app.config.get('STRIPE_WEBHOOK_TOLERANCE', 300)
        )
        order, created = self.handle_webhook_event(event)
        return {
            'received': True,
            'type': event.get('type'),
            'orderNumber': order.order_number if order else None,
            'created': created,
        }

    def handle_webhook_event(self, event: Dict[str, Any]) -> Tuple[Optional[Order], bool]:
        """
        React to a verified Stripe event.

        checkout.session.completed reconciles the session exactly like
        confirm_order; payment_intent events are logged; anything else is ignored.

        Returns:
            (order, created) for a reconciled session, else (None, False)
        """
        event_type = event.get('type')
        payload = (event.get('data') or {}).get('object') or {}

        if event_type == 'checkout.session.completed':
            checkout = StripeGateway.session_to_dict(payload)
            if checkout['status'] != 'paid':
                logger.info(f"[WEBHOOK] Session {checkout['id']} completed but not paid yet ({checkout['status']})")
                return None, False

            existing = order_service.get_order_by_session_id(self.db, checkout['id'])
            if existing:
                logger.info(f"[WEBHOOK] Session {checkout['id']} already reconciled as {existing.order_number}")
                return existing, False

            order, created = self.reconcile_session(checkout)
            logger.info(f"[WEBHOOK] Session {checkout['id']} -> order {order.order_number} (created={created})")
            return order, created

        if event_type == 'payment_intent.succeeded':
            logger.info(f"[WEBHOOK] PaymentIntent succeeded: {payload.get('id')}")
        elif event_type == 'payment_intent.payment_failed':
            logger.warning(f"[WEBHOOK] PaymentIntent failed: {payload.get('id')}")
        else:
            logger.info(f"[WEBHOOK] Unhandled event type: {event_type}")
        return None, False
