"""Stripe Checkout client used by the checkout orchestrator."""
import logging
from typing import Any, Dict, List, Optional

import stripe
from flask import current_app

from storefront.exceptions import NotFoundError, UpstreamGatewayError

logger = logging.getLogger(__name__)


def _get(obj: Any, key: str) -> Any:
    """Read a field from a StripeObject (or dict), None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


class StripeGateway:
    """Thin wrapper over the Stripe SDK that speaks plain dicts."""

    SESSION_EXPAND = ['line_items', 'payment_intent']

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[int] = None, max_retries: Optional[int] = None):
        """
        Initialize the Stripe client.

        Args:
            api_key: Stripe secret key. If None, reads STRIPE_SECRET_KEY from config
            timeout: Network timeout in seconds for each API call
            max_retries: Automatic retries on network failures
        """
        self.api_key = api_key or current_app.config.get('STRIPE_SECRET_KEY')
        if not self.api_key:
            raise ValueError("STRIPE_SECRET_KEY is required")

        timeout = timeout or current_app.config.get('STRIPE_TIMEOUT_SECONDS', 10)
        if max_retries is None:
            max_retries = current_app.config.get('STRIPE_MAX_NETWORK_RETRIES', 2)

        stripe.max_network_retries = max_retries
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a hosted Checkout session.

        Args:
            params: Checkout Session parameters (line_items, mode, urls, metadata...)

        Returns:
            Dict with id and url of the session

        Raises:
            UpstreamGatewayError: if Stripe rejects the request or is unreachable
        """
        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            raise self._translate_error(e, 'creating checkout session')

        logger.info(f"[STRIPE] Checkout session created: {session.id}")
        return {'id': session.id, 'url': _get(session, 'url')}

    def create_coupon(self, amount_off: int, currency: str, code: str) -> str:
        """One-use coupon carrying a promo discount; returns the coupon id."""
        try:
            coupon = stripe.Coupon.create(
                api_key=self.api_key,
                amount_off=amount_off,
                currency=currency,
                duration='once',
                max_redemptions=1,
                name=code
            )
        except stripe.StripeError as e:
            raise self._translate_error(e, f'creating coupon for {code}')

        logger.info(f"[STRIPE] Coupon {coupon.id} created for {code} ({amount_off} cents)")
        return coupon.id

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        """
        Retrieve a Checkout session with its line items and payment intent.

        Returns:
            Dict with id, status (payment status), customer_email, amount_total,
            metadata, payment_intent (id) and line_items

        Raises:
            NotFoundError: Stripe has no such session
            UpstreamGatewayError: any other Stripe failure
        """
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                api_key=self.api_key,
                expand=self.SESSION_EXPAND
            )
        except stripe.StripeError as e:
            raise self._translate_error(e, f'retrieving session {session_id}')

        logger.info(f"[STRIPE] Session {session_id} payment_status={_get(session, 'payment_status')}")
        return self.session_to_dict(session)

    @staticmethod
    def session_to_dict(session: Any) -> Dict[str, Any]:
        """Flatten a Checkout Session object (or webhook payload) into a dict."""
        payment_intent = _get(session, 'payment_intent')
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = _get(payment_intent, 'id')

        metadata = _get(session, 'metadata') or {}

        return {
            'id': _get(session, 'id'),
            'status': _get(session, 'payment_status'),
            'customer_email': _get(session, 'customer_email'),
            'amount_total': _get(session, 'amount_total'),
            'metadata': {key: metadata[key] for key in metadata.keys()},
            'payment_intent': payment_intent,
            'url': _get(session, 'url'),
            'line_items': _line_items_to_list(_get(session, 'line_items')),
        }

    @staticmethod
    def _translate_error(error: 'stripe.StripeError', action: str) -> Exception:
        """Map SDK errors onto the application's error taxonomy."""
        if isinstance(error, stripe.InvalidRequestError) and (
            error.http_status == 404 or getattr(error, 'code', None) == 'resource_missing'
        ):
            logger.warning(f"[STRIPE] Not found while {action}: {error.user_message or error}")
            return NotFoundError('Payment session not found')

        if isinstance(error, stripe.APIConnectionError):
            logger.error(f"[STRIPE] Gateway unreachable while {action}: {error}")
            return UpstreamGatewayError('Payment gateway unavailable, please retry', status_code=503, retryable=True)

        logger.error(f"[STRIPE] Error {action}: {error}")
        message = error.user_message or 'Payment gateway error'
        return UpstreamGatewayError(message, status_code=502, retryable=True)


def _line_items_to_list(line_items: Any) -> List[Dict[str, Any]]:
    data = _get(line_items, 'data') or []
    return [
        {
            'description': _get(item, 'description'),
            'quantity': _get(item, 'quantity'),
            'amount_total': _get(item, 'amount_total'),
        }
        for item in data
    ]


def get_payment_gateway():
    """Gateway for the current app, created on first use."""
    gateway = current_app.extensions.get('payment_gateway')
    if gateway is None:
        gateway = StripeGateway()
        current_app.extensions['payment_gateway'] = gateway
    return gateway
