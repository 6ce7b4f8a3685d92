"""
Checkout blueprint - Stripe hosted checkout, order confirmation and webhooks.
"""
import logging

from flask import Blueprint, jsonify, request

from storefront.blueprints.metrics import record_order_created, record_webhook_event
from storefront.database import get_session
from storefront.middleware import get_json_body
from storefront.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

checkout_bp = Blueprint('checkout', __name__, url_prefix='/api/checkout')


@checkout_bp.route('/create-session', methods=['POST'])
def create_session():
    """
    Create a Stripe Checkout session for the cart.

    Body: {items[], customerInfo | customer_info, promoCode?}
    """
    data = get_json_body()
    customer_info = data.get('customerInfo') or data.get('customer_info')
    promo_code = data.get('promoCode') or data.get('promo_code')

    service = CheckoutService(get_session())
    result = service.create_session(data.get('items'), customer_info, promo_code)
    return jsonify(result), 200


@checkout_bp.route('/session/<session_id>', methods=['GET'])
def get_checkout_session(session_id):
    """Session details for the confirmation page."""
    service = CheckoutService(get_session())
    return jsonify({'session': service.get_session(session_id)}), 200


@checkout_bp.route('/confirm-order', methods=['POST'])
def confirm_order():
    """
    Create the order for a paid session (idempotent).

    Returns 201 for a new order, 200 when the session was already confirmed.
    """
    data = get_json_body()
    session_id = data.get('sessionId') or data.get('session_id')
    customer_id = data.get('customerId') or data.get('customer_id')

    service = CheckoutService(get_session())
    order, created = service.confirm_order(session_id, customer_id)

    if created:
        record_order_created('checkout')
        return jsonify({'message': 'Order created successfully', 'order': order.to_summary()}), 201
    return jsonify({'message': 'Order already exists', 'order': order.to_summary()}), 200


@checkout_bp.route('/webhook', methods=['POST'])
def stripe_webhook():
    """
    Stripe webhook receiver.

    The raw body is needed for signature verification; verification failures
    answer 400 so Stripe shows the delivery as failed.
    """
    service = CheckoutService(get_session())
    result = service.handle_webhook(request.get_data(), request.headers.get('Stripe-Signature'))

    record_webhook_event(result['type'])
    if result['created']:
        record_order_created('webhook')

    return jsonify({'received': True}), 200
