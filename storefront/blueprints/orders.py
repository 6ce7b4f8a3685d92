"""Orders blueprint - direct order creation, staff management and customer history."""
import logging

from flask import Blueprint, g, jsonify, request

from storefront.blueprints.metrics import record_order_created
from storefront.database import get_session
from storefront.middleware import get_json_body, require_customer, require_staff
from storefront.services import order_service
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_status_service import status_view, update_order_status

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('', methods=['POST'])
def create_order():
    """
    Create a pending order without the hosted payment redirect.

    Body: {items, customerInfo, fulfillmentType, pickupTime, deliveryAddress,
    notes, stripeSessionId, customerId}
    """
    data = get_json_body()
    fulfillment = {
        'fulfillment_type': data.get('fulfillmentType') or data.get('fulfillment_type'),
        'pickup_time': data.get('pickupTime') or data.get('pickup_time'),
        'delivery_address': data.get('deliveryAddress') or data.get('delivery_address'),
        'notes': data.get('notes'),
        'stripe_session_id': data.get('stripeSessionId') or data.get('stripe_session_id'),
        'customer_id': data.get('customerId') or data.get('customer_id'),
    }
    customer_info = data.get('customerInfo') or data.get('customer_info')

    service = CheckoutService(get_session())
    order = service.create_order(data.get('items'), customer_info, fulfillment)
    record_order_created('direct')

    return jsonify({'message': 'Order created successfully', 'order': order.to_dict()}), 201


@orders_bp.route('', methods=['GET'])
@require_staff
def list_orders():
    """Staff listing. Query: status, page, limit."""
    orders, pagination = order_service.list_orders(
        get_session(),
        status=request.args.get('status'),
        page=request.args.get('page', 1),
        limit=request.args.get('limit', 20)
    )
    return jsonify({'orders': orders, 'pagination': pagination}), 200


@orders_bp.route('/my-orders', methods=['GET'])
@require_customer
def my_orders():
    """Orders owned by the authenticated customer."""
    orders = order_service.list_customer_orders(get_session(), g.customer_id)
    return jsonify({'orders': [order.to_dict() for order in orders]}), 200


@orders_bp.route('/my-orders/<order_number>', methods=['GET'])
@require_customer
def my_order(order_number):
    order = order_service.get_customer_order(get_session(), g.customer_id, order_number)
    return jsonify({'order': order.to_dict()}), 200


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_staff
def get_order(order_id):
    """Full order view for staff."""
    order = order_service.get_order(get_session(), order_id)
    return jsonify({'order': order.to_dict(include_private=True)}), 200


@orders_bp.route('/<int:order_id>/status', methods=['PATCH'])
@require_staff
def change_status(order_id):
    """Body: {status}"""
    data = get_json_body()
    order = update_order_status(get_session(), order_id, data.get('status'))
    return jsonify({'message': 'Order status updated', 'order': status_view(order)}), 200
