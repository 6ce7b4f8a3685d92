"""
Integration tests for direct order creation (POST /api/orders).
"""

from decimal import Decimal

import pytest

from storefront.exceptions import ConflictError, ValidationError
from storefront.models import Order, OrderLine
from storefront.services.checkout_service import CheckoutService

CUSTOMER = {'email': 'sam@example.com', 'name': 'Sam Baker', 'phone': '555-0199'}


class TestCreateOrderService:

    @pytest.mark.parametrize('price, subtotal, tax, total', [
        ('0.01', '0.01', '0.00', '0.01'),
        ('19.99', '19.99', '1.70', '21.69'),
        ('1000.00', '1000.00', '85.00', '1085.00'),
    ])
    def test_tax_added_to_subtotal(self, session, price, subtotal, tax, total):
        order = CheckoutService(session).create_order(
            [{'name': 'Item', 'price': price, 'quantity': 1}], CUSTOMER
        )

        assert order.status == 'pending'
        assert (order.subtotal, order.tax, order.total) == (Decimal(subtotal), Decimal(tax), Decimal(total))
        assert order.subtotal + order.tax == order.total

    def test_empty_cart_persists_nothing(self, session):
        with pytest.raises(ValidationError):
            CheckoutService(session).create_order([], CUSTOMER)

        assert session.query(Order).count() == 0
        assert session.query(OrderLine).count() == 0

    def test_customer_email_and_name_required(self, session):
        with pytest.raises(ValidationError, match='Customer email and name are required'):
            CheckoutService(session).create_order([{'name': 'Pie', 'price': 5, 'quantity': 1}], {'email': 'x@y.z'})

    def test_invalid_fulfillment_type(self, session):
        with pytest.raises(ValidationError):
            CheckoutService(session).create_order(
                [{'name': 'Pie', 'price': 5, 'quantity': 1}], CUSTOMER, {'fulfillment_type': 'drone'}
            )

    def test_bad_line_rolls_back_whole_order(self, session):
        with pytest.raises(ValidationError):
            CheckoutService(session).create_order(
                [{'name': 'Pie', 'price': 5, 'quantity': 1}, {'name': 'Bad', 'price': 5, 'quantity': -2}], CUSTOMER
            )
        assert session.query(Order).count() == 0

    def test_duplicate_session_id_conflicts(self, session):
        service = CheckoutService(session)
        items = [{'name': 'Pie', 'price': 5, 'quantity': 1}]
        service.create_order(items, CUSTOMER, {'stripe_session_id': 'cs_direct'})

        with pytest.raises(ConflictError):
            service.create_order(items, CUSTOMER, {'stripe_session_id': 'cs_direct'})
        assert session.query(Order).count() == 1

    def test_unknown_product_id_kept_as_snapshot(self, session):
        order = CheckoutService(session).create_order(
            [{'id': 4242, 'name': 'Seasonal Pie', 'price': 5, 'quantity': 1}], CUSTOMER
        )

        assert order.lines[0].product_id is None
        assert order.lines[0].product_name == 'Seasonal Pie'

    def test_unknown_customer_rejected(self, session):
        with pytest.raises(ValidationError):
            CheckoutService(session).create_order(
                [{'name': 'Pie', 'price': 5, 'quantity': 1}], CUSTOMER, {'customer_id': 9999}
            )


class TestCreateOrderEndpoint:

    def test_creates_pending_order(self, client, customer):
        response = client.post('/api/orders', json={
            'items': [{'name': 'Sourdough', 'price': 6.5, 'quantity': 2}],
            'customerInfo': CUSTOMER,
            'fulfillmentType': 'delivery',
            'deliveryAddress': {'address': '1 Main St', 'city': 'Springfield'},
            'pickupTime': '2030-05-01T09:00:00Z',
            'notes': 'Ring twice',
            'customerId': customer.id,
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['message'] == 'Order created successfully'
        order = body['order']
        assert order['status'] == 'pending'
        assert order['subtotal'] == 13.0
        assert order['tax'] == 1.11
        assert order['total'] == 14.11
        assert order['fulfillmentType'] == 'delivery'
        assert order['deliveryAddress'] == {'address': '1 Main St', 'city': 'Springfield'}
        assert order['notes'] == 'Ring twice'
        assert order['items'][0]['totalPrice'] == 13.0
        assert order['orderNumber'].startswith('LT-')

    def test_empty_items_is_400(self, client):
        response = client.post('/api/orders', json={'items': [], 'customerInfo': CUSTOMER})

        assert response.status_code == 400

    def test_bad_pickup_time_is_400(self, client):
        response = client.post('/api/orders', json={
            'items': [{'name': 'Pie', 'price': 5, 'quantity': 1}],
            'customerInfo': CUSTOMER,
            'pickupTime': 'tomorrow-ish',
        })

        assert response.status_code == 400
