"""
Integration tests for order status changes.
"""

import pytest

from storefront.exceptions import NotFoundError, ValidationError
from storefront.models import Order
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_status_service import (
    ALLOWED_TRANSITIONS, ORDER_STATUSES, can_transition, update_order_status
)


@pytest.fixture
def pending_order(session):
    return CheckoutService(session).create_order(
        [{'name': 'Pie', 'price': 12, 'quantity': 1}],
        {'email': 'sam@example.com', 'name': 'Sam Baker'}
    )


class TestTransitionTable:

    def test_statuses_in_workflow_order(self):
        assert ORDER_STATUSES == ['pending', 'confirmed', 'preparing', 'ready', 'completed', 'cancelled']

    def test_forward_moves_and_cancel(self):
        assert can_transition('pending', 'confirmed')
        assert can_transition('ready', 'completed')
        assert all(can_transition(status, 'cancelled') for status in ('pending', 'confirmed', 'preparing', 'ready'))

    def test_terminal_states_are_final(self):
        assert not can_transition('completed', 'pending')
        assert not can_transition('cancelled', 'confirmed')
        assert ALLOWED_TRANSITIONS['completed'] == frozenset()

    def test_no_skipping_ahead(self):
        assert not can_transition('pending', 'ready')


class TestUpdateOrderStatus:

    def test_loose_mode_allows_any_known_status(self, session, pending_order):
        order = update_order_status(session, pending_order.id, 'completed')
        assert order.status == 'completed'

        order = update_order_status(session, pending_order.id, 'pending')
        assert order.status == 'pending'

    def test_invalid_status_leaves_order_unchanged(self, session, pending_order):
        order_id = pending_order.id

        with pytest.raises(ValidationError, match='Invalid status. Must be one of: pending, confirmed'):
            update_order_status(session, order_id, 'shipped')

        session.expire_all()
        assert session.get(Order, order_id).status == 'pending'

    def test_unknown_order(self, session):
        with pytest.raises(NotFoundError, match='Order not found'):
            update_order_status(session, 12345, 'ready')

    def test_strict_mode_rejects_backwards_move(self, app, session, pending_order, monkeypatch):
        monkeypatch.setitem(app.config, 'ORDER_STRICT_TRANSITIONS', True)
        order_id = pending_order.id

        update_order_status(session, order_id, 'confirmed')
        with pytest.raises(ValidationError, match='Cannot change order status from confirmed to pending'):
            update_order_status(session, order_id, 'pending')

        assert session.get(Order, order_id).status == 'confirmed'

    def test_strict_mode_allows_cancel(self, app, session, pending_order, monkeypatch):
        monkeypatch.setitem(app.config, 'ORDER_STRICT_TRANSITIONS', True)

        assert update_order_status(session, pending_order.id, 'cancelled').status == 'cancelled'


class TestStatusEndpoint:
    """PATCH /api/orders/<id>/status"""

    def test_requires_staff_token(self, client, pending_order):
        order_id = pending_order.id

        assert client.patch(f'/api/orders/{order_id}/status', json={'status': 'ready'}).status_code == 401
        response = client.patch(
            f'/api/orders/{order_id}/status', json={'status': 'ready'},
            headers={'Authorization': 'Bearer wrong-token'}
        )
        assert response.status_code == 401

    def test_updates_status(self, client, pending_order, staff_headers):
        order_id = pending_order.id

        response = client.patch(f'/api/orders/{order_id}/status', json={'status': 'preparing'}, headers=staff_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body['message'] == 'Order status updated'
        assert body['order']['id'] == order_id
        assert body['order']['status'] == 'preparing'
        assert set(body['order']) == {'id', 'orderNumber', 'status', 'updatedAt'}

    def test_invalid_status_is_400(self, client, pending_order, staff_headers):
        response = client.patch(
            f'/api/orders/{pending_order.id}/status', json={'status': 'lost'}, headers=staff_headers
        )
        assert response.status_code == 400

    def test_unknown_order_is_404(self, client, staff_headers):
        response = client.patch('/api/orders/999/status', json={'status': 'ready'}, headers=staff_headers)
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Order not found'}
