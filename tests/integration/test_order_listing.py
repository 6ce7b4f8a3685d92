"""
Integration tests for staff listings, customer order history and app-level endpoints.
"""

import pytest

from storefront.exceptions import ValidationError
from storefront.services import order_service
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_status_service import update_order_status

CUSTOMER = {'email': 'sam@example.com', 'name': 'Sam Baker'}


@pytest.fixture
def orders(session):
    """Five orders, the last two moved to confirmed."""
    service = CheckoutService(session)
    created = [
        service.create_order([{'name': f'Item {i}', 'price': 10 + i, 'quantity': 1}], CUSTOMER)
        for i in range(5)
    ]
    for order in created[3:]:
        update_order_status(session, order.id, 'confirmed')
    return [order.id for order in created]


class TestListOrders:

    def test_newest_first_with_pagination(self, session, orders):
        page, pagination = order_service.list_orders(session, page=1, limit=2)

        assert [order['id'] for order in page] == [orders[4], orders[3]]
        assert pagination == {'page': 1, 'limit': 2, 'totalCount': 5, 'totalPages': 3}
        assert page[0]['items'][0]['productName'] == 'Item 4'

    def test_status_filter(self, session, orders):
        page, pagination = order_service.list_orders(session, status='confirmed')

        assert {order['id'] for order in page} == set(orders[3:])
        assert pagination['totalCount'] == 2

    def test_limit_is_capped(self, session, orders):
        _, pagination = order_service.list_orders(session, limit=1000)
        assert pagination['limit'] == order_service.MAX_PAGE_SIZE

    @pytest.mark.parametrize('kwargs', [{'page': 0}, {'limit': 'ten'}, {'status': 'shipped'}])
    def test_invalid_arguments(self, session, kwargs):
        with pytest.raises(ValidationError):
            order_service.list_orders(session, **kwargs)


class TestStaffEndpoints:

    def test_list_requires_staff(self, client):
        assert client.get('/api/orders').status_code == 401

    def test_list_orders(self, client, orders, staff_headers):
        response = client.get('/api/orders?status=pending&page=1&limit=10', headers=staff_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body['pagination']['totalCount'] == 3
        assert all(order['status'] == 'pending' for order in body['orders'])

    def test_get_order_full_view(self, client, orders, staff_headers):
        response = client.get(f'/api/orders/{orders[0]}', headers=staff_headers)

        assert response.status_code == 200
        order = response.get_json()['order']
        assert order['customerEmail'] == 'sam@example.com'
        assert 'updatedAt' in order

    def test_get_missing_order(self, client, staff_headers):
        assert client.get('/api/orders/404', headers=staff_headers).status_code == 404


class TestCustomerOrders:

    def test_my_orders_only_returns_own(self, client, session, customer):
        service = CheckoutService(session)
        mine = service.create_order([{'name': 'Pie', 'price': 5, 'quantity': 1}], CUSTOMER, {'customer_id': customer.id})
        service.create_order([{'name': 'Cake', 'price': 9, 'quantity': 1}], CUSTOMER)
        mine_number = mine.order_number
        headers = {'X-Customer-Id': str(customer.id)}

        listing = client.get('/api/orders/my-orders', headers=headers)
        detail = client.get(f'/api/orders/my-orders/{mine_number}', headers=headers)

        assert [order['orderNumber'] for order in listing.get_json()['orders']] == [mine_number]
        assert detail.get_json()['order']['items'][0]['productName'] == 'Pie'

    def test_other_customers_order_is_404(self, client, session, customer):
        other = CheckoutService(session).create_order([{'name': 'Cake', 'price': 9, 'quantity': 1}], CUSTOMER)

        response = client.get(f'/api/orders/my-orders/{other.order_number}', headers={'X-Customer-Id': str(customer.id)})

        assert response.status_code == 404

    def test_requires_customer_header(self, client):
        assert client.get('/api/orders/my-orders').status_code == 401


class TestAppEndpoints:

    def test_health(self, client):
        response = client.get('/api/health')

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'OK'
        assert body['database'] == 'connected'
        assert body['environment'] == 'testing'

    def test_health_reports_database_down(self, client, monkeypatch):
        from storefront.blueprints import main
        monkeypatch.setattr(main, 'check_connection', lambda: False)

        response = client.get('/api/health')

        assert response.status_code == 503
        assert response.get_json()['database'] == 'disconnected'

    def test_unknown_route(self, client):
        response = client.get('/api/nowhere')

        assert response.status_code == 404
        assert response.get_json() == {'error': 'Route not found'}

    def test_metrics_endpoint(self, client):
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'http_requests_total' in response.data
