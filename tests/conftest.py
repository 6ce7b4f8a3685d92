import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from storefront import create_app, database
from storefront.exceptions import NotFoundError
from storefront.models import Customer, Category, Product, Special


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self.sessions = {}
        self.created_params = []
        self.coupons = []
        self.retrieve_calls = 0

    def create_checkout_session(self, params):
        session_id = f'cs_test_{len(self.created_params) + 1}'
        self.created_params.append(params)
        return {'id': session_id, 'url': f'https://checkout.stripe.test/pay/{session_id}'}

    def create_coupon(self, amount_off, currency, code):
        coupon_id = f'coupon_{len(self.coupons) + 1}'
        self.coupons.append({'id': coupon_id, 'amount_off': amount_off, 'currency': currency, 'name': code})
        return coupon_id

    def add_session(self, session_id, amount_total, metadata, payment_status='paid',
                    payment_intent='pi_test_123', customer_email='jane@example.com'):
        self.sessions[session_id] = {
            'id': session_id,
            'status': payment_status,
            'customer_email': customer_email,
            'amount_total': amount_total,
            'metadata': metadata,
            'payment_intent': payment_intent,
            'url': None,
            'line_items': [],
        }

    def retrieve_checkout_session(self, session_id):
        self.retrieve_calls += 1
        if session_id not in self.sessions:
            raise NotFoundError('Payment session not found')
        return dict(self.sessions[session_id])


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(autouse=True)
def app_context(app):
    """Fresh schema and an application context for every test."""
    with app.app_context():
        database.create_all()
        yield
        database.get_session().remove()
        database.drop_all()
    app.extensions.pop('payment_gateway', None)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session for testing."""
    session = database.get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    """Fake payment gateway injected into the app."""
    fake = FakeGateway()
    app.extensions['payment_gateway'] = fake
    return fake


@pytest.fixture(scope='function')
def staff_headers(app):
    return {'Authorization': f"Bearer {app.config['STAFF_API_TOKEN']}"}


@pytest.fixture(scope='function')
def make_special(session):
    """Factory for promotional rules, active for a day around now by default."""
    def _make(**overrides):
        now = datetime.now(timezone.utc)
        fields = {
            'name': 'Test Special',
            'type': 'discount_percentage',
            'value': 10,
            'code': f'SAVE{uuid.uuid4().hex[:6]}',
            'start_date': now - timedelta(days=1),
            'end_date': now + timedelta(days=1),
            'active': True,
        }
        fields.update(overrides)
        special = Special(**fields)
        session.add(special)
        session.commit()
        return special
    return _make


@pytest.fixture(scope='function')
def customer(session):
    """Registered customer."""
    customer = Customer(
        email=f'customer-{uuid.uuid4().hex[:8]}@example.com',
        first_name='Jane',
        last_name='Doe',
        phone='555-0100'
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def product(session):
    """Catalog product."""
    category = Category(name='Pastries', slug='pastries')
    session.add(category)
    session.flush()

    product = Product(
        category_id=category.id,
        name='Croissant',
        slug='croissant',
        price=3.50
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def checkout_metadata():
    """Build the metadata bag that create-session attaches to a Stripe session."""
    def _build(items, **overrides):
        metadata = {
            'orderType': 'pickup',
            'customerEmail': 'jane@example.com',
            'customerName': 'Jane Doe',
            'customerPhone': '555-0100',
            'customerId': '',
            'items': json.dumps(items, separators=(',', ':')),
            'pickupDate': '2030-05-01',
            'pickupTime': '14:30',
        }
        metadata.update(overrides)
        return metadata
    return _build


@pytest.fixture(scope='function')
def sign_payload(app):
    """Stripe-Signature header for a payload, using the test webhook secret."""
    def _sign(payload, secret=None, timestamp=None):
        secret = secret or app.config['STRIPE_WEBHOOK_SECRET']
        timestamp = timestamp or int(time.time())
        signed = f'{timestamp}.{payload}'.encode('utf-8')
        signature = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
        return f't={timestamp},v1={signature}'
    return _sign
