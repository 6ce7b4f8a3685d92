"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Preferred URL scheme (for url_for with _external=True)
    PREFERRED_URL_SCHEME = os.getenv('PREFERRED_URL_SCHEME', 'http')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'storefront')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'postgres')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', '')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Stripe Checkout
    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET')
    STRIPE_TIMEOUT_SECONDS = int(os.getenv('STRIPE_TIMEOUT_SECONDS', '10'))
    STRIPE_MAX_NETWORK_RETRIES = int(os.getenv('STRIPE_MAX_NETWORK_RETRIES', '2'))
    STRIPE_WEBHOOK_TOLERANCE = int(os.getenv('STRIPE_WEBHOOK_TOLERANCE', '300'))  # seconds

    # Storefront (redirect targets after hosted checkout)
    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:5173')

    # Pricing
    CURRENCY = os.getenv('CURRENCY', 'usd')
    TAX_RATE = os.getenv('TAX_RATE', '0.085')
    DELIVERY_FEE_CENTS = int(os.getenv('DELIVERY_FEE_CENTS', '500'))  # $5.00
    ORDER_NUMBER_PREFIX = os.getenv('ORDER_NUMBER_PREFIX', 'LT')

    # Order workflow: enforce the forward-only transition table when true
    ORDER_STRICT_TRANSITIONS = os.getenv('ORDER_STRICT_TRANSITIONS', 'false').lower() == 'true'

    # Staff API access (tokens are issued by the auth service)
    STAFF_API_TOKEN = os.getenv('STAFF_API_TOKEN')

    # Redis Cache Configuration
    # Shared cache layer for staff order listings
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_ORDERS_TTL = int(os.getenv('CACHE_ORDERS_TTL', '30'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'storefront')


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    SQLALCHEMY_ECHO = False

    STRIPE_SECRET_KEY = 'sk_test_dummy'
    STRIPE_WEBHOOK_SECRET = 'whsec_test_secret'
    FRONTEND_URL = 'shop.example.com/'
    STAFF_API_TOKEN = 'staff-test-token'

    CACHE_ENABLED = False
