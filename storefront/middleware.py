"""Request guards for staff and customer API routes."""
import hmac
import logging
from functools import wraps

from flask import current_app, g, request

from storefront.exceptions import UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)


def require_staff(f):
    """
    Decorator: Require a staff bearer token.

    The token is issued by the auth service and compared in constant time
    with STAFF_API_TOKEN. Raises UnauthorizedError (401) otherwise.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('STAFF_API_TOKEN')
        header = request.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')

        if not expected:
            logger.error("[AUTH] STAFF_API_TOKEN is not configured, rejecting staff request")
            raise UnauthorizedError('Staff access is not configured')

        if scheme.lower() != 'bearer' or not token or not hmac.compare_digest(token.strip(), expected):
            logger.warning(f"[AUTH] Rejected staff request to {request.path}")
            raise UnauthorizedError('Staff authentication required')

        g.is_staff = True
        return f(*args, **kwargs)

    return decorated_function


def require_customer(f):
    """
    Decorator: Require an authenticated customer.

    The upstream auth layer forwards the customer id in X-Customer-Id;
    it is exposed as g.customer_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = request.headers.get('X-Customer-Id', '').strip()
        if not raw_id:
            raise UnauthorizedError('Customer authentication required')
        try:
            g.customer_id = int(raw_id)
        except ValueError:
            raise UnauthorizedError('Customer authentication required')
        return f(*args, **kwargs)

    return decorated_function


def get_json_body() -> dict:
    """Parsed JSON object body or ValidationError."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data
