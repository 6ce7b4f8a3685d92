"""Main blueprint with API info and health check endpoints."""
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from storefront.database import check_connection

main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    """API info."""
    return jsonify({
        'message': 'Storefront Orders API',
        'version': '1.0.0',
        'endpoints': {
            'health': '/api/health',
            'specials': '/api/specials',
            'checkout': '/api/checkout',
            'orders': '/api/orders',
        }
    })


@main_bp.route('/api/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        503: Unhealthy (DB unreachable)
    """
    database_ok = check_connection()
    body = {
        'status': 'OK' if database_ok else 'ERROR',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'environment': current_app.config.get('ENV'),
        'database': 'connected' if database_ok else 'disconnected',
    }
    if not database_ok:
        current_app.logger.error("Health check failed: database unreachable")
        return jsonify(body), 503
    return jsonify(body), 200
