"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and order/promo/webhook counters.
This endpoint should be restricted to internal network or monitoring systems only.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# Domain metrics
orders_created_total = Counter(
    'orders_created_total',
    'Orders persisted, by origin (checkout, webhook, direct)',
    ['source'],
    registry=_metric_registry
)

promo_validations_total = Counter(
    'promo_validations_total',
    'Promo code validations, by outcome',
    ['result'],
    registry=_metric_registry
)

webhook_events_total = Counter(
    'webhook_events_total',
    'Verified Stripe webhook events received',
    ['event_type'],
    registry=_metric_registry
)

KNOWN_WEBHOOK_EVENTS = frozenset({
    'checkout.session.completed',
    'payment_intent.succeeded',
    'payment_intent.payment_failed',
})


def record_order_created(source: str) -> None:
    orders_created_total.labels(source=source).inc()


def record_promo_validation(valid: bool) -> None:
    promo_validations_total.labels(result='valid' if valid else 'invalid').inc()


def record_webhook_event(event_type: str) -> None:
    # Unknown types share one label to bound cardinality
    label = event_type if event_type in KNOWN_WEBHOOK_EVENTS else 'other'
    webhook_events_total.labels(event_type=label).inc()


def setup_metrics_instrumentation(app):
    """
    Setup before_request and after_request hooks for automatic metrics collection.

    This should be called from app factory after app creation.
    """

    @app.before_request
    def before_request_metrics():
        """Record request start time and increment in-flight counter."""
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        """Record request metrics after response is ready."""
        try:
            if hasattr(g, '_prometheus_metrics_start_time'):
                duration = time.time() - g._prometheus_metrics_start_time

                endpoint = request.endpoint or 'unknown'
                method = request.method

                http_request_duration_seconds.labels(
                    method=method,
                    endpoint=endpoint
                ).observe(duration)

                http_requests_total.labels(
                    method=method,
                    endpoint=endpoint,
                    http_status=response.status_code
                ).inc()

                http_requests_in_flight.dec()
        except Exception as e:
            # Don't break request flow if metrics fail
            app.logger.warning(f"Failed to record metrics: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint.

    SECURITY NOTE: not authenticated; restrict by network rules in production.
    """
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
