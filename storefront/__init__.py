"""Flask application factory."""
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from storefront.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Initialize Redis Cache
    from storefront.services.cache_service import init_cache
    init_cache(app)

    # Setup Prometheus metrics instrumentation
    from storefront.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,      # Trust X-Forwarded-For with 1 proxy
            x_proto=1,    # Trust X-Forwarded-Proto
            x_host=1,     # Trust X-Forwarded-Host
            x_port=1,     # Trust X-Forwarded-Port
            x_prefix=0
        )

    # Initialize database
    init_db(app)

    # Error Handlers
    from storefront.exceptions import StorefrontError

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"StorefrontError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"StorefrontError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'error': 'Route not found'}), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'error': error.description}), error.code

        app.logger.exception(f"Unhandled Exception: {error}")

        body = {'error': 'Internal server error'}
        if app.config.get('DEBUG') and app.config.get('ENV') != 'production':
            body['detail'] = str(error)
        return jsonify(body), 500

    # Register blueprints
    from storefront.blueprints.main import main_bp
    from storefront.blueprints.specials import specials_bp
    from storefront.blueprints.checkout import checkout_bp
    from storefront.blueprints.orders import orders_bp
    from storefront.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(specials_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from storefront.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
