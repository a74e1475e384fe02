"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from sjfulfillment.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection for session-authenticated routes
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'The session has expired. Reload and try again.'}), 400

    # Error tracking in production only
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for the external inventory listing
    from sjfulfillment.services.cache_service import init_cache
    init_cache(app)

    # Prometheus request instrumentation
    from sjfulfillment.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust X-Forwarded-* from the reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    from sjfulfillment.middleware import load_user

    @app.before_request
    def before_request_handler():
        """Load the session user and merchant scope for each request."""
        load_user()

    # Error Handlers
    from sjfulfillment.exceptions import FulfillmentError

    @app.errorhandler(FulfillmentError)
    def handle_fulfillment_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"FulfillmentError [{error.status_code}]: {error.message}")
            return jsonify({'status': 'error', 'message': error.message}), error.status_code
        app.logger.warning(f"FulfillmentError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from sjfulfillment.blueprints.stock import stock_bp
    from sjfulfillment.blueprints.products import products_bp
    from sjfulfillment.blueprints.admin import admin_bp
    from sjfulfillment.blueprints.metrics import metrics_bp
    from sjfulfillment.blueprints.external import external_bp

    app.register_blueprint(stock_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(metrics_bp)

    # API-key routes carry no session cookie, so no CSRF token either
    csrf.exempt(external_bp)
    app.register_blueprint(external_bp)

    from sjfulfillment.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"Stock ledger started (cache={'on' if app.config.get('CACHE_ENABLED') else 'off'})")

    return app
