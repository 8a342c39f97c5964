"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect
from werkzeug.exceptions import HTTPException
from crm.database import init_db
import logging
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    if not app.debug and not app.testing:
        logging.basicConfig(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
        )

    # CSRF protection (JSON clients send X-CSRFToken)
    CSRFProtect(app)

    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired. Reload the page.'}), 400

    # Sentry error tracking in production
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (product seeds, company settings)
    from crm.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from crm.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Load user and tenant context before each request
    from crm.middleware import load_user_and_tenant

    @app.before_request
    def before_request_handler():
        load_user_and_tenant()

    # Error Handlers
    from crm.exceptions import CrmError

    @app.errorhandler(CrmError)
    def handle_crm_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"CrmError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"CrmError [{error.status_code}] on {request.path}: {error.message}")
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
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.description}), error.code
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from crm.blueprints.auth import auth_bp
    from crm.blueprints.quotes import quotes_bp
    from crm.blueprints.quote_lines import quote_lines_bp
    from crm.blueprints.products import products_bp
    from crm.blueprints.settings import settings_bp
    from crm.blueprints.metadata import metadata_bp
    from crm.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(quotes_bp)
    app.register_blueprint(quote_lines_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(metadata_bp)
    app.register_blueprint(metrics_bp)

    # CLI commands
    from crm.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
