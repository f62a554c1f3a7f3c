"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from opsconsole.database import init_db
import logging
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Sentry error tracking in production
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from opsconsole.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    # Initialize database
    init_db(app)

    # QuickBooks client construction; tests replace this with a fake
    from opsconsole.services.quickbooks_client import build_quickbooks_client
    app.extensions['quickbooks_client_factory'] = build_quickbooks_client

    # Error Handlers
    from opsconsole.exceptions import OpsError

    @app.errorhandler(OpsError)
    def handle_ops_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"OpsError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"OpsError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.description}), error.code
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from opsconsole.blueprints.quotes import quotes_bp
    from opsconsole.blueprints.alerts import alerts_bp
    from opsconsole.blueprints.quickbooks import quickbooks_bp
    from opsconsole.blueprints.metrics import metrics_bp

    app.register_blueprint(quotes_bp)
    app.register_blueprint(alerts_bp)
    app.register_blueprint(quickbooks_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from opsconsole.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
