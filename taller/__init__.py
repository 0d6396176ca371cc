"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException
from taller.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection for form posts; the JSON blueprints are exempt below
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'success': False, 'error': 'La sesión ha expirado. Recarga la página.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from taller.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,
            x_proto=1,
            x_host=1,
            x_port=1,
            x_prefix=0
        )

    # Initialize database
    init_db(app)

    # Error Handlers
    from taller.exceptions import WorkshopError

    @app.errorhandler(WorkshopError)
    def handle_workshop_error(error):
        """Domain errors carry their own HTTP status."""
        if error.status_code >= 500:
            app.logger.error(f"WorkshopError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"WorkshopError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'error': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception on {request.path}: {error}")
        return jsonify({'success': False, 'error': 'Error interno del servidor'}), 500

    # Register blueprints
    from taller.blueprints.orders import orders_bp
    from taller.blueprints.whatsapp import whatsapp_bp
    from taller.blueprints.metrics import metrics_bp
    from taller.blueprints.webhooks import webhooks_bp

    app.register_blueprint(metrics_bp)

    # JSON API and Twilio callbacks carry no form token
    csrf.exempt(orders_bp)
    csrf.exempt(whatsapp_bp)
    csrf.exempt(webhooks_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(whatsapp_bp)
    app.register_blueprint(webhooks_bp)

    # Register CLI commands
    from taller.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
