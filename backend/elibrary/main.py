import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_login import LoginManager

# Load environment variables conditionally
# Only load from .env when DATABASE_URL is not already defined by the environment
if not os.getenv("DATABASE_URL"):
    load_dotenv()

logger = logging.getLogger(__name__)


def _init_sentry(env: str) -> None:
    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        logger.info(
            "Sentry not initialized (SENTRY_DSN not set)",
            extra={"context": {"environment": env}},
        )
        return

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=env,
        release=os.getenv("GIT_SHA", "unknown"),
        integrations=[FlaskIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=0.1,
        send_default_pii=False,  # receipts and emails stay out of Sentry
    )
    logger.info(
        "Sentry initialized",
        extra={"context": {"environment": env, "traces_sample_rate": 0.1}},
    )


def _init_metrics(app: Flask, env: str) -> None:
    from prometheus_flask_exporter import PrometheusMetrics

    metrics = PrometheusMetrics(app)
    try:
        metrics.info(
            "app_info",
            "Application information",
            version=os.getenv("GIT_SHA", "unknown"),
            environment=env,
        )
    except ValueError as e:
        # Metric already registered (create_app called more than once)
        logger.debug(
            "app_info metric already registered",
            extra={"context": {"error": str(e)}},
        )
    logger.info(
        "Prometheus metrics initialized",
        extra={"context": {"metrics_endpoint": "/metrics"}},
    )


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({"error": "Unauthorized"}), 401

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def ratelimit_error(error):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(
            "Unhandled server error",
            extra={"context": {"error": str(error)}},
        )
        return jsonify({"error": "Internal server error"}), 500


def create_app():
    from elibrary.core.config import (
        get_environment,
        get_secret_key,
        is_test_mode,
        is_truthy,
        log_purchase_config,
        validate_production_secrets,
    )
    from elibrary.core.logging_config import setup_logging

    env = get_environment()
    is_production = env == "production"

    app = Flask(__name__)
    if is_test_mode():
        app.config["TESTING"] = True

    setup_logging(
        app=app,
        log_level=logging.INFO if is_production else logging.DEBUG,
        enable_sql_echo=not is_production and not app.config.get("TESTING"),
        # log_to_file controlled by LOG_TO_FILE env var (1=files, 0=stdout only)
        use_json_format=is_production,
    )
    logger.info(
        "Logging configured",
        extra={"context": {"environment": env, "json_format": is_production}},
    )

    log_purchase_config()
    _init_sentry(env)

    # Prometheus registers process-global collectors; skip under pytest where
    # create_app runs once per test
    if not app.config.get("TESTING"):
        _init_metrics(app, env)

    app.config["SECRET_KEY"] = get_secret_key()
    validate_production_secrets()

    from elibrary.core.limiter_config import limiter

    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("LIMITER_STORAGE_URI", "memory://")
    limiter.init_app(app)

    if app.config.get("TESTING") and os.getenv("RATE_LIMIT_ENABLED", "1") == "0":
        limiter.enabled = False
        logger.info(
            "Rate limiting disabled for testing", extra={"context": {"test_mode": True}}
        )

    app.config.setdefault("SESSION_COOKIE_SECURE", is_production)
    app.config.setdefault("SESSION_COOKIE_HTTPONLY", True)
    app.config.setdefault("SESSION_COOKIE_SAMESITE", "Lax")

    if is_production:
        from flask_talisman import Talisman

        # JSON API: no scripts, frames or inline content to allow
        Talisman(
            app,
            content_security_policy={"default-src": ["'none'"]},
            force_https=is_truthy(os.getenv("FORCE_HTTPS", "true")),
            strict_transport_security=True,
            strict_transport_security_max_age=63072000,
            strict_transport_security_include_subdomains=True,
            frame_options="DENY",
            referrer_policy="no-referrer",
        )

    try:
        from elibrary.db.session import create_tables, get_engine

        create_tables()
        logger.info(
            "Database ready",
            extra={"context": {"driver": get_engine().dialect.name}},
        )
    except Exception as e:
        logger.warning(
            "Failed to auto-create tables",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.unauthorized_handler
    def unauthorized():
        return (
            jsonify({"error": "Unauthorized", "message": "Authentication required"}),
            401,
        )

    @login_manager.request_loader
    def load_user_from_request(request):
        """Load the user from an Authorization: Bearer <jwt> header."""
        from elibrary.core.auth_decorators import load_user_from_token
        from elibrary.core.security import extract_bearer_token

        token = extract_bearer_token(request.headers.get("Authorization"))
        return load_user_from_token(token)

    _register_error_handlers(app)

    from elibrary.controllers.health_controller import health_bp
    from elibrary.controllers.iap_controller import iap_bp
    from elibrary.controllers.library_controller import library_bp

    # Monitoring probes are never rate limited
    limiter.exempt(health_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(iap_bp)
    app.register_blueprint(library_bp)

    logger.info(
        "Application created",
        extra={"context": {"environment": env, "blueprints": list(app.blueprints)}},
    )
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
