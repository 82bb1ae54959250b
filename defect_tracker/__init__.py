"""
Defect Tracker
Flask Application Factory.

Usage:
    from defect_tracker import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from defect_tracker.config import config
from defect_tracker.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from defect_tracker.middleware.jwt_auth import init_jwt_middleware
from defect_tracker.middleware.logging_config import configure_logging
from defect_tracker.middleware.rate_limiter import init_rate_limits
from defect_tracker.middleware.timing import init_request_timing
from defect_tracker.models import db
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    os.makedirs(app.config["UPLOAD_ROOT"], exist_ok=True)

    # ── Request timing + JWT identity ────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from defect_tracker.models import auth as _auth_models        # noqa: F401
    from defect_tracker.models import project as _project_models  # noqa: F401
    from defect_tracker.models import defect as _defect_models    # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from defect_tracker.blueprints.admin_bp import admin_bp
    from defect_tracker.blueprints.auth_bp import auth_bp
    from defect_tracker.blueprints.defect_bp import defect_bp
    from defect_tracker.blueprints.health_bp import health_bp
    from defect_tracker.blueprints.home_bp import home_bp
    from defect_tracker.blueprints.project_bp import project_bp
    from defect_tracker.blueprints.report_bp import report_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(home_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(defect_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(health_bp)

    # ── Schema + seed ────────────────────────────────────────────────────
    if not app.config.get("TESTING"):
        with app.app_context():
            db.create_all()
            if app.config.get("SEED_ON_STARTUP"):
                from defect_tracker.services.seed_service import seed_all
                seed_all()

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed")
    def seed_cmd():
        """Create the built-in roles and the default admin account."""
        from defect_tracker.services.seed_service import seed_all
        db.create_all()
        result = seed_all()
        click.echo(
            f"Seeded {result['roles_created']} role(s); admin: {result['admin_email']}"
        )

    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_error_handlers(app):
    """Map service exceptions and HTTP errors to the JSON error body."""

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        db.session.rollback()
        return api_error(E.NOT_FOUND, f"{e.resource} not found")

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        db.session.rollback()
        return api_error(E.CONFLICT_STATE, str(e), details=e.details)

    @app.errorhandler(AuthenticationError)
    def handle_unauthenticated(e):
        return api_error(E.UNAUTHORIZED, str(e))

    @app.errorhandler(PermissionDeniedError)
    def handle_forbidden(e):
        db.session.rollback()
        return api_error(E.FORBIDDEN, str(e))

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests",
                         details={"retry_after": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        original = getattr(e, "original_exception", None) or e
        logger.error("500 error: %s", original, exc_info=original)
        db.session.rollback()
        return api_error(E.INTERNAL, "Internal server error")
