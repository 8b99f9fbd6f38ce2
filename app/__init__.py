"""
Elevator Workspace
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
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

from app.config import config
from app.core.exceptions import (
    AlreadyAssignedError,
    AlreadyMemberError,
    AuthError,
    ConflictError,
    InvalidTransitionError,
    NetworkError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.timing import init_request_timing
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.security_headers import init_security_headers
from app.repositories import init_backend
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


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
    default_limits=[],                     # limits are applied per endpoint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _register_error_handlers(app):
    """Map domain exceptions raised by the services to JSON error responses."""

    @app.errorhandler(AuthError)
    def _auth_error(e):
        return api_error(E.UNAUTHORIZED, str(e))

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(PermissionDenied)
    def _permission_denied(e):
        return api_error(E.FORBIDDEN, str(e), details={"required": e.capability})

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(AlreadyMemberError)
    def _already_member(e):
        return api_error(E.ALREADY_MEMBER, str(e), details={"role": e.existing_role})

    @app.errorhandler(AlreadyAssignedError)
    def _already_assigned(e):
        return api_error(E.ALREADY_ASSIGNED, str(e), details={"assigned_to_user_id": e.assignee_id})

    @app.errorhandler(ConflictError)
    def _conflict(e):
        return api_error(E.CONFLICT_DUPLICATE, str(e))

    @app.errorhandler(InvalidTransitionError)
    def _invalid_transition(e):
        return api_error(E.CONFLICT_STATE, str(e), details={"from": e.current_status, "to": e.target})

    @app.errorhandler(NetworkError)
    def _backend_unavailable(e):
        return api_error(E.BACKEND_UNAVAILABLE, "Backend temporarily unavailable, please retry")

    @app.errorhandler(404)
    def _route_not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None, backend=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        backend: Optional Backend bundle replacing the SQL repositories
                 (tests use this to inject failures).

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

    init_backend(app, backend)

    from app.services.refresh import init_refresher
    init_refresher(app)

    # ── Request timing + JWT context ─────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_security_headers(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)  # 1 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import auth as _auth_models          # noqa: F401
    from app.models import project as _project_models    # noqa: F401
    from app.models import task as _task_models          # noqa: F401
    from app.models import support as _support_models    # noqa: F401
    from app.models import audit as _audit_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS; migrations own alterations) ──
    os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.auth_bp import auth_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.project_bp import project_bp
    from app.blueprints.task_bp import task_bp
    from app.blueprints.support_bp import support_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(support_bp)

    _register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-departments")
    def seed_departments_cmd():
        """Create the default support departments."""
        from app.services.ticket_service import seed_departments
        count = seed_departments()
        click.echo(f"Seeded {count} new departments.")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
