"""
Bug Tracker
Flask Application Factory.

Usage:
    from bugtracker import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from bugtracker.config import config
from bugtracker.models import db
from bugtracker.middleware.logging_config import configure_logging
from bugtracker.middleware.rate_limiter import init_rate_limits
from bugtracker.middleware.timing import init_request_timing
from bugtracker.services.relationship_types import build_registry

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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
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
    app.config.from_object(config[config_name])

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

    # ── Relationship type registry (immutable after startup) ─────────────
    app.extensions["relationship_types"] = build_registry(
        app.config.get("CUSTOM_RELATIONSHIP_TYPES"),
    )

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from bugtracker.models import bug as _bug_models                  # noqa: F401
    from bugtracker.models import relationship as _relationship_models  # noqa: F401
    from bugtracker.models import history as _history_models          # noqa: F401
    from bugtracker.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables for SQLite development / tests ────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        if ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from bugtracker.blueprints.bug_bp import bug_bp
    from bugtracker.blueprints.relationship_bp import relationship_bp
    from bugtracker.blueprints.notification_bp import notification_bp
    from bugtracker.blueprints.health_bp import health_bp

    app.register_blueprint(bug_bp)
    app.register_blueprint(relationship_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Create a demo project with a small parent/child bug graph."""
        from bugtracker.services.demo_data import seed_demo
        project = seed_demo()
        db.session.commit()
        logger.info("Seeded demo project id=%s.", project.id)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
