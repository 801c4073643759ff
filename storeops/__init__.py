"""
Store Operations Platform
Flask Application Factory.

Usage:
    from storeops import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from storeops.config import config
from storeops.core.exceptions import ServiceError
from storeops.models import db
from storeops.middleware.logging_config import configure_logging
from storeops.middleware.timing import init_request_timing
from storeops.middleware.rate_limiter import init_rate_limits
from storeops.middleware.jwt_auth import init_jwt_middleware

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
    default_limits=[],                     # no global limit — apply per-blueprint
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
    # Instantiated so ProductionConfig can refuse to start without its env vars
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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (resolves g.user_id from the bearer token) ───
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from storeops.models import profile as _profile_models        # noqa: F401
    from storeops.models import rbac as _rbac_models              # noqa: F401
    from storeops.models import workflow as _workflow_models      # noqa: F401
    from storeops.models import store as _store_models            # noqa: F401
    from storeops.models import staff as _staff_models            # noqa: F401
    from storeops.models import campaign as _campaign_models      # noqa: F401
    from storeops.models import inspection as _inspection_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from storeops.blueprints.workflow_bp import workflow_bp
    from storeops.blueprints.user_bp import user_bp
    from storeops.blueprints.rbac_bp import rbac_bp
    from storeops.blueprints.store_bp import store_bp
    from storeops.blueprints.employee_bp import employee_bp
    from storeops.blueprints.bonus_bp import bonus_bp
    from storeops.blueprints.monthly_status_bp import monthly_status_bp
    from storeops.blueprints.import_bp import import_bp
    from storeops.blueprints.export_bp import export_bp
    from storeops.blueprints.campaign_bp import campaign_bp
    from storeops.blueprints.inspection_bp import inspection_bp

    app.register_blueprint(workflow_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(rbac_bp)
    app.register_blueprint(store_bp)
    app.register_blueprint(employee_bp)
    app.register_blueprint(bonus_bp)
    app.register_blueprint(monthly_status_bp)
    app.register_blueprint(import_bp)
    app.register_blueprint(export_bp)
    app.register_blueprint(campaign_bp)
    app.register_blueprint(inspection_bp)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    @limiter.exempt
    def health():
        return {"status": "ok"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(ServiceError)
    def service_error(e):
        db.session.rollback()
        if e.status_code >= 500:
            logger.error("Service error on %s: %s", request.path, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return jsonify({"success": False, "error": "找不到資源", "path": request.path}), 404
        return e

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "不支援的請求方法"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({
            "success": False, "error": "請求過於頻繁", "retry_after": e.description,
        }), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s: %s", request.path, e, exc_info=True)
        if request.path.startswith("/api/"):
            return jsonify({"success": False, "error": "伺服器錯誤"}), 500
        return "<h1>500 — Internal Server Error</h1>", 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
