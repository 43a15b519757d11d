import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.menfem.config import Settings, load_config
from app.menfem.db import init_db, teardown_db_session
from app.menfem.errors import ForeignKeyViolation, NotFound, StoreError, UniqueConstraintViolation, ValidationError
from app.menfem.models import Base
from app.menfem.routes import bp as routes_bp
from app.menfem.auth import bp as auth_bp, load_current_user
from app.menfem.admin import bp as admin_bp
from app.menfem.modules.content.admin import bp as content_admin_bp
from app.menfem.modules.events.admin import bp as events_admin_bp
from app.menfem.modules.newsletter.admin import bp as newsletter_admin_bp
from app.menfem.modules.membership.admin import bp as membership_admin_bp

ERROR_STATUS: dict[type[StoreError], int] = {
    NotFound: 404,
    ValidationError: 400,
    UniqueConstraintViolation: 409,
    ForeignKeyViolation: 409,
}


def create_app(settings: Settings | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    # Raises ConfigurationError when DATABASE_URL is missing.
    app.config.from_mapping(load_config(settings))
    settings = app.config["SETTINGS"]
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=settings.session_lifetime_days)

    # Production guardrails (fail fast with clear logs)
    if settings.is_production:
        if settings.database_url.startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if settings.secret_key in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    store = init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                store.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(content_admin_bp)
    app.register_blueprint(events_admin_bp)
    app.register_blueprint(newsletter_admin_bp)
    app.register_blueprint(membership_admin_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): detect drift between code expectations and DB schema.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            insp = sa_inspect(store.engine)
            existing = set(insp.get_table_names())
            missing = sorted(t for t in Base.metadata.tables if t not in existing)
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)

        app.config["_schema_health_missing"] = missing
        app.config["_schema_health_ok"] = not missing
        if missing:
            app.logger.warning("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    _run_schema_health_check()

    def _rollback_request_session() -> None:
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()

    @app.errorhandler(StoreError)
    def _err_store(e: StoreError):  # type: ignore[no-redef]
        _rollback_request_session()
        status = ERROR_STATUS.get(type(e), 500)
        if status == 500:
            app.logger.error("Store failure (request_id=%s): %s", getattr(g, "request_id", None), e)
        return jsonify(e.to_dict()), status

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": (e.name or "error").lower().replace(" ", "_"), "message": e.description}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        _rollback_request_session()
        app.logger.exception("Unhandled 500 (request_id=%s path=%s)", getattr(g, "request_id", None), request.path)
        return jsonify({"ok": False, "error": "internal_error", "message": "Internal server error."}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
