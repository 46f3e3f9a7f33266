import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session

from app.champion.api import is_api_request, json_error, register_api_error_handlers
from app.champion.config import load_config
from app.champion.db import init_db, teardown_db_session
from app.champion.auth import api_bp as auth_api_bp, bp as auth_bp, load_current_user
from app.champion.routes import bp as routes_bp
from app.champion.pages import bp as pages_bp
from app.champion.admin import bp as admin_api_bp
from app.champion.modules.achievements.api import bp as achievements_api_bp
from app.champion.modules.notifications.api import bp as notifications_api_bp
from app.champion.modules.rewards.api import bp as rewards_api_bp
from app.champion.modules.sponsors.api import bp as sponsors_api_bp
from app.champion.modules.subscriptions.api import bp as subscriptions_api_bp
from app.champion.modules.support.api import bp as support_api_bp
from app.champion.modules.training.api import bp as training_api_bp
from app.champion.modules.videos.api import bp as videos_api_bp
from app.champion.modules.wearables.api import bp as wearables_api_bp

_API_BLUEPRINTS = (
    auth_api_bp,
    admin_api_bp,
    achievements_api_bp,
    notifications_api_bp,
    rewards_api_bp,
    sponsors_api_bp,
    subscriptions_api_bp,
    support_api_bp,
    training_api_bp,
    videos_api_bp,
    wearables_api_bp,
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # CSRF protection (minimal)
    from app.champion.security import csrf_exempt, ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_user() -> dict:
        return {"current_user": getattr(g, "current_user", None)}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    # Must run before the CSRF guard; anonymous API calls are left to the role guards (401).
    app.before_request(load_current_user)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Allow safe auth endpoints to pass through (login/logout/reset form)
            if (request.endpoint or "").startswith("auth."):
                return None
            if is_api_request() and (csrf_exempt(request) or getattr(g, "current_user", None) is None):
                return None
            if not validate_csrf(request):
                if is_api_request():
                    return json_error("CSRF token missing or invalid.", 400)
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage config check (fail loudly on misconfiguration, no network calls)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [key for key in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(key)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    if not app.config.get("SMTP_SERVER"):
        app.logger.warning("SMTP_SERVER not set; outbound email will be logged as FAILED")

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(pages_bp)
    for api_bp in _API_BLUEPRINTS:
        app.register_blueprint(api_bp, url_prefix="/api")

    app.teardown_appcontext(teardown_db_session)

    register_api_error_handlers(app)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if is_api_request():
            return json_error("Internal server error", 500)
        return render_template("errors/500.html"), 500

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_role", None)
        if missing:
            app.logger.warning("Forbidden: missing_role=%s request_id=%s", missing, getattr(g, "request_id", None))
        if is_api_request():
            return json_error("Forbidden", 403)
        return render_template("errors/403.html", missing_role=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if is_api_request():
            return json_error("Not found", 404)
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        max_mb = int(app.config.get("VIDEO_MAX_BYTES") or 0) // (1024 * 1024)
        return json_error(f"File too large. Maximum size is {max_mb}MB", 413)

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
