import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, request, session
from flask_cors import CORS

from app.halfride.auth import bp as auth_bp, load_current_user
from app.halfride.config import load_config
from app.halfride.db import init_db, teardown_db_session
from app.halfride.errors import register_error_handlers
from app.halfride.maps_client import maps_client_from_config
from app.halfride.modules.airports.api import bp as airports_bp
from app.halfride.modules.chat.api import bp as chat_bp
from app.halfride.modules.flights.api import bp as flights_bp
from app.halfride.modules.flights.flightstats_client import flight_client_from_config
from app.halfride.modules.groups.api import bp as groups_bp
from app.halfride.modules.notifications.api import bp as notifications_bp
from app.halfride.modules.travellers.api import bp as travellers_bp
from app.halfride.modules.users.api import bp as users_bp
from app.halfride.routes import bp as routes_bp
from app.halfride.storage import init_storage


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=30)
    app.json.sort_keys = False

    origins = app.config.get("CORS_ORIGINS") or []
    if origins:
        CORS(app, resources={r"/api/*": {"origins": origins}}, supports_credentials=True)

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

    if hasattr(os, "register_at_fork"):

        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
    init_storage(app)

    app.extensions["flight_client"] = flight_client_from_config(app.config)
    app.extensions["maps_client"] = maps_client_from_config(app.config)
    if app.extensions["maps_client"] is None:
        app.logger.warning("GOOGLE_MAPS_API_KEY not set; road-distance checks are disabled.")

    register_error_handlers(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    for bp in (users_bp, airports_bp, flights_bp, travellers_bp, groups_bp, chat_bp, notifications_bp):
        app.register_blueprint(bp, url_prefix="/api")

    @app.before_request
    def _load_user():
        if request.path.startswith("/api/"):
            session.permanent = True
        return load_current_user()

    app.teardown_appcontext(teardown_db_session)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")
    return app
