"""
Task API server Flask application factory.

Provides ``create_app``, which assembles the configuration, the database,
the default collaborators (local or remote auth, SQL-backed tasks) and the
request pipeline into one Flask application.  Collaborators can be injected
so tests stand up fully independent instances.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

from .config import get_config, load_auth_keys

# Shared SQLAlchemy instance -- bound to a concrete app inside create_app()
db = SQLAlchemy()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _ensure_sqlite_db_parent_exists(database_uri: str) -> None:
    """Create parent directories for file-based SQLite URIs when missing."""
    sqlite_prefix = "sqlite:///"
    if not database_uri.startswith(sqlite_prefix):
        return

    sqlite_path = database_uri[len(sqlite_prefix) :].split("?", 1)[0]
    if sqlite_path == ":memory:":
        return

    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)


def create_app(config_name: str | None = None, *, auth_service=None, task_service=None) -> Flask:
    """
    Create and configure the API server application.

    Args:
        config_name: Configuration environment name (``"development"``,
            ``"testing"``, ``"production"``).  When ``None``, the
            ``FLASK_ENV`` environment variable is used.
        auth_service: Auth collaborator to use instead of the configured
            default (local user store, or the remote service at
            ``AUTH_SERVICE_URL``).
        task_service: Task collaborator to use instead of the SQL-backed one.

    Returns:
        A configured Flask application whose every request runs through the
        request pipeline.
    """
    # Imported here: these modules need ``db`` from this package.
    from .dependencies import EXTENSION_KEY, build_dependencies
    from .routes import build_mounts
    from .services import Services
    from .services.auth import LocalAuthService, RemoteAuthService
    from .services.tasks import SqlTaskService
    from .views import pipeline_bp

    app = Flask(__name__, static_folder=None)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    # Werkzeug refuses longer bodies while reading the stream.
    app.config["MAX_CONTENT_LENGTH"] = app.config["MAX_JSON_BODY_BYTES"]
    logger.info("Creating API server app with config: %s", config_class.__name__)

    _ensure_sqlite_db_parent_exists(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
    db.init_app(app)

    if auth_service is None:
        if app.config.get("AUTH_SERVICE_URL"):
            auth_service = RemoteAuthService(
                app.config["AUTH_SERVICE_URL"],
                timeout=app.config["AUTH_SERVICE_TIMEOUT"],
            )
            logger.info("Using remote auth service at %s", app.config["AUTH_SERVICE_URL"])
        else:
            private_key, public_key = load_auth_keys(testing=bool(app.config.get("TESTING")))
            auth_service = LocalAuthService(
                private_key,
                public_key,
                expiry_hours=app.config["JWT_EXPIRY_HOURS"],
                leeway=app.config["JWT_CLOCK_SKEW_SECONDS"],
            )

    services = Services(auth=auth_service, tasks=task_service or SqlTaskService())
    app.extensions[EXTENSION_KEY] = build_dependencies(
        settings=dict(app.config),
        services=services,
        mounts=build_mounts(),
    )
    app.register_blueprint(pipeline_bp)

    with app.app_context():
        db.create_all()
        logger.info("Database tables created")

    return app
