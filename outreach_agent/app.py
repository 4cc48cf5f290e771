"""
Flask application factory for the outreach agent.
Sets up configuration, database, CORS, and registers blueprints.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

# Re-export db for scripts that import from outreach_agent.app
from outreach_agent.extensions import db


def _resolve_database_uri() -> str:
    """Resolve SQLAlchemy database URI from environment.

    `DATABASE_URL` wins when set (production postgres); otherwise the sqlite
    development database from `DATABASE_DEV`. Relative sqlite paths resolve
    inside the Flask instance folder.
    """
    uri = os.getenv("DATABASE_URL")
    if uri:
        return uri
    # default sqlite dev path
    return os.getenv("DATABASE_DEV") or "sqlite:///outreach.db"


def _ensure_instance_dir(app: Flask) -> None:
    """Ensure the Flask instance directory exists (for SQLite and local storage)."""
    try:
        Path(app.instance_path).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # Non-fatal; sqlite will report the real problem on first use
        logging.getLogger(__name__).warning(
            f"Could not create instance dir {app.instance_path}: {e}"
        )


def _configure_logging(app: Flask) -> None:
    """Info level logging to stderr plus a rotating file, unless already configured."""
    root = logging.getLogger()
    if not root.handlers:
        root.setLevel(logging.INFO)
        formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        # Stream handler
        sh = logging.StreamHandler()
        sh.setLevel(logging.INFO)
        sh.setFormatter(formatter)
        root.addHandler(sh)
        # Rotating file handler
        log_path = os.getenv("OUTREACH_LOG", "outreach_agent.log")
        try:
            fh = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=2)
            fh.setLevel(logging.INFO)
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError as e:
            root.warning(f"File logging disabled ({log_path}): {e}")

    # Ensure info-level logging even when handlers already exist (e.g., Flask debug server)
    root.setLevel(logging.INFO)
    app.logger.setLevel(logging.INFO)


def create_app(config_overrides: dict = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config_overrides: Values applied on top of the defaults (tests pass
            an isolated database URI or a prebuilt ``RESUME_RAG_SERVICE``).
    """
    # Load .env for development convenience
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Base config
    app.config.update(config_overrides or {})
    app.config.setdefault("SQLALCHEMY_DATABASE_URI", _resolve_database_uri())
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    app.config.setdefault("JSON_SORT_KEYS", False)

    # Optional: Secret key for sessions (not critical for API-only)
    app.config.setdefault("SECRET_KEY", os.getenv("SECRET_KEY", "dev-secret-key"))

    # Ensure instance dir exists (for sqlite file path and chroma default directory)
    _ensure_instance_dir(app)

    # Initialize extensions
    db.init_app(app)
    with app.app_context():
        from outreach_agent import models  # noqa: F401  (register tables)

        db.create_all()

    # Enable CORS (allow frontend dev server)
    origins = os.getenv("CORS_ORIGINS")
    CORS(
        app,
        resources={
            r"/api/*": {
                "origins": origins.split(",")
                if origins
                else [
                    "http://localhost:3000",
                    "http://127.0.0.1:3000",
                    "http://localhost:3001",
                ]
            }
        },
        supports_credentials=True,
    )

    # Register API blueprint
    from outreach_agent.blueprints.api import api_bp

    app.register_blueprint(api_bp)

    _configure_logging(app)

    return app
