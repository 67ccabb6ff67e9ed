# backend/hms/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logger = logging.getLogger("hms")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Authorization and billing engines shared by every request
    from .services.permission_cache import build_permission_cache
    from .services.authorization_service import AuthorizationEngine
    from .services.billing_service import BillingEngine

    app.extensions["hms.authorization"] = AuthorizationEngine(
        build_permission_cache(app.config),
        ttl=int(app.config["PERMISSION_CACHE_TTL_SECONDS"]),
    )
    app.extensions["hms.billing"] = BillingEngine()

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
