# backend/fieldledger/__init__.py
import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.routing import IntegerConverter

from .config import Config
from .errors import LedgerError
from .extensions import db, migrate
from .schemas import MAX_DB_INT


class BoundedIntConverter(IntegerConverter):
    """`<int:...>` segments that fit a database id; larger values do not match the route."""

    def __init__(self, map, *args, **kwargs):
        kwargs.setdefault("max", MAX_DB_INT)
        super().__init__(map, *args, **kwargs)


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger("fieldledger").setLevel(level)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


def _configure_engine(app: Flask) -> None:
    # In-memory SQLite runs on a StaticPool, which has no checkout timeout
    uri = str(app.config.get("SQLALCHEMY_DATABASE_URI") or "")
    timeout = app.config.get("LEDGER_POOL_TIMEOUT")
    if not timeout or ":memory:" in uri or uri.rstrip("/") == "sqlite:":
        return
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    options.setdefault("pool_timeout", timeout)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        if exc.public:
            app.logger.info("%s: %s", exc.code, exc.message)
        else:
            app.logger.error("%s: %s %s", exc.code, exc.message, exc.details)
        return jsonify({"error": exc.to_dict()}), exc.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": {"code": exc.name.lower().replace(" ", "_"), "message": exc.description, "details": {}}}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": {"code": "internal_error", "message": "Internal server error", "details": {}}}), 500


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)
    _configure_engine(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    app.url_map.converters["int"] = BoundedIntConverter

    # Register blueprints
    from .routes.system import system_bp
    from .routes.recoveries import recoveries_bp
    from .routes.distributions import distributions_bp
    from .routes.assignments import assignments_bp
    from .routes.receipts import receipts_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(recoveries_bp)
    app.register_blueprint(distributions_bp)
    app.register_blueprint(assignments_bp)
    app.register_blueprint(receipts_bp)
    app.register_blueprint(sales_bp)

    _register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
