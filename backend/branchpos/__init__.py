# backend/branchpos/__init__.py
import logging

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import PosError
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # SQLite: writers queue on the database lock instead of failing fast
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        connect_args = dict(engine_options.get("connect_args") or {})
        connect_args.setdefault("timeout", app.config["SQLITE_BUSY_TIMEOUT_SECONDS"])
        engine_options["connect_args"] = connect_args
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("branchpos").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.branches import branches_bp, users_bp
    from .routes.products import products_bp, categories_bp, addons_bp
    from .routes.customers import customers_bp
    from .routes.shifts import shifts_bp
    from .routes.inventory import inventory_bp
    from .routes.transactions import transactions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(branches_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(addons_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(transactions_bp)

    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """
    Render every failure as {"error": {"kind", "message", "details"}}.

    Domain errors carry their own kind/status. Storage errors abort the unit
    of work (rolled back here) and surface as StorageFailure.
    """

    @app.errorhandler(PosError)
    def handle_pos_error(exc: PosError):
        db.session.rollback()
        return {"error": exc.to_dict()}, exc.http_status

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(exc: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Storage failure")
        return {
            "error": {
                "kind": "StorageFailure",
                "message": "The operation could not be committed",
                "details": {"reason": exc.__class__.__name__},
            }
        }, 503

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        kind = "NotFound" if exc.code == 404 else "InvalidInput"
        return {"error": {"kind": kind, "message": exc.description or exc.name, "details": {}}}, exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return {"error": {"kind": "InternalError", "message": "Internal server error", "details": {}}}, 500
