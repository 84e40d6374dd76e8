# backend/saripos/__init__.py
from __future__ import annotations

from flask import Flask, jsonify, request

from .config import Config
from .errors import ConnectionUnavailableError, PosError, StorageError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None, config_class: type = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    # Keep the pool-of-one options per app and in sync with the timeout setting
    engine_options = dict(app.config["SQLALCHEMY_ENGINE_OPTIONS"])
    engine_options["pool_timeout"] = app.config["DB_POOL_TIMEOUT_SECONDS"]
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.connection_service import ConnectionManager
    from .services.settings_service import SettingsWriteLock

    ConnectionManager(app)
    SettingsWriteLock(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.batches import batches_bp
    from .routes.sales import sales_bp
    from .routes.settings import settings_bp
    from .routes.history import history_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(batches_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(history_bp)

    @app.errorhandler(PosError)
    def handle_pos_error(exc: PosError):
        if isinstance(exc, (StorageError, ConnectionUnavailableError)):
            app.logger.error("%s %s failed: %s", request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:1420",
            "http://127.0.0.1:1420",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
