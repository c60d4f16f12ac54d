# backend/workshop/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.materials import materials_bp
    from .routes.receipts import receipts_bp
    from .routes.products import products_bp
    from .routes.productions import productions_bp
    from .routes.finished_products import finished_products_bp
    from .routes.history import history_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(materials_bp)
    app.register_blueprint(receipts_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(productions_bp)
    app.register_blueprint(finished_products_bp)
    app.register_blueprint(history_bp)

    allowed_origins = {
        origin.strip()
        for origin in str(app.config.get("CORS_ORIGINS", "")).split(",")
        if origin.strip()
    }

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
