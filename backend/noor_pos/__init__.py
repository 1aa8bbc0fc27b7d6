# backend/noor_pos/__init__.py
from __future__ import annotations

import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.imports import imports_bp  # Spreadsheet product import
    from .routes.billing import billing_bp  # POS billing + receipts
    from .routes.orders import orders_bp  # Order maintenance + exchanges
    from .routes.inventory import inventory_bp  # Stock adjustments + history
    from .routes.purchases import purchases_bp
    from .routes.reports import reports_bp  # Summaries + CSV exports
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
            "http://127.0.0.1:8080",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-Operator-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
