# backend/stockledger/__init__.py
import os

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Shared collaborators: report engine (with its cache) and document storage
    from .services.reporting_service import init_reporting
    from .services.file_store import LocalFileStore

    init_reporting(app)
    storage_dir = app.config["FILE_STORAGE_DIR"]
    if not os.path.isabs(storage_dir):
        storage_dir = os.path.join(app.root_path, "..", storage_dir)
    app.extensions["stockledger.file_store"] = LocalFileStore(
        storage_dir, base_url=app.config["FILE_BASE_URL"]
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.items import items_bp
    from .routes.orders import orders_bp
    from .routes.returns import returns_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(reports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-User-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
