# backend/mall/__init__.py
from flask import Flask, request
from sqlalchemy import inspect

from .config import Config
from .errors import MallError, error_response
from .extensions import db, migrate


def _register_services(app: Flask) -> None:
    """
    Build the long-lived service instances once and hang them on
    app.extensions. Request-scoped services (ProductService,
    StockController) are built per request around db.session.
    """
    from .services.authorization_service import (
        EXTENSION_KEY as AUTHZ_KEY,
        AuthorizationEngine,
        SQLAlchemyPolicyStore,
    )
    from .services.token_service import EXTENSION_KEY as TOKENS_KEY, TokenService

    app.extensions[TOKENS_KEY] = TokenService.from_config(app.config)
    engine = AuthorizationEngine(SQLAlchemyPolicyStore(db.session))
    app.extensions[AUTHZ_KEY] = engine

    if not app.config.get("AUTHZ_AUTOLOAD", True):
        return

    with app.app_context():
        # A fresh database has no tables until `flask system init` / migrations
        if inspect(db.engine).has_table("policy_rules"):
            engine.load_policy()
        else:
            app.logger.warning("policy_rules table missing; authorization engine not loaded")
        db.session.remove()


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.from_mapping(test_config)
    if not app.config.get("JWT_SECRET"):
        app.config["JWT_SECRET"] = app.config.get("SECRET_KEY")

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    _register_services(app)

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(MallError)
    def mall_error(error):
        return error_response(error)

    @app.errorhandler(404)
    def not_found(_error):
        return {"error": "Not found"}, 404

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def internal_error(_error):
        return {"error": "Internal server error"}, 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS", ()))
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
