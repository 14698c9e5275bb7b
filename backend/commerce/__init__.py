# backend/commerce/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .logging_setup import configure_logging


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Engines are created in db.init_app, so overrides must land first
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Process-scoped collaborators, reached through extensions.payment_gateway()
    # and extensions.notification_queue()
    from .services.notification_service import NotificationQueue
    from .services.paystack_gateway import PaystackGateway

    app.extensions["payment_gateway"] = PaystackGateway.from_config(app.config)
    app.extensions["notification_queue"] = NotificationQueue()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.cart import cart_bp
    from .routes.checkout import checkout_bp
    from .routes.payments import payments_bp
    from .routes.orders import orders_bp
    from .routes.admin import admin_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Tenant-Id, X-Session-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    app.logger.info("Commerce API initialized (database=%s)", app.config["SQLALCHEMY_DATABASE_URI"].split("://", 1)[0])
    return app
