# Overview: Flask extension instances and app-scoped collaborators.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


def payment_gateway():
    """The app's payment gateway (built in create_app)."""
    return current_app.extensions["payment_gateway"]


def notification_queue():
    """The app's NotificationQueue (built in create_app)."""
    return current_app.extensions["notification_queue"]
