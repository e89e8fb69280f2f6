# backend/prodtrack/__init__.py
from __future__ import annotations

import os

from flask import Flask, current_app

from .config import Config
from .extensions import db, migrate


MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.from_mapping(test_config)

    # Module loggers (prodtrack.services.*) propagate to the app logger
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def get_data_service():
    """
    The DataService of the current application, built on first use.

    One per app: an app is one instance of the tracker, with its own cache,
    instance id and change cursor.
    """
    from .services.data_service import DataService

    service = current_app.extensions.get("prodtrack.data_service")
    if service is None:
        service = DataService.from_config(current_app.config)
        current_app.extensions["prodtrack.data_service"] = service
    return service
