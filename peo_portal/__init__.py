"""
peo_portal/__init__.py

Flask application factory for the PEO Portal procurement engine.

Covers the procurement lifecycle of the Provincial Engineering Office:
annual budget ledger -> Program of Work -> bidding -> contractor history and ratings.

Notes:
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev and tests.
- Every PortalError is rendered as JSON {"error", "message"} with its HTTP status.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify

from .errors import PortalError
from .extensions import db, migrate

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("peo_portal").setLevel(level)


def create_app(config_object: object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from . import models  # noqa: F401  (register tables on db.metadata)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.biddings import biddings_bp
    from .blueprints.budgets import budgets_bp
    from .blueprints.contractors import contract_history_bp, contractors_bp, ratings_bp
    from .blueprints.pow import pow_bp

    app.register_blueprint(budgets_bp)
    app.register_blueprint(pow_bp)
    app.register_blueprint(biddings_bp)
    app.register_blueprint(contractors_bp)
    app.register_blueprint(contract_history_bp)
    app.register_blueprint(ratings_bp)

    # ----------------------------------------------------------------------
    # Errors
    # ----------------------------------------------------------------------
    @app.errorhandler(PortalError)
    def handle_portal_error(error: PortalError):
        if error.status_code >= 500:
            logger.error("%s: %s", error.__class__.__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (dev only; use `flask db upgrade` with migrations)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("recompute-contractors")
    def recompute_contractors_command():
        """Rebuild every contractor's aggregate fields from its history and ratings."""
        from .services.contractors import recompute_all_contractors

        count = recompute_all_contractors()
        click.echo(f"Recomputed {count} contractor(s).")

    # ----------------------------------------------------------------------
    # Health
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        return jsonify({"app": app.config.get("APP_NAME", "PEO Portal"), "status": "ok"})

    return app
