"""
Application configuration.
This module defines the configuration settings for the PEO Portal Flask application, including database connection,
logging level and the procurement-engine switches. It uses environment variables for sensitive information and
defaults for development. In production, make sure to set DATABASE_URL.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Base configuration shared by all environments."""

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'peo_portal.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Re-adjust the linked AnnualBudget when a POW's estimated cost or budget changes.
    # Set to False to keep the allocation made at creation time untouched.
    BUDGET_REALLOCATE_ON_UPDATE = _env_bool("BUDGET_REALLOCATE_ON_UPDATE", True)

    # How many times a create is retried after a POW/BID number collision.
    SEQUENCE_RETRY_ATTEMPTS = int(os.environ.get("SEQUENCE_RETRY_ATTEMPTS", "3"))

    AUDIT_ENABLED = _env_bool("AUDIT_ENABLED", True)

    DEFAULT_CLIENT_NAME = "Province of Palawan - PEO"
    DEFAULT_SOURCE_OF_FUND = "20% Development Fund"
    DEFAULT_PROCUREMENT_MODE = "Public Bidding"

    # App name (used in the health payload)
    APP_NAME = "PEO Portal"


class TestingConfig(Config):
    """In-memory database for the test suite."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "DEBUG"
