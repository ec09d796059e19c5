"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, store
timeouts and logging. It uses environment variables for deployment values and defaults for development. In
production, make sure to set DATABASE_URL and SECRET_KEY.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _engine_options(database_uri: str, timeout_seconds: float) -> dict:
    """
    Store timeouts for SQLAlchemy.

    - SQLite: busy timeout (seconds) so a locked database fails instead of hanging.
    - Server databases: connect timeout + bounded wait for a pooled connection.
    """
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    return {
        "pool_pre_ping": True,
        "pool_timeout": timeout_seconds,
        "connect_args": {"connect_timeout": int(timeout_seconds)},
    }


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'purchasing.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Every store call is bounded; failures surface as StoreUnavailableError
    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI, STORE_TIMEOUT_SECONDS)

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON = os.environ.get("LOG_JSON", "1") == "1"

    # Tax rate applied to new purchase orders when the request does not carry one (24 or 0.24 both mean 24%)
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "0")

    JSON_SORT_KEYS = False


class TestConfig(Config):
    """Configuration for the pytest suite (the database URI is overridden per test)."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options("sqlite://", 1.0)
    LOG_LEVEL = "DEBUG"
