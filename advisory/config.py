"""
Advisory Request Workflow
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name]())

Workflow settings:
    HOURS_PER_PERSON_DAY             divisor for the person-day estimate (default 8)
    ALLOCATION_REQUIRED_FOR_APPROVED block Approval → Approved without an allocation
    TRUST_USER_HEADER                accept the acting user id from X-User
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'advisory_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    # SQLAlchemy only accepts the postgresql:// scheme
    return os.getenv("DATABASE_URL", "").replace("postgres://", "postgresql://", 1)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "3600"))
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL_OPTIONS)

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    TRUST_USER_HEADER = _env_flag("TRUST_USER_HEADER")

    HOURS_PER_PERSON_DAY = int(os.getenv("HOURS_PER_PERSON_DAY", "8"))
    ALLOCATION_REQUIRED_FOR_APPROVED = _env_flag("ALLOCATION_REQUIRED_FOR_APPROVED")


class DevelopmentConfig(Config):
    """Local SQLite unless DATABASE_URL is set; X-User trusted by default."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url() or _SQLITE_DEV
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL_OPTIONS) if _database_url() else {}
    TRUST_USER_HEADER = _env_flag("TRUST_USER_HEADER", "true")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret"
    TRUST_USER_HEADER = True
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Requires DATABASE_URL and SECRET_KEY; CORS origins must be listed."""

    SQLALCHEMY_DATABASE_URI = _database_url() or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
