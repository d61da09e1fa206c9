# backend/shopkeeper/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopkeeper.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopkeeper.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Wrap sale/purchase batches in one DB transaction when the backend supports it
    DB_TRANSACTIONS = _env_flag("DB_TRANSACTIONS")
    # Replica set name for deployments whose topology cannot be read from the engine
    DATABASE_REPLICA_SET = os.environ.get("DATABASE_REPLICA_SET") or None

    # Recompute the dashboard snapshot after every sale/purchase/product write
    DASHBOARD_REFRESH_ON_WRITE = _env_flag("DASHBOARD_REFRESH_ON_WRITE", "true")

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "12"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    DEFAULT_ADMIN_EMAIL = os.environ.get("DEFAULT_ADMIN_EMAIL", "admin@shop.local")
    DEFAULT_ADMIN_PASSWORD = os.environ.get("DEFAULT_ADMIN_PASSWORD", "password")
    DEFAULT_ADMIN_NAME = os.environ.get("DEFAULT_ADMIN_NAME", "Admin User")

    UPLOAD_DIR = os.environ.get("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
    API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:5000")
    FRONTEND_URL = os.environ.get("FRONTEND_URL")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    DB_TRANSACTIONS = False
    DATABASE_REPLICA_SET = None
    DASHBOARD_REFRESH_ON_WRITE = True
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "DEBUG"
