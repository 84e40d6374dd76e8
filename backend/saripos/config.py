# backend/saripos/config.py
from __future__ import annotations
import os

from sqlalchemy.pool import QueuePool


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/saripos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///saripos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Pool of one: the process owns exactly one physical connection and
    # sessions queue for it instead of opening a second one.
    DB_POOL_TIMEOUT_SECONDS = _env_float("DB_POOL_TIMEOUT_SECONDS", 30.0)
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": QueuePool,
        "pool_size": 1,
        "max_overflow": 0,
        "pool_timeout": DB_POOL_TIMEOUT_SECONDS,
        "connect_args": {"check_same_thread": False},
    }

    SQLITE_BUSY_TIMEOUT_MS = _env_int("SQLITE_BUSY_TIMEOUT_MS", 5 * 1000)
    DB_RECONNECT_ATTEMPTS = _env_int("DB_RECONNECT_ATTEMPTS", 3)
    DB_RECONNECT_DELAY_SECONDS = _env_float("DB_RECONNECT_DELAY_SECONDS", 1.0)

    SETTINGS_LOCK_TIMEOUT_SECONDS = _env_float("SETTINGS_LOCK_TIMEOUT_SECONDS", 10.0)

    # Generate "BATCH-XYZ-YYYYMMDD" when a batch is added without a number
    AUTO_BATCH_NUMBER = _env_bool("AUTO_BATCH_NUMBER", True)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    LOG_LEVEL = "WARNING"

    # Tests always pass their own temporary file; WAL needs a real file
    SQLALCHEMY_DATABASE_URI = "sqlite:///saripos-test.sqlite3"

    DB_POOL_TIMEOUT_SECONDS = 10.0
    DB_RECONNECT_DELAY_SECONDS = 0.0
    SETTINGS_LOCK_TIMEOUT_SECONDS = 0.3
