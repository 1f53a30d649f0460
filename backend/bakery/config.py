# backend/bakery/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bakery.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///bakery.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if origin.strip()
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sale cancellation policy
    CANCELLATION_WINDOW_DAYS = int(os.environ.get("CANCELLATION_WINDOW_DAYS", "7"))
    CANCELLATION_REASON_MIN_LENGTH = int(os.environ.get("CANCELLATION_REASON_MIN_LENGTH", "10"))

    # Ticket numbers are random; collisions retry against the unique index
    TICKET_NUMBER_ATTEMPTS = int(os.environ.get("TICKET_NUMBER_ATTEMPTS", "5"))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    STATS_CACHE_TTL_SECONDS = int(os.environ.get("STATS_CACHE_TTL_SECONDS", "60"))

    # Retry policy for lock contention
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"
    DB_RETRY_BACKOFF = 0.0
    STATS_CACHE_TTL_SECONDS = 3600
    BCRYPT_ROUNDS = 4
