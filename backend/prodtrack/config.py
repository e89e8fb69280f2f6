# backend/prodtrack/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Shared record store; every open instance points at the same database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///prodtrack.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Production sites; one entries_<factory> partition each
    FACTORIES = _csv(os.environ.get("PRODTRACK_FACTORIES", "Mahape,Taloja"))

    CACHE_TTL_SECONDS = int(os.environ.get("PRODTRACK_CACHE_TTL", "300"))
    ACTIVITY_LOG_CAPACITY = int(os.environ.get("PRODTRACK_ACTIVITY_CAPACITY", "100"))

    SYNC_POLL_INTERVAL_SECONDS = float(os.environ.get("PRODTRACK_SYNC_INTERVAL", "2.0"))
    CHANGE_EVENT_RETENTION_HOURS = int(os.environ.get("PRODTRACK_CHANGE_RETENTION_HOURS", "24"))

    # None -> a fresh id is generated per process
    INSTANCE_ID = os.environ.get("PRODTRACK_INSTANCE_ID")

    BCRYPT_ROUNDS = int(os.environ.get("PRODTRACK_BCRYPT_ROUNDS", "12"))
    LOG_LEVEL = os.environ.get("PRODTRACK_LOG_LEVEL", "INFO")
