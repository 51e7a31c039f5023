# backend/orderdesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/orderdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Lock contention / deadlock retries for stock and payment transactions
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))

    # Whole-operation retries after a unique violation on a minted code
    CODE_ALLOCATION_ATTEMPTS = int(os.environ.get("CODE_ALLOCATION_ATTEMPTS", "5"))

    # Callable (actor_id, permission_code) -> bool. None allows every request;
    # authentication lives outside this service.
    PERMISSION_CHECKER = None
