# backend/hms/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///hms.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Permission cache: "memory" (per process) or "redis" (shared)
    PERMISSION_CACHE_BACKEND = os.environ.get("PERMISSION_CACHE_BACKEND", "memory")
    PERMISSION_CACHE_TTL_SECONDS = int(os.environ.get("PERMISSION_CACHE_TTL_SECONDS", "900"))
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # Percent; a billing_settings row "default_tax_rate" overrides this
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "0")
    BILLING_RETRY_ATTEMPTS = int(os.environ.get("BILLING_RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
