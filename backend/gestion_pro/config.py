# backend/gestion_pro/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/gestion_pro.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///gestion_pro.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # IVA 21% unless the organization overrides it
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "2100"))

    # Blue-dollar quote; the fallback is used whenever the lookup fails
    EXCHANGE_RATE_URL = os.environ.get("EXCHANGE_RATE_URL", "https://api.bluelytics.com.ar/v2/latest")
    EXCHANGE_RATE_FALLBACK = os.environ.get("EXCHANGE_RATE_FALLBACK", "1000")
    EXCHANGE_RATE_TIMEOUT = float(os.environ.get("EXCHANGE_RATE_TIMEOUT", "5"))

    # Object storage for avatars and product images
    STORAGE_ROOT = os.environ.get("STORAGE_ROOT", "storage")
    STORAGE_PUBLIC_URL = os.environ.get("STORAGE_PUBLIC_URL", "http://localhost:5001/storage")
