# backend/noor_pos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/noor_pos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///noor_pos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Spreadsheet import
    IMPORT_BATCH_SIZE = int(os.environ.get("IMPORT_BATCH_SIZE", "10"))
    IMPORT_MAX_ROWS = int(os.environ.get("IMPORT_MAX_ROWS", "2000"))

    # POS billing
    POS_DEFAULT_DISCOUNT_PERCENT = int(os.environ.get("POS_DEFAULT_DISCOUNT_PERCENT", "10"))
    LOW_STOCK_DEFAULT_THRESHOLD = int(os.environ.get("LOW_STOCK_DEFAULT_THRESHOLD", "10"))
    STORE_DISPLAY_NAME = os.environ.get("STORE_DISPLAY_NAME", "NOOR - A HAND CRAFTED HERITAGE")
