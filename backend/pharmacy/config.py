# backend/pharmacy/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pharmacy.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///pharmacy.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # VAT applied to every sale, in basis points (1250 = 12.5%).
    # Read once at process start; never per request.
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "1250"))

    # Receipt numbers are random; a collision at insert time is retried this many times.
    RECEIPT_NUMBER_ATTEMPTS = int(os.environ.get("RECEIPT_NUMBER_ATTEMPTS", "3"))

    # Off by default: a discount larger than subtotal + tax yields a negative total.
    REJECT_DISCOUNT_OVER_TOTAL = _env_bool("REJECT_DISCOUNT_OVER_TOTAL", False)

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # bcrypt cost factor; tests lower it to keep fixtures fast.
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Front-end origins allowed to call the API from a browser.
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )
