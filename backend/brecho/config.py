# backend/brecho/config.py
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

    # SQLite DB stored in backend/instance/brecho.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///brecho.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Business dates (sale day, cash-flow day) are computed in this zone
    DEFAULT_TIMEZONE = os.environ.get("BRECHO_TIMEZONE", "America/Sao_Paulo")

    # Loyalty points earned per whole real of a sale (0 disables earning)
    POINTS_PER_REAL = int(os.environ.get("BRECHO_POINTS_PER_REAL", "1"))

    # Assistant workflow webhook; empty means "always simulate"
    ASSISTANT_WEBHOOK_URL = os.environ.get("ASSISTANT_WEBHOOK_URL", "")
    ASSISTANT_TIMEOUT_SECONDS = float(os.environ.get("ASSISTANT_TIMEOUT_SECONDS", "30"))
    ASSISTANT_SIMULATION = _env_bool("ASSISTANT_SIMULATION", True)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080,http://127.0.0.1:8080",
        ).split(",")
        if origin.strip()
    ]

    # httpx transport override for the assistant webhook (tests inject a MockTransport)
    ASSISTANT_HTTP_TRANSPORT = None
