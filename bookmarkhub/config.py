import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'bookmarkhub.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_URL = os.environ.get("APP_URL", "http://localhost:8072").rstrip("/")
    AUTH_URL = os.environ.get("AUTH_URL", "").rstrip("/")
    AUTH_API_KEY = os.environ.get("AUTH_API_KEY", "")
    AUTH_TIMEOUT = float(os.environ.get("AUTH_TIMEOUT", "10"))
    PROTECTED_PREFIX = os.environ.get("PROTECTED_PREFIX", "/dashboard")
    ACCESS_COOKIE_NAME = os.environ.get("ACCESS_COOKIE_NAME", "bh-access-token")
    REFRESH_COOKIE_NAME = os.environ.get("REFRESH_COOKIE_NAME", "bh-refresh-token")
    AUTH_COOKIE_SECURE = os.environ.get("AUTH_COOKIE_SECURE", "0") == "1"
    AUTH_COOKIE_MAX_AGE = int(os.environ.get("AUTH_COOKIE_MAX_AGE", str(60 * 60 * 24 * 30)))
    # import preview round-trips the whole export file through a form field
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(32 * 1024 * 1024)))
    MAX_FORM_MEMORY_SIZE = MAX_CONTENT_LENGTH


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    AUTH_URL = "https://auth.test"
    APP_URL = "http://localhost"
