"""Configuration objects loaded by ``create_app``."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    url = os.environ.get("DATABASE_URL", "sqlite:///petshop.db")
    # Hosted Postgres providers still hand out the legacy scheme.
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    # Bearer tokens expire after 24 hours unless overridden.
    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", 86400))
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")
    TESTING = False


class TestConfig(Config):
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    TESTING = True
