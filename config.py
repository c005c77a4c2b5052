# config.py
import os
from datetime import timedelta


def _csv(value):
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-jwt-secret-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "mysql+pymysql://root:@localhost/dailydues"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 🔐 JWT config
    JWT_TOKEN_LOCATION = ["headers"]     # where to look for tokens
    JWT_HEADER_NAME = "Authorization"    # header name
    JWT_HEADER_TYPE = "Bearer"           # expected prefix
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=7)

    CORS_ORIGINS = _csv(os.environ.get("CORS_ORIGINS")) or "*"

    # Slack incoming webhook; notifications are off when unset
    SLACK_WEBHOOK_URL = os.environ.get("SLACK_WEBHOOK_URL")
    # None -> notifier default event set
    SLACK_ENABLED_EVENTS = _csv(os.environ.get("SLACK_ENABLED_EVENTS"))
    SLACK_TIMEOUT_SECONDS = float(os.environ.get("SLACK_TIMEOUT_SECONDS", "5"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    SLACK_WEBHOOK_URL = None
