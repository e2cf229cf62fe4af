"""Testing configuration."""
from .base import Config


class TestingConfig(Config):
    """Testing configuration class."""

    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    ATTEMPT_COUNTER_BACKEND = 'database'
    STORE_RETRY_BACKOFF_SECONDS = 0

    LOG_LEVEL = 'WARNING'
