"""Production configuration."""
import os

from .base import Config


class ProductionConfig(Config):
    """Production configuration class."""

    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 1800,
    }

    # Stricter limits
    RATELIMIT_DEFAULT = "100 per day, 20 per hour"
    CHECKIN_RATE_LIMIT = "10 per minute"

    # Tighter accuracy requirement on campus
    GEOFENCE_MAX_ACCURACY_METERS = 20
    SESSION_TOKEN_TTL_SECONDS = 30

    LOG_LEVEL = 'INFO'
    LOG_FILE = os.getenv('LOG_FILE', '/app/logs/app.log')
