"""Base configuration shared by every environment."""
import os


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "https://*.vercel.app", "http://127.0.0.1:*"]

    # Rate Limiting (HTTP layer)
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    CHECKIN_RATE_LIMIT = "30 per minute"

    REDIS_URL = os.environ.get('REDIS_URL')

    # Geofence
    GEOFENCE_MAX_ACCURACY_METERS = 25
    GEOFENCE_MIN_RADIUS_METERS = 1
    GEOFENCE_MAX_RADIUS_METERS = 200

    # Proof of session
    SESSION_TOKEN_TTL_SECONDS = 60
    BACKUP_KEY_MAX_ATTEMPTS = 5
    BACKUP_KEY_WINDOW_SECONDS = 600
    ATTEMPT_COUNTER_BACKEND = os.environ.get('ATTEMPT_COUNTER_BACKEND', 'database')

    # Anti-spoofing (advisory only)
    ANTI_SPOOFING_DEVICE_WINDOW_SECONDS = 1800
    ANTI_SPOOFING_IP_WINDOW_SECONDS = 300
    ANTI_SPOOFING_MAX_SOURCE_IPS = 2
    ANTI_SPOOFING_MAX_CLOCK_DRIFT_SECONDS = 120

    # Ledger
    PERSIST_REJECTED_ATTEMPTS = True
    STORE_READ_ATTEMPTS = 3
    LEDGER_WRITE_ATTEMPTS = 3
    STORE_RETRY_BACKOFF_SECONDS = 0.05

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
