"""Settings shared by every environment."""
import os
from datetime import timedelta


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration (tokens are issued by the campus auth provider)
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'
    ADMIN_ROLES = ('admin', 'main_admin', 'assistant_admin')

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI') or 'memory://'

    # Attendance
    DEFAULT_TOKEN_LIFETIME_HOURS = 24
    COUNTDOWN_TICK_SECONDS = 1.0
    MAX_GEOFENCE_RADIUS_METERS = 10000
    LOCATION_ACCURACY_WARN_METERS = 50
    REJECT_OUTSIDE_RADIUS = True

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = 'logs/app.log'
