"""
Configuration Module for the Music Streaming API
Handles logging setup, environment settings and Flask app initialization
"""

import os
import logging


# ============================================================================
# ENVIRONMENT SETTINGS
# ============================================================================

APP_ENV = os.environ.get('APP_ENV', os.environ.get('FLASK_ENV', 'development'))
PORT = int(os.environ.get('PORT', '5000'))

# Frontend origin allowed by CORS and the socket server
CLIENT_URL = os.environ.get('CLIENT_URL', 'http://localhost:5173')
DEV_ORIGINS = [
    'http://localhost:5173',
    'http://localhost:5174',
    'http://localhost:5175',
]

# Supabase Auth - access tokens are HS256 JWTs signed with the project secret
SUPABASE_URL = os.environ.get('SUPABASE_URL')
SUPABASE_JWT_SECRET = os.environ.get('SUPABASE_JWT_SECRET')
SUPABASE_JWT_AUDIENCE = os.environ.get('SUPABASE_JWT_AUDIENCE', 'authenticated')

# In-memory cache
CACHE_CHECK_PERIOD = int(os.environ.get('CACHE_CHECK_PERIOD', '60'))
CACHE_MAX_ENTRIES = int(os.environ.get('CACHE_MAX_ENTRIES', '10000'))

# Recommendation engine
RECOMMENDER_WORKERS = int(os.environ.get('RECOMMENDER_WORKERS', '4'))


def allowed_origins():
    """Origins accepted for HTTP CORS and socket connections"""
    origins = [CLIENT_URL]
    for origin in DEV_ORIGINS:
        if origin not in origins:
            origins.append(origin)
    return origins


def configure_logging():
    """
    Configure application logging with standard format

    Returns:
        Logger instance for the config module
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)


def init_app_config(app):
    """
    Initialize Flask app configuration

    This sets up:
    - Custom JSON provider for dates, datetimes and UUIDs
    - Environment name used by error responses

    Args:
        app: Flask application instance
    """
    from utils.json_provider import CustomJSONProvider
    app.json = CustomJSONProvider(app)
    app.config['APP_ENV'] = APP_ENV
    app.config['JSON_SORT_KEYS'] = False


def set_db_pooling_mode():
    """
    Set database pooling mode environment variable

    This MUST be called before importing db_utils to ensure
    the connection pool is configured correctly.
    """
    os.environ['DB_USE_POOLING'] = 'true'
