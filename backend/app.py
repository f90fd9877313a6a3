"""
Music Streaming API Backend
A Flask + Socket.IO API for recommendations, favorites and live presence
"""

from flask import Flask, request
from flask_cors import CORS
import atexit
import logging
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configuration
from config import allowed_origins, configure_logging, init_app_config, set_db_pooling_mode, PORT

# Set pooling mode BEFORE importing db_utils
set_db_pooling_mode()

import cache_utils
import db_utils as db_tools
from errors import register_error_handlers
from routes import register_blueprints
from routes.realtime import socketio

logger = configure_logging()

# Create Flask app
app = Flask(__name__)
CORS(
    app,
    origins=allowed_origins(),
    supports_credentials=True,
    methods=['GET', 'POST', 'PUT', 'DELETE', 'PATCH', 'OPTIONS'],
    allow_headers=['Content-Type', 'Authorization']
)
init_app_config(app)
register_error_handlers(app)

# Register all route blueprints
register_blueprints(app)

socketio.init_app(
    app,
    cors_allowed_origins=allowed_origins(),
    async_mode='threading',
    ping_timeout=60,
    ping_interval=25
)

logger.info(f"Flask app initialized in PID {os.getpid()}")


# Request/response logging
@app.before_request
def log_request():
    """Log incoming requests"""
    logger.info(f"{request.method} {request.path}")

@app.after_request
def log_response(response):
    """Log response status"""
    logger.info(f"{request.method} {request.path} - {response.status_code}")
    return response


def cleanup():
    """Stop background threads and close the connection pool on shutdown"""
    logger.info("Shutting down...")
    cache_utils.stop_sweeper()
    db_tools.stop_keepalive_thread()
    db_tools.close_connection_pool()
    logger.info("Shutdown complete")

atexit.register(cleanup)


if __name__ == '__main__':
    # Running directly with 'python app.py' (not gunicorn)
    logger.info("Starting Flask application directly (not gunicorn)...")
    logger.info("Database connection pool will initialize on first request")

    db_tools.start_keepalive_thread()
    cache_utils.start_sweeper()

    socketio.run(app, debug=True, host='0.0.0.0', port=PORT, allow_unsafe_werkzeug=True)
