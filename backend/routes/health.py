# routes/health.py
from flask import Blueprint, current_app, jsonify
from datetime import datetime, timezone
import logging

import cache_utils
import db_utils as db_tools
from errors import UpstreamError
from routes.realtime import hub

logger = logging.getLogger(__name__)
health_bp = Blueprint('health', __name__)


@health_bp.route('/api/health', methods=['GET'])
def health_check():
    """Health check with cache statistics, database status and online user count"""
    health_status = {
        'success': True,
        'message': 'Music Streaming API is running',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'environment': current_app.config.get('APP_ENV'),
        'cache': cache_utils.get_stats(),
        'database': 'unknown',
        'pool_stats': db_tools.get_pool_stats(),
        'online_users': len(hub.online_users()),
    }

    try:
        db_tools.ping()
        health_status['database'] = 'connected'
        return jsonify(health_status), 200
    except UpstreamError as e:
        logger.error(f"Health check failed: {e}")
        health_status['success'] = False
        health_status['database'] = 'unavailable'
        return jsonify(health_status), 503
