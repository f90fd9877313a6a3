# gunicorn.conf.py
# Gunicorn configuration file
#
# Run with: gunicorn -c gunicorn.conf.py app:app
#
# Presence and cache state live in process memory, so a single worker is
# required. Threads serve concurrent HTTP requests and websockets.

import logging
import os

# Logging
accesslog = '-'  # Log to stdout
errorlog = '-'   # Log to stderr
loglevel = 'info'

# Worker configuration
bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"
workers = 1
worker_class = 'gthread'
threads = int(os.environ.get('GUNICORN_THREADS', '50'))
timeout = 120

# Server mechanics
daemon = False
pidfile = None
umask = 0
user = None
group = None
tmp_upload_dir = None

# Hooks
def post_worker_init(worker):
    """
    Called after a worker has been forked and initialized.
    Starts the cache sweeper and database keepalive threads.
    """
    logger = logging.getLogger(__name__)
    logger.info(f"=== Post-worker init hook called for worker PID {os.getpid()} ===")

    try:
        import cache_utils
        import db_utils

        cache_utils.start_sweeper()
        db_utils.start_keepalive_thread()
        logger.info(f"Background threads initialized in gunicorn worker PID {os.getpid()}")

    except Exception as e:
        logger.error(f"Error initializing background threads in gunicorn worker: {e}", exc_info=True)


def worker_exit(server, worker):
    """
    Called when a worker exits.
    """
    logger = logging.getLogger(__name__)
    logger.info(f"Worker {worker.pid} exiting - stopping background threads")

    try:
        import cache_utils
        import db_utils

        cache_utils.stop_sweeper()
        db_utils.stop_keepalive_thread()
    except Exception as e:
        logger.error(f"Error stopping background threads: {e}")
