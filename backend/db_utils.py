#!/usr/bin/env python3
"""
Database Utilities
Supports both pooled (Flask backend) and non-pooled (scripts, tests) modes

The database is the Supabase-hosted Postgres instance, reached through the
Supabase transaction pooler.

Configuration:
    Set DB_USE_POOLING=true environment variable to enable pooling (for Flask)
    Leave unset or false for simple connections
"""

import os
import logging
import time
import threading
from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from errors import ConflictError, UpstreamError

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

# Determine mode: pooled (backend) or simple (scripts)
USE_POOLING = os.environ.get('DB_USE_POOLING', 'false').lower() == 'true'

# Database configuration
DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'dbname': os.environ.get('DB_NAME', 'postgres'),
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASSWORD', ''),
    'port': os.environ.get('DB_PORT', '6543')
}

# Connection string for pooling
CONNECTION_STRING = (
    f"postgresql://{DB_CONFIG['user']}:{DB_CONFIG['password']}"
    f"@{DB_CONFIG['host']}:{DB_CONFIG['port']}/{DB_CONFIG['dbname']}"
    f"?sslmode={os.environ.get('DB_SSLMODE', 'require')}"
)


# ============================================================================
# POOLING MODE (Backend) - Only active if USE_POOLING=true
# ============================================================================

pool: Optional[ConnectionPool] = None
keepalive_thread: Optional[threading.Thread] = None
keepalive_stop = threading.Event()
pool_init_lock = threading.Lock()


def init_connection_pool(max_retries=3, retry_delay=2):
    """
    Initialize the connection pool (only used in pooling mode)

    Returns:
        bool: True if successful, False otherwise
    """
    if not USE_POOLING:
        logger.debug("Pooling not enabled, skipping pool initialization")
        return True

    global pool

    with pool_init_lock:
        if pool is not None:
            logger.debug("Connection pool already initialized")
            return True

        for attempt in range(max_retries):
            try:
                logger.info(f"Initializing connection pool (attempt {attempt + 1}/{max_retries})...")

                pool = ConnectionPool(
                    CONNECTION_STRING,
                    min_size=2,
                    max_size=10,
                    open=True,
                    timeout=30,
                    max_waiting=20,
                    max_lifetime=1800,
                    max_idle=600,
                    kwargs={
                        'row_factory': dict_row,
                        'connect_timeout': 10,
                        'keepalives': 1,
                        'keepalives_idle': 30,
                        'keepalives_interval': 10,
                        'keepalives_count': 3,
                        'options': '-c statement_timeout=30000',
                        'autocommit': False,
                        # The Supabase transaction pooler does not support prepared statements
                        'prepare_threshold': None
                    }
                )

                with pool.connection() as conn:
                    with conn.cursor() as cur:
                        cur.execute("SELECT 1 as test, pg_backend_pid() as pid")
                        result = cur.fetchone()
                        logger.info("Connection pool initialized successfully")
                        logger.info(f"  Backend PID: {result['pid']}")

                return True

            except Exception as e:
                logger.error(f"Connection pool initialization failed (attempt {attempt + 1}/{max_retries}): {e}")

                if pool is not None:
                    try:
                        pool.close()
                    except Exception as close_error:
                        logger.debug(f"Error closing failed pool: {close_error}")
                    pool = None

                if attempt < max_retries - 1:
                    # Exponential backoff
                    wait_time = retry_delay * (1.5 ** attempt)
                    logger.info(f"Retrying in {wait_time:.1f} seconds...")
                    time.sleep(wait_time)
                else:
                    logger.error("Failed to initialize connection pool after all retries")
                    return False

        return False


def reset_connection_pool():
    """Reset the connection pool (only used in pooling mode)"""
    if not USE_POOLING:
        return True

    global pool

    with pool_init_lock:
        logger.warning("Resetting connection pool...")

        if pool is not None:
            try:
                pool.close()
                logger.info("Old pool closed")
            except Exception as e:
                logger.error(f"Error closing old pool: {e}")

        pool = None

    success = init_connection_pool()

    if success:
        logger.info("Connection pool reset successfully")
    else:
        logger.error("Failed to reset connection pool")

    return success


def connection_keepalive():
    """Background thread to keep pooled connections alive"""
    logger.info("Starting connection keepalive thread...")

    while not keepalive_stop.wait(300):  # 5 minutes
        if pool is None:
            continue
        try:
            with pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            logger.debug(f"Keepalive ping successful, pool stats: {get_pool_stats()}")
        except Exception as e:
            logger.warning(f"Keepalive ping failed: {e}")

    logger.info("Connection keepalive thread stopped")


def start_keepalive_thread():
    """Start the background keepalive thread (only used in pooling mode)"""
    if not USE_POOLING:
        return

    global keepalive_thread

    if keepalive_thread is None or not keepalive_thread.is_alive():
        keepalive_stop.clear()
        keepalive_thread = threading.Thread(target=connection_keepalive, daemon=True)
        keepalive_thread.start()
        logger.info("Keepalive thread started")


def stop_keepalive_thread():
    """Stop the background keepalive thread (only used in pooling mode)"""
    if not USE_POOLING:
        return

    logger.info("Stopping keepalive thread...")
    keepalive_stop.set()
    if keepalive_thread:
        keepalive_thread.join(timeout=5)


def close_connection_pool():
    """Close the connection pool (only used in pooling mode)"""
    if not USE_POOLING:
        return

    global pool

    with pool_init_lock:
        if pool:
            logger.info("Closing connection pool...")
            try:
                pool.close()
            except Exception as e:
                logger.error(f"Error closing connection pool: {e}")
            pool = None


def get_pool_stats():
    """Get current connection pool statistics (only used in pooling mode)"""
    if not USE_POOLING or pool is None:
        return None

    stats = pool.get_stats()
    return {
        'pool_size': stats.get('pool_size', 0),
        'pool_available': stats.get('pool_available', 0),
        'requests_waiting': stats.get('requests_waiting', 0)
    }


# ============================================================================
# UNIFIED CONNECTION MANAGER
# ============================================================================

def _create_connection():
    """Create a simple database connection (only used in simple mode)"""
    try:
        return psycopg.connect(
            **DB_CONFIG,
            row_factory=dict_row,
            autocommit=False,
            prepare_threshold=None
        )
    except psycopg.OperationalError as e:
        logger.error(f"Failed to connect to database: {e}")
        logger.error(f"Connection details: host={DB_CONFIG['host']}, "
                     f"port={DB_CONFIG['port']}, dbname={DB_CONFIG['dbname']}, "
                     f"user={DB_CONFIG['user']}")
        raise


@contextmanager
def get_db_connection():
    """
    Get a database connection using the appropriate mode

    Returns:
        Database connection (context manager). The transaction is committed
        when the block exits cleanly and rolled back otherwise.
    """
    if USE_POOLING:
        if pool is None:
            logger.info("Connection pool not initialized, initializing now...")
            if not init_connection_pool():
                raise UpstreamError("Failed to initialize connection pool")

        try:
            with pool.connection() as conn:
                yield conn
        except psycopg.OperationalError as e:
            logger.error(f"Database operational error: {e}")
            if "server closed the connection unexpectedly" in str(e).lower():
                logger.warning("Detected connection closure, attempting pool reset...")
                reset_connection_pool()
            raise

    else:
        conn = _create_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            try:
                conn.rollback()
            except Exception as rollback_error:
                logger.error(f"Error rolling back transaction: {rollback_error}")
            raise
        finally:
            conn.close()


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def execute_query(query, params=None, fetch_one=False):
    """
    Execute a read query

    Args:
        query: SQL query string
        params: Query parameters tuple
        fetch_one: If True, return only the first row (or None)

    Returns:
        A row dict, a list of row dicts, or None

    Raises:
        UpstreamError: If the database call fails
    """
    start_time = time.time()

    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone() if fetch_one else cur.fetchall()

                logger.debug(f"Query executed in {time.time() - start_time:.3f}s")
                return result

    except psycopg.Error as e:
        logger.error(f"Query error after {time.time() - start_time:.3f}s: {e}")
        raise UpstreamError(f"Database query failed: {e}") from e


def execute_update(query, params=None, returning=False):
    """
    Execute an INSERT/UPDATE/DELETE query

    Args:
        query: SQL query string
        params: Query parameters tuple
        returning: If True, return the first row produced by a RETURNING clause

    Returns:
        Number of affected rows, or the returned row

    Raises:
        ConflictError: On a uniqueness violation
        UpstreamError: If the database call fails
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                if returning:
                    return cur.fetchone()
                return cur.rowcount
    except psycopg.errors.UniqueViolation as e:
        raise ConflictError('Resource already exists') from e
    except psycopg.Error as e:
        logger.error(f"Update execution error: {e}")
        raise UpstreamError(f"Database update failed: {e}") from e


def ping():
    """
    Run a trivial query against the database

    Returns:
        Dict with server version and time

    Raises:
        UpstreamError: If the database is unreachable
    """
    return execute_query("SELECT version() as version, current_timestamp as now", fetch_one=True)
