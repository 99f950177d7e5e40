# db/extensions.py

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_mail import Mail
import redis
from redis.connection import ConnectionPool, SSLConnection
import urllib.parse
import logging

db = SQLAlchemy()
migrate = Migrate()
mail = Mail()

logger = logging.getLogger(__name__)


def redis_pool_options(redis_url, use_tls=False):
    """ConnectionPool kwargs for a redis:// or rediss:// URL. Nothing connects yet."""
    parsed = urllib.parse.urlparse(redis_url)
    options = {
        'host': parsed.hostname or 'localhost',
        'port': parsed.port or 6379,
        'username': parsed.username,
        'password': parsed.password,
        'db': int(parsed.path.lstrip('/') or 0),
        'decode_responses': True,
        'socket_connect_timeout': 10,   # TLS handshake can be slow
        'socket_timeout': 5,
        'socket_keepalive': True,
        'retry_on_timeout': True,
        'retry_on_error': [
            redis.exceptions.ConnectionError,
            redis.exceptions.TimeoutError
        ],
        'health_check_interval': 30,
        'max_connections': 50,
    }
    if use_tls or parsed.scheme == 'rediss':
        options.update({
            'connection_class': SSLConnection,
            'ssl_cert_reqs': None,
            'ssl_check_hostname': False,
        })
    return options


def init_redis(app):
    """
    One pooled client per app, shared by every request.

    Idempotency keys live here when IDEMPOTENCY_BACKEND is 'redis'.
    """
    redis_url = app.config.get('REDIS_URL') or 'redis://localhost:6379/0'
    options = redis_pool_options(redis_url, app.config.get('REDIS_TLS_ENABLED', False))
    client = redis.Redis(connection_pool=ConnectionPool(**options))
    app.extensions['redis'] = client
    logger.info(f"Redis pool for {options['host']}:{options['port']} "
                f"({'TLS' if 'connection_class' in options else 'plain'})")
    return client


def check_redis_health(client):
    """Check Redis connection health"""
    try:
        client.ping()
        return True
    except redis.exceptions.RedisError as e:
        logger.error(f"Redis health check failed: {str(e)}")
        return False


def prewarm_redis(client):
    """Open the first pooled connection so the first idempotent request doesn't pay for it."""
    if check_redis_health(client):
        logger.info("Redis connection pool ready")
    else:
        logger.warning("Redis pre-warm failed (will retry on first request)")
