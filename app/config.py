# app/config.py

import os


class Config:
    # Flask Secret Key
    SECRET_KEY = os.getenv('SECRET_KEY', 'your_secret_key')

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URI',
        'postgresql://postgres:postgres@db:5432/marketplace_db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Connection pool; statement_timeout bounds every persistence call
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,       # Validate connections before using
        "pool_recycle": 1800,        # Recycle every 30 minutes
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,          # Wait 30s for available connection
        "connect_args": {
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000"  # 30s query timeout
        }
    }

    # CORS
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://localhost:5173').split(',')
        if origin.strip()
    ]

    # Mail Configuration
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() in ("true", "1", "t")
    MAIL_USE_SSL = os.getenv("MAIL_USE_SSL", "false").lower() in ("true", "1", "t")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "no-reply@marketplace.local")
    MAIL_SUPPRESS_SEND = os.getenv("MAIL_SUPPRESS_SEND", "false").lower() in ("true", "1", "t")

    # Redis (idempotency backend, see db.extensions.init_redis)
    REDIS_URL = os.getenv('REDIS_URL')
    REDIS_TLS_ENABLED = os.getenv('REDIS_TLS_ENABLED', 'false').lower() == 'true'

    # Commission: fraction, 0.15 == 15%
    PLATFORM_COMMISSION_RATE = float(os.getenv('PLATFORM_RATE', 0.15))

    # Idempotency keys: 'sql' (IdempotencyKeys table) or 'redis'
    IDEMPOTENCY_BACKEND = os.getenv('IDEMPOTENCY_BACKEND', 'sql')
    IDEMPOTENCY_TTL_SECONDS = int(os.getenv('IDEMPOTENCY_TTL_SECONDS', 24 * 3600))
    IDEMPOTENCY_WAIT_SECONDS = float(os.getenv('IDEMPOTENCY_WAIT_SECONDS', 2.0))

    # Realtime socket relay (order:* / payment:* events)
    REALTIME_RELAY_URL = os.getenv('REALTIME_RELAY_URL')
    REALTIME_RELAY_TOKEN = os.getenv('REALTIME_RELAY_TOKEN')
    NOTIFY_TIMEOUT_SECONDS = float(os.getenv('NOTIFY_TIMEOUT_SECONDS', 2.5))

    # Timezone used for "today / this week / this month" reporting windows
    REPORTING_TIMEZONE = os.getenv('REPORTING_TIMEZONE', 'Asia/Kolkata')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    MAIL_SUPPRESS_SEND = True
    IDEMPOTENCY_BACKEND = 'sql'
    IDEMPOTENCY_WAIT_SECONDS = 0
    REALTIME_RELAY_URL = None
