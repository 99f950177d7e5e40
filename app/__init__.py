# app/__init__.py

import logging
import os
import time
from flask import Flask, request, jsonify
from flask_cors import CORS
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
from .config import Config
from db.extensions import db, migrate, mail, init_redis, prewarm_redis, check_redis_health
from controllers.order_controller import order_bp
from controllers.payment_controller import payment_bp
from controllers.payout_controller import payout_bp
from controllers.vendor_controller import vendor_bp
from services.errors import MarketplaceError
from services.idempotency import SqlIdempotencyStore, RedisIdempotencyStore
from services.order_notification import NotificationService
from services.order_service import OrderService
from services.payout_service import PayoutService
from services.repositories import SqlOrderRepository, SqlVendorDirectory, SqlMenuDirectory
from services.vendor_service import VendorAdminService

# Every table must be mapped before create_all / migrations run
import models.vendor  # noqa: F401
import models.menuItem  # noqa: F401
import models.order  # noqa: F401
import models.orderItem  # noqa: F401
import models.payout  # noqa: F401
import models.payoutLog  # noqa: F401
import models.idempotencyKey  # noqa: F401


def build_services(app, notifier=None, idempotency=None):
    """Wire the core services for this app; tests pass their own notifier/store."""
    config = app.config
    notifier = notifier or NotificationService.from_config(config)

    if idempotency is None:
        if config.get('IDEMPOTENCY_BACKEND') == 'redis':
            idempotency = RedisIdempotencyStore(init_redis(app), ttl_seconds=config['IDEMPOTENCY_TTL_SECONDS'])
        else:
            idempotency = SqlIdempotencyStore(ttl_seconds=config['IDEMPOTENCY_TTL_SECONDS'])

    default_rate = config.get('PLATFORM_COMMISSION_RATE', 0.15)
    return {
        'notifier': notifier,
        'idempotency': idempotency,
        'orders': OrderService(
            orders=SqlOrderRepository(),
            vendors=SqlVendorDirectory(),
            menu=SqlMenuDirectory(),
            notifier=notifier,
            idempotency=idempotency,
            idempotency_wait_seconds=config.get('IDEMPOTENCY_WAIT_SECONDS', 2.0),
        ),
        'payouts': PayoutService(
            default_rate=default_rate,
            reporting_timezone=config.get('REPORTING_TIMEZONE', 'Asia/Kolkata'),
        ),
        'vendors': VendorAdminService(notifier, default_rate=default_rate),
    }


def create_app(config_object=Config, notifier=None, idempotency=None):
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config_object)

    CORS(app,
         origins=app.config['CORS_ORIGINS'],
         methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization', 'Idempotency-Key',
                        'X-User-Id', 'X-User-Role', 'X-Vendor-Id'],
         supports_credentials=True,
         expose_headers=['Content-Type', 'Authorization'],
         max_age=3600
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)

    app.extensions['marketplace'] = build_services(app, notifier=notifier, idempotency=idempotency)
    if 'redis' in app.extensions:
        prewarm_redis(app.extensions['redis'])

    # Register blueprints
    app.register_blueprint(order_bp, url_prefix='/api')
    app.register_blueprint(payment_bp, url_prefix='/api')
    app.register_blueprint(payout_bp, url_prefix='/api')
    app.register_blueprint(vendor_bp, url_prefix='/api')

    # Configure logging
    debug_mode = os.getenv("DEBUG_MODE", "false").lower() == "true"
    log_level = logging.DEBUG if debug_mode else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    app.logger.setLevel(log_level)

    # Request timing middleware for performance monitoring
    @app.before_request
    def before_request():
        request.start_time = time.time()
        if debug_mode:
            app.logger.debug(f"Started {request.method} {request.path}")

    @app.after_request
    def after_request(response):
        if hasattr(request, 'start_time'):
            elapsed = (time.time() - request.start_time) * 1000

            # Log slow requests (over 500ms)
            if elapsed > 500:
                app.logger.warning(
                    f"SLOW REQUEST: {request.method} {request.path} "
                    f"took {elapsed:.2f}ms - Status: {response.status_code}"
                )
            elif debug_mode:
                app.logger.info(
                    f"{request.method} {request.path} "
                    f"took {elapsed:.2f}ms - Status: {response.status_code}"
                )

        return response

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(e):
        db.session.rollback()
        if e.http_status >= 500:
            app.logger.error(f"{e.code} on {request.method} {request.path}: {e.message}")
        else:
            app.logger.info(f"{e.code} on {request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({'success': False, 'error': e.name, 'message': e.description}), e.code

    # Global error handler
    @app.errorhandler(Exception)
    def handle_exception(e):
        db.session.rollback()
        app.logger.error(f"Unhandled exception: {str(e)}", exc_info=True)
        return {
            'success': False,
            'message': 'Internal server error. Please try again.'
        }, 500

    # Health check endpoint
    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check endpoint for monitoring"""
        try:
            db.session.execute(text('SELECT 1'))
            status = {
                'status': 'ok',
                'database': 'connected',
                'timestamp': time.time()
            }
            if 'redis' in app.extensions:
                status['redis'] = 'connected' if check_redis_health(app.extensions['redis']) else 'unavailable'
            return status, 200
        except Exception as e:
            app.logger.error(f"Health check failed: {str(e)}")
            return {
                'status': 'error',
                'message': str(e),
                'timestamp': time.time()
            }, 500

    return app
